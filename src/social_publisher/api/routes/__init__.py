"""API route modules."""

from social_publisher.api.routes import accounts, admin, health, oauth, publish, schedule

__all__ = ["accounts", "admin", "health", "oauth", "publish", "schedule"]
