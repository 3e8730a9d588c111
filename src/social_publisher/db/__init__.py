"""Database models and session management."""

from social_publisher.db.models import (
    AppSettingsModel,
    Base,
    ScheduledPostModel,
    SocialAccountModel,
    VideoModel,
)
from social_publisher.db.session import SessionLocal, engine, get_session, get_session_context

__all__ = [
    "AppSettingsModel",
    "Base",
    "ScheduledPostModel",
    "SessionLocal",
    "SocialAccountModel",
    "VideoModel",
    "engine",
    "get_session",
    "get_session_context",
]
