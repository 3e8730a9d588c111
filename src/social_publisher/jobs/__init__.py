"""Celery job definitions."""

from social_publisher.jobs.publish_tasks import retry_publish_task

__all__ = ["retry_publish_task"]
