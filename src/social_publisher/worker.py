"""Celery worker configuration."""

from celery import Celery

from social_publisher.config import settings
from social_publisher.logging import setup_logging

# Setup logging before anything else
setup_logging()

celery_app = Celery(
    "social_publisher",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["social_publisher.jobs.publish_tasks"],
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Inline execution for tests and single-process development
    task_always_eager=settings.celery_task_always_eager,
    task_eager_propagates=False,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=900,  # uploads can be slow
    task_soft_time_limit=840,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    # Result backend
    result_expires=86400,  # 24 hours
    task_routes={
        "retry_publish": {"queue": "publishing"},
        "process_due_posts": {"queue": "publishing"},
    },
)
