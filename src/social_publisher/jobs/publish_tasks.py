"""Celery tasks for background publish attempts and due-post sweeps."""

from typing import Any
from uuid import UUID

from social_publisher.db.session import get_session_context
from social_publisher.domain.enums import PostStatus
from social_publisher.logging import get_logger
from social_publisher.services.publishing import PublishDispatcher
from social_publisher.services.scheduling import process_due_posts, run_publish_attempt
from social_publisher.utils.async_utils import run_async
from social_publisher.worker import celery_app

logger = get_logger(__name__)


@celery_app.task(bind=True, name="retry_publish")
def retry_publish_task(self: Any, post_id: str) -> dict[str, Any]:
    """Run one publish attempt for a post already claimed into PROCESSING.

    The attempt records its own outcome on the post, so this task never
    raises for publish failures and is not retried by Celery. A new attempt
    needs a new retry request.

    Args:
        post_id: UUID of the scheduled post.

    Returns:
        Dict with the post's final status.
    """
    task_id = self.request.id
    logger.info("retry_publish_started", task_id=task_id, post_id=post_id)

    with get_session_context() as session:
        post = run_async(run_publish_attempt(session, PublishDispatcher(), UUID(post_id)))
        if post is None:
            logger.warning("retry_publish_post_missing", task_id=task_id, post_id=post_id)
            return {"success": False, "post_id": post_id, "status": None}

        result = {
            "success": post.status != PostStatus.FAILED,
            "post_id": post_id,
            "status": post.status,
            "post_url": post.post_url,
            "failure_reason": post.failure_reason,
        }

    logger.info(
        "retry_publish_finished",
        task_id=task_id,
        post_id=post_id,
        status=result["status"],
    )
    return result


@celery_app.task(bind=True, name="process_due_posts")
def process_due_posts_task(self: Any, limit: int = 50) -> dict[str, Any]:
    """Publish every SCHEDULED post whose time has passed.

    Meant to be triggered periodically from outside (an admin call or the
    CLI). Each post records its own outcome.
    """
    task_id = self.request.id
    logger.info("process_due_posts_started", task_id=task_id, limit=limit)

    with get_session_context() as session:
        posts = run_async(process_due_posts(session, PublishDispatcher(), limit=limit))
        results = [
            {
                "post_id": str(post.id),
                "status": post.status,
                "post_url": post.post_url,
                "failure_reason": post.failure_reason,
            }
            for post in posts
        ]

    logger.info("process_due_posts_finished", task_id=task_id, processed=len(results))
    return {"processed": len(results), "results": results}
