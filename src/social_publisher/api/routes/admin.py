"""Admin endpoints: platform client credentials and the due-post sweep."""

from typing import Any

from fastapi import APIRouter, HTTPException, status
from kombu.exceptions import OperationalError
from pydantic import Field

from social_publisher.api.deps import AdminDep, SessionDep
from social_publisher.api.schemas import CamelModel
from social_publisher.domain.enums import Platform
from social_publisher.jobs.publish_tasks import process_due_posts_task
from social_publisher.logging import get_logger
from social_publisher.services.credentials import (
    get_masked_credentials,
    update_platform_credentials,
)

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[AdminDep])
logger = get_logger(__name__)


class CredentialsUpdate(CamelModel):
    """New client credentials for one platform.

    Sending back the masked secret from GET leaves the stored secret as is.
    """

    platform: Platform
    client_id: str = Field(..., min_length=1)
    client_secret: str | None = None


@router.get(
    "/social-credentials",
    summary="Get platform credentials",
    description="Effective client credentials per platform. Secrets are masked.",
)
def get_social_credentials(session: SessionDep) -> dict[str, Any]:
    return {"credentials": get_masked_credentials(session)}


@router.put(
    "/social-credentials",
    summary="Update platform credentials",
)
def update_social_credentials(body: CredentialsUpdate, session: SessionDep) -> dict[str, Any]:
    update_platform_credentials(
        session,
        body.platform,
        client_id=body.client_id,
        client_secret=body.client_secret,
    )
    session.commit()
    logger.info("admin_credentials_saved", platform=body.platform.value)
    return {"success": True, "credentials": get_masked_credentials(session)}


@router.post(
    "/process-due-posts",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Publish due scheduled posts",
    description="Queues a sweep that publishes every scheduled post whose time has passed.",
)
def process_due_posts(limit: int = 50) -> dict[str, Any]:
    try:
        task = process_due_posts_task.delay(limit)
    except OperationalError as e:
        logger.error("process_due_posts_dispatch_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not queue the sweep. Try again shortly.",
        )
    logger.info("process_due_posts_dispatched", task_id=task.id)
    return {"success": True, "taskId": task.id}
