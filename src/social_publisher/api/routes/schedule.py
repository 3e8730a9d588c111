"""Scheduled post endpoints."""

from fastapi import APIRouter, HTTPException, Query, status
from kombu.exceptions import OperationalError

from social_publisher.api.deps import CurrentUserDep, SessionDep, domain_errors, parse_uuid
from social_publisher.api.schemas import CamelModel, PostResponse, ScheduleBody
from social_publisher.db.session import get_session_context
from social_publisher.domain.enums import PostStatus
from social_publisher.domain.errors import TransientPublishError
from social_publisher.jobs.publish_tasks import retry_publish_task
from social_publisher.logging import get_logger
from social_publisher.services.scheduling import (
    MAX_PAGE_SIZE,
    begin_retry,
    create_scheduled_post,
    delete_scheduled_post,
    get_post,
    list_posts,
    release_claim,
)

router = APIRouter(prefix="/schedule", tags=["Schedule"])
logger = get_logger(__name__)


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int


class PostListResponse(CamelModel):
    scheduled_posts: list[PostResponse]
    pagination: Pagination


class ActionResponse(CamelModel):
    success: bool
    message: str


@router.post(
    "",
    response_model=PostResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a post",
)
def schedule_post(body: ScheduleBody, user_id: CurrentUserDep, session: SessionDep) -> PostResponse:
    account_id = parse_uuid(body.social_account_id, "account")
    video_id = parse_uuid(body.video_id, "video")

    with domain_errors():
        post = create_scheduled_post(
            session,
            user_id,
            account_id,
            video_id,
            scheduled_for=body.scheduled_for,
            caption=body.caption,
            hashtags=body.hashtags,
        )
    session.commit()
    return PostResponse.from_model(post)


@router.get(
    "",
    response_model=PostListResponse,
    summary="List posts",
    description="The caller's posts ordered by scheduled time, earliest first.",
)
def list_scheduled_posts(
    user_id: CurrentUserDep,
    session: SessionDep,
    status_filter: PostStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
) -> PostListResponse:
    result = list_posts(session, user_id, status=status_filter, page=page, limit=limit)
    return PostListResponse(
        scheduled_posts=[PostResponse.from_model(post) for post in result.posts],
        pagination=Pagination(
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        ),
    )


@router.get("/{post_id}", response_model=PostResponse, summary="Get post")
def get_scheduled_post(post_id: str, user_id: CurrentUserDep, session: SessionDep) -> PostResponse:
    post_uuid = parse_uuid(post_id, "post")
    with domain_errors():
        post = get_post(session, post_uuid, user_id)
    return PostResponse.from_model(post)


@router.delete("/{post_id}", response_model=ActionResponse, summary="Delete scheduled post")
def delete_post(post_id: str, user_id: CurrentUserDep, session: SessionDep) -> ActionResponse:
    post_uuid = parse_uuid(post_id, "post")
    with domain_errors():
        delete_scheduled_post(session, post_uuid, user_id)
    session.commit()
    return ActionResponse(success=True, message="Scheduled post deleted")


@router.post(
    "/{post_id}/retry",
    response_model=ActionResponse,
    summary="Retry a failed post",
    description=(
        "Starts a background publish attempt and returns immediately. The outcome "
        "is visible through the post detail and list endpoints."
    ),
)
def retry_post(post_id: str, user_id: CurrentUserDep) -> ActionResponse:
    post_uuid = parse_uuid(post_id, "post")

    # The claim must be committed before the task can observe PROCESSING
    with domain_errors(), get_session_context() as session:
        begin_retry(session, post_uuid, user_id)

    try:
        retry_publish_task.delay(str(post_uuid))
    except OperationalError as e:
        logger.error("retry_dispatch_failed", post_id=str(post_uuid), error=str(e))
        with get_session_context() as session:
            release_claim(
                session, post_uuid, TransientPublishError("Could not queue retry").failure_reason
            )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not queue the retry. Try again shortly.",
        )

    logger.info("retry_dispatched", post_id=str(post_uuid), user_id=user_id)
    return ActionResponse(success=True, message="Publishing retry initiated")
