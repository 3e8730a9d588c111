"""Scheduled-post lifecycle.

Post status is only changed here, and only along the transitions in
``domain.transitions``. Entering PROCESSING from an existing record is a
compare-and-swap on the status column, so at most one attempt runs per
post at a time.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from social_publisher.db.models import ScheduledPostModel, SocialAccountModel, VideoModel
from social_publisher.domain.enums import PostStatus, PublishErrorKind, PublishMode
from social_publisher.domain.errors import (
    ConcurrentAttemptError,
    ContentNotFound,
    PostAccessDenied,
    PostNotFoundError,
    PublishError,
    ReauthorizationRequired,
    RetryNotAllowedError,
    SchedulingValidationError,
)
from social_publisher.domain.models import PublishResult
from social_publisher.domain.transitions import ensure_transition, sources_for
from social_publisher.services.accounts import AccountNotFoundError, get_owned_account
from social_publisher.services.media import get_owned_video, require_video_file
from social_publisher.services.publishing import PublishDispatcher, classify_failure_reason
from social_publisher.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass
class PostPage:
    """One page of posts plus pagination counters."""

    posts: list[ScheduledPostModel]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


# =============================================================================
# Queries
# =============================================================================


def get_post(session: Session, post_id: UUID, user_id: str) -> ScheduledPostModel:
    """Load a post and verify ownership.

    Raises:
        PostNotFoundError: If no post has this id.
        PostAccessDenied: If the post belongs to another user.
    """
    post = session.get(ScheduledPostModel, post_id)
    if post is None:
        raise PostNotFoundError(f"No post found with ID '{post_id}'")
    if post.user_id != user_id:
        raise PostAccessDenied(f"Post '{post_id}' belongs to another user")
    return post


def list_posts(
    session: Session,
    user_id: str,
    status: PostStatus | None = None,
    page: int = 1,
    limit: int = 10,
) -> PostPage:
    """List a user's posts ordered by scheduled time, earliest first."""
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    conditions = [ScheduledPostModel.user_id == user_id]
    if status is not None:
        conditions.append(ScheduledPostModel.status == status.value)

    total = session.execute(
        select(func.count()).select_from(ScheduledPostModel).where(*conditions)
    ).scalar_one()

    posts = (
        session.execute(
            select(ScheduledPostModel)
            .where(*conditions)
            .order_by(ScheduledPostModel.scheduled_for.asc(), ScheduledPostModel.created_at.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return PostPage(posts=list(posts), total=total, page=page, limit=limit)


# =============================================================================
# Transitions
# =============================================================================


def transition_post(
    post: ScheduledPostModel,
    target: PostStatus,
    **fields: Any,
) -> ScheduledPostModel:
    """Move a loaded post to ``target`` and set any extra columns.

    Raises:
        InvalidTransitionError: If the move is not allowed.
    """
    ensure_transition(post.status, target)
    post.status = target.value
    for name, value in fields.items():
        setattr(post, name, value)
    return post


def claim_for_attempt(
    session: Session,
    post_id: UUID,
    from_states: frozenset[PostStatus] | None = None,
) -> bool:
    """Atomically move a post into PROCESSING.

    Returns False if the post was not in one of ``from_states`` at the time
    of the update, meaning another attempt won.
    """
    allowed = from_states if from_states is not None else sources_for(PostStatus.PROCESSING)
    for state in allowed:
        ensure_transition(state, PostStatus.PROCESSING)

    result = session.execute(
        update(ScheduledPostModel)
        .where(
            ScheduledPostModel.id == post_id,
            ScheduledPostModel.status.in_([state.value for state in allowed]),
        )
        .values(status=PostStatus.PROCESSING.value, failure_reason=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def record_success(post: ScheduledPostModel, result: PublishResult) -> ScheduledPostModel:
    return transition_post(
        post,
        result.status,
        post_url=result.post_url,
        external_post_id=result.external_id,
        failure_reason=None,
    )


def record_failure(post: ScheduledPostModel, reason: str) -> ScheduledPostModel:
    return transition_post(post, PostStatus.FAILED, failure_reason=reason)


def release_claim(session: Session, post_id: UUID, reason: str) -> ScheduledPostModel | None:
    """Fail a post whose claimed attempt will never run, so it can be retried."""
    post = session.get(ScheduledPostModel, post_id, populate_existing=True)
    if post is None or post.status != PostStatus.PROCESSING.value:
        return post
    record_failure(post, reason)
    session.flush()
    logger.warning(f"Released claim on post {post_id}: {reason}")
    return post


# =============================================================================
# Operations
# =============================================================================


def _active_account(session: Session, account_id: UUID, user_id: str) -> SocialAccountModel:
    account = get_owned_account(session, account_id, user_id)
    if not account.is_active:
        raise AccountNotFoundError(f"Account '{account_id}' is not connected")
    return account


def create_scheduled_post(
    session: Session,
    user_id: str,
    social_account_id: UUID,
    video_id: UUID,
    scheduled_for: datetime,
    caption: str | None = None,
    hashtags: list[str] | None = None,
) -> ScheduledPostModel:
    """Persist a publish intent in SCHEDULED.

    Raises:
        SchedulingValidationError: If ``scheduled_for`` is not in the future.
        AccountNotFoundError / AccountAccessDenied: Bad account reference.
        VideoNotFoundError: Bad video reference.
        ContentNotFound: Video file missing.
    """
    scheduled_for = ensure_utc(scheduled_for)
    if scheduled_for <= utcnow():
        raise SchedulingValidationError("Scheduled time must be in the future")

    _active_account(session, social_account_id, user_id)
    video = get_owned_video(session, video_id, user_id)
    require_video_file(video)

    post = ScheduledPostModel(
        user_id=user_id,
        social_account_id=social_account_id,
        video_id=video_id,
        caption=caption,
        hashtags=list(hashtags or []),
        scheduled_for=scheduled_for,
        status=PostStatus.SCHEDULED.value,
    )
    session.add(post)
    session.flush()
    logger.info(f"Scheduled post {post.id} for {scheduled_for.isoformat()}")
    return post


def delete_scheduled_post(session: Session, post_id: UUID, user_id: str) -> None:
    """Remove a publish intent that has not started yet."""
    post = get_post(session, post_id, user_id)
    if post.status != PostStatus.SCHEDULED.value:
        raise SchedulingValidationError("Only scheduled posts can be deleted")
    session.delete(post)
    session.flush()
    logger.info(f"Deleted scheduled post {post_id}")


async def publish_now(
    session: Session,
    dispatcher: PublishDispatcher,
    user_id: str,
    social_account_id: UUID,
    video_id: UUID,
    caption: str | None = None,
    hashtags: list[str] | None = None,
    mode: PublishMode = PublishMode.DIRECT_POST,
    options: dict[str, Any] | None = None,
) -> tuple[ScheduledPostModel, PublishResult]:
    """Publish inline within the request.

    Checks that fail before upload (ownership, disconnected account, missing
    file, inbox ceiling) raise without creating a record. Once the record
    exists it always ends in PUBLISHED, DRAFT or FAILED, and a PublishError
    raised from here carries the post id in its metadata.
    """
    account = get_owned_account(session, social_account_id, user_id)
    if not account.is_active:
        raise ReauthorizationRequired("Account is disconnected")
    video = get_owned_video(session, video_id, user_id)

    prepared = await dispatcher.prepare(
        session,
        account,
        video,
        caption=caption,
        hashtags=hashtags,
        mode=mode,
        options=options,
    )

    post = ScheduledPostModel(
        user_id=user_id,
        social_account_id=account.id,
        video_id=video.id,
        caption=caption,
        hashtags=list(hashtags or []),
        scheduled_for=utcnow(),
        status=PostStatus.PROCESSING.value,
    )
    session.add(post)
    session.commit()

    try:
        result = await dispatcher.execute(prepared)
    except PublishError as e:
        record_failure(post, e.failure_reason)
        session.commit()
        e.metadata["postId"] = str(post.id)
        raise
    except Exception as e:
        logger.exception(f"Unexpected error publishing post {post.id}")
        session.rollback()
        record_failure(post, f"Unexpected error: {type(e).__name__}")
        session.commit()
        raise

    record_success(post, result)
    session.commit()
    return post, result


def begin_retry(session: Session, post_id: UUID, user_id: str) -> ScheduledPostModel:
    """Move a FAILED post back to PROCESSING so a background attempt can run.

    Raises:
        PostNotFoundError / PostAccessDenied: Bad post reference.
        RetryNotAllowedError: Post not FAILED, or its failure is not retryable.
        ConcurrentAttemptError: Another retry claimed the post first.
    """
    post = get_post(session, post_id, user_id)
    if post.status != PostStatus.FAILED.value:
        raise RetryNotAllowedError("Can only retry failed posts")

    kind = classify_failure_reason(post.failure_reason)
    if kind != PublishErrorKind.TRANSIENT:
        raise RetryNotAllowedError(
            f"This failure ({kind.value}) will not succeed on retry: {post.failure_reason}",
            status_code=422,
        )

    if not claim_for_attempt(session, post.id, frozenset({PostStatus.FAILED})):
        raise ConcurrentAttemptError(f"Post '{post_id}' is already being retried")

    session.commit()
    session.refresh(post)
    logger.info(f"Retry initiated for post {post.id}")
    return post


async def run_publish_attempt(
    session: Session,
    dispatcher: PublishDispatcher,
    post_id: UUID,
) -> ScheduledPostModel | None:
    """Run the attempt for a claimed post. Always ends with a terminal write."""
    # The claim is a bulk update, so any copy already in the session is stale
    post = session.get(ScheduledPostModel, post_id, populate_existing=True)
    if post is None:
        logger.warning(f"Post {post_id} vanished before its publish attempt")
        return None
    if post.status != PostStatus.PROCESSING.value:
        logger.warning(f"Post {post_id} is {post.status}, not PROCESSING; skipping attempt")
        return post

    try:
        account = session.get(SocialAccountModel, post.social_account_id)
        video = session.get(VideoModel, post.video_id)
        if account is None:
            raise ReauthorizationRequired("Account record no longer exists")
        if video is None:
            raise ContentNotFound()

        prepared = await dispatcher.prepare(
            session,
            account,
            video,
            caption=post.caption,
            hashtags=post.hashtags,
        )
        result = await dispatcher.execute(prepared)
    except PublishError as e:
        record_failure(post, e.failure_reason)
    except Exception as e:
        logger.exception(f"Unexpected error in publish attempt for post {post_id}")
        session.rollback()
        post = session.get(ScheduledPostModel, post_id)
        record_failure(post, f"Unexpected error: {type(e).__name__}")
    else:
        record_success(post, result)

    session.commit()
    logger.info(f"Publish attempt for post {post_id} finished as {post.status}")
    return post


def due_post_ids(session: Session, now: datetime | None = None, limit: int = 50) -> list[UUID]:
    """IDs of SCHEDULED posts whose time has come, earliest first."""
    query = (
        select(ScheduledPostModel.id)
        .where(
            ScheduledPostModel.status == PostStatus.SCHEDULED.value,
            ScheduledPostModel.scheduled_for <= (now or utcnow()),
        )
        .order_by(ScheduledPostModel.scheduled_for.asc())
        .limit(limit)
    )
    return list(session.execute(query).scalars())


async def process_due_posts(
    session: Session,
    dispatcher: PublishDispatcher,
    now: datetime | None = None,
    limit: int = 50,
) -> list[ScheduledPostModel]:
    """Publish every due SCHEDULED post, one attempt each.

    Each post is claimed out of SCHEDULED before its attempt runs. A post
    claimed elsewhere first (another sweep, or a delete) is skipped.

    Returns:
        The posts attempted here, each in a terminal status.
    """
    attempted: list[ScheduledPostModel] = []
    for post_id in due_post_ids(session, now=now, limit=limit):
        if not claim_for_attempt(session, post_id, frozenset({PostStatus.SCHEDULED})):
            logger.info(f"Post {post_id} was claimed elsewhere; skipping")
            continue
        session.commit()

        post = await run_publish_attempt(session, dispatcher, post_id)
        if post is not None:
            attempted.append(post)

    logger.info(f"Processed {len(attempted)} due posts")
    return attempted
