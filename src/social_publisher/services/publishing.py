"""Publish dispatcher and failure classification.

A publish attempt has two halves:

``prepare``  token refresh, file presence, adapter selection and the
             adapter's preflight (e.g. the TikTok inbox ceiling). Failures
             here happen before any post record exists.
``execute``  the upload strategy itself. Failures are classified into a
             PublishError so the caller can record them on the post.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from social_publisher.adapters.publisher import PublisherAdapter, PublishRequest, get_publisher
from social_publisher.config import Settings, settings
from social_publisher.db.models import ScheduledPostModel, SocialAccountModel, VideoModel
from social_publisher.domain.enums import Platform, PostStatus, PublishErrorKind, PublishMode
from social_publisher.domain.errors import (
    PUBLISH_ERRORS_BY_KIND,
    PlatformAPIError,
    PlatformNotSupportedError,
    PublishError,
    ScopeInsufficientError,
    TransientPublishError,
)
from social_publisher.domain.models import PublishResult, is_limited_account_name
from social_publisher.logging import get_logger
from social_publisher.services.accounts import get_access_token
from social_publisher.services.credentials import credential_store_for
from social_publisher.services.media import require_video_file
from social_publisher.services.token_exchange import (
    PlatformNotConfiguredError,
    TokenExchangeClient,
)

logger = get_logger(__name__)

# How many recent inbox uploads are checked against the TikTok inbox ceiling
PENDING_INBOX_LOOKBACK = 20

# Structured platform error codes (TikTok error.code / fail_reason, Google reason)
ERROR_CODES: dict[PublishErrorKind, frozenset[str]] = {
    PublishErrorKind.CONTENT_VALIDATION: frozenset(
        {
            "picture_size_check_failed",
            "file_format_check_failed",
            "duration_check_failed",
            "frame_rate_check_failed",
            "video_pull_failed",
            "invalid_file_upload",
            "invalidVideoMetadata",
            "mediaBodyRequired",
            "invalidTitle",
            "invalidDescription",
        }
    ),
    PublishErrorKind.SCOPE_INSUFFICIENT: frozenset(
        {"scope_not_authorized", "access_denied", "insufficientPermissions", "forbidden"}
    ),
    PublishErrorKind.QUOTA_EXCEEDED: frozenset(
        {
            "reached_active_user_cap",
            "rate_limit_exceeded",
            "spam_risk_too_many_posts",
            "spam_risk_user_banned_from_posting",
            "quotaExceeded",
            "uploadLimitExceeded",
            "dailyLimitExceeded",
            "rateLimitExceeded",
        }
    ),
    PublishErrorKind.REAUTHORIZATION_REQUIRED: frozenset(
        {"access_token_invalid", "authError", "invalid_grant"}
    ),
}

# Last-resort substring matching over free-text upstream messages
ERROR_FRAGMENTS: tuple[tuple[PublishErrorKind, tuple[str, ...]], ...] = (
    (
        PublishErrorKind.CONTENT_VALIDATION,
        ("video cannot be used", "picture_size_check_failed", "tiktok rejected"),
    ),
    (
        PublishErrorKind.SCOPE_INSUFFICIENT,
        ("scope_not_authorized", "access_denied", "permission", "authorization"),
    ),
    (
        PublishErrorKind.QUOTA_EXCEEDED,
        ("reached_active_user_cap", "user limit", "quota"),
    ),
)


def _kind_from_fragments(text: str) -> PublishErrorKind | None:
    lowered = text.lower()
    for kind, fragments in ERROR_FRAGMENTS:
        if any(fragment in lowered for fragment in fragments):
            return kind
    return None


def classify_platform_error(error: PlatformAPIError) -> PublishError:
    """Turn an adapter failure into a typed PublishError.

    Structured codes win; the HTTP status and then substring matching over
    the message are fallbacks. Anything unrecognized is transient.
    """
    kind: PublishErrorKind | None = None
    if error.code:
        kind = next(
            (candidate for candidate, codes in ERROR_CODES.items() if error.code in codes),
            None,
        )
    if kind is None and error.status_code == 401:
        kind = PublishErrorKind.REAUTHORIZATION_REQUIRED
    if kind is None:
        kind = _kind_from_fragments(error.message)
    if kind is None and error.status_code == 429:
        kind = PublishErrorKind.QUOTA_EXCEEDED

    error_cls = PUBLISH_ERRORS_BY_KIND.get(kind or PublishErrorKind.TRANSIENT, TransientPublishError)
    return error_cls(error.message)


def classify_failure_reason(reason: str | None) -> PublishErrorKind:
    """Recover the failure class from a stored failure reason."""
    if not reason:
        return PublishErrorKind.TRANSIENT
    for kind, error_cls in PUBLISH_ERRORS_BY_KIND.items():
        if reason.startswith(error_cls.message):
            return kind
    return _kind_from_fragments(reason) or PublishErrorKind.TRANSIENT


@dataclass
class PreparedPublish:
    """Everything needed to run the upload strategy."""

    account: SocialAccountModel
    publisher: PublisherAdapter
    request: PublishRequest
    access_token: str

    @property
    def platform(self) -> Platform:
        return Platform(self.account.platform)


def pending_inbox_ids(session: Session, account_id: Any) -> list[str]:
    """Platform ids of the account's recent inbox uploads."""
    query = (
        select(ScheduledPostModel.external_post_id)
        .where(
            ScheduledPostModel.social_account_id == account_id,
            ScheduledPostModel.status == PostStatus.DRAFT.value,
            ScheduledPostModel.external_post_id.is_not(None),
        )
        .order_by(ScheduledPostModel.created_at.desc())
        .limit(PENDING_INBOX_LOOKBACK)
    )
    return [publish_id for publish_id in session.execute(query).scalars() if publish_id]


class PublishDispatcher:
    """Selects and drives the platform upload strategy for an account."""

    def __init__(
        self,
        token_client: TokenExchangeClient | None = None,
        publisher_factory: Callable[[Platform], PublisherAdapter] | None = None,
        config: Settings | None = None,
    ):
        self._token_client = token_client
        self._config = config or settings
        self._publisher_factory = publisher_factory or (
            lambda platform: get_publisher(platform, self._config)
        )

    def _access_token(self, session: Session, account: SocialAccountModel) -> str:
        client = self._token_client or TokenExchangeClient(credential_store_for(session))
        try:
            return get_access_token(session, account, client)
        except PlatformNotConfiguredError as e:
            raise TransientPublishError(str(e)) from e

    async def prepare(
        self,
        session: Session,
        account: SocialAccountModel,
        video: VideoModel,
        *,
        caption: str | None = None,
        hashtags: list[str] | None = None,
        mode: PublishMode = PublishMode.DIRECT_POST,
        options: dict[str, Any] | None = None,
    ) -> PreparedPublish:
        """Run every check that precedes the upload.

        Raises:
            ReauthorizationRequired: Account inactive or refresh failed.
            ContentNotFound: Video file missing.
            PlatformNotSupportedError: No integration, or mode unavailable.
            InboxLimitReached: Too many pending TikTok inbox items.
        """
        # Refresh uses a blocking HTTP client; keep it off the event loop
        loop = asyncio.get_running_loop()
        access_token = await loop.run_in_executor(None, self._access_token, session, account)
        video_path = require_video_file(video, self._config.media_root)

        platform = Platform(account.platform)
        publisher = self._publisher_factory(platform)
        if mode not in publisher.supported_modes:
            await publisher.aclose()
            raise PlatformNotSupportedError(f"{mode.value} is not available for {platform.value}")

        request = PublishRequest(
            video_path=video_path,
            title=video.title,
            caption=caption,
            hashtags=list(hashtags or []),
            mode=mode,
            options=dict(options or {}),
            pending_inbox_ids=(
                pending_inbox_ids(session, account.id)
                if mode == PublishMode.INBOX_UPLOAD
                else []
            ),
        )

        try:
            await publisher.preflight(request, access_token)
        except PlatformAPIError as e:
            await publisher.aclose()
            raise classify_platform_error(e) from e
        except httpx.HTTPError as e:
            await publisher.aclose()
            raise TransientPublishError(f"{type(e).__name__}: {e}") from e
        except PublishError:
            await publisher.aclose()
            raise

        return PreparedPublish(
            account=account,
            publisher=publisher,
            request=request,
            access_token=access_token,
        )

    async def execute(self, prepared: PreparedPublish) -> PublishResult:
        """Run the upload strategy.

        Raises:
            PublishError: Classified failure; the caller records it.
        """
        account = prepared.account
        request = prepared.request
        log = logger.bind(
            platform=prepared.platform.value,
            account_id=str(account.id),
            mode=request.mode.value,
        )

        try:
            if request.mode == PublishMode.DIRECT_POST and is_limited_account_name(
                account.account_name
            ):
                raise ScopeInsufficientError(
                    "Account was connected without all publishing permissions"
                )

            log.info("publish_started", simulated=prepared.publisher.simulated)
            result = await prepared.publisher.publish(request, prepared.access_token)
        except PublishError as e:
            log.warning("publish_failed", kind=e.kind.value, detail=e.detail)
            raise
        except PlatformAPIError as e:
            classified = classify_platform_error(e)
            log.warning(
                "publish_failed",
                kind=classified.kind.value,
                code=e.code,
                status_code=e.status_code,
                detail=e.message,
            )
            raise classified from e
        except httpx.TimeoutException as e:
            log.warning("publish_timed_out", error=str(e))
            raise TransientPublishError(f"Platform timed out: {type(e).__name__}") from e
        except httpx.HTTPError as e:
            log.warning("publish_transport_error", error=str(e))
            raise TransientPublishError(f"{type(e).__name__}: {e}") from e
        finally:
            await prepared.publisher.aclose()

        log.info(
            "publish_completed",
            status=result.status.value,
            external_id=result.external_id,
            simulated=result.simulated,
        )
        return result
