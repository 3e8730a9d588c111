"""Domain exceptions for publishing and the post lifecycle."""

from typing import Any, ClassVar

from social_publisher.domain.enums import PostStatus, PublishErrorKind


class PublishError(Exception):
    """Base class for typed publish failures.

    Each subclass fixes the failure class, the HTTP status the API answers
    with, and the remediation shown to the user. ``detail`` keeps the
    upstream message for diagnostics.
    """

    kind: ClassVar[PublishErrorKind] = PublishErrorKind.TRANSIENT
    status_code: ClassVar[int] = 502
    message: ClassVar[str] = "Publishing failed. You can retry this post."

    def __init__(self, detail: str | None = None, *, metadata: dict[str, Any] | None = None):
        self.detail = detail
        self.metadata = metadata or {}
        super().__init__(self.failure_reason)

    @property
    def retryable(self) -> bool:
        return self.kind == PublishErrorKind.TRANSIENT

    @property
    def failure_reason(self) -> str:
        """Human-readable text stored on the post record."""
        if self.detail:
            return f"{self.message} ({self.detail})"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "details": self.detail,
            "kind": self.kind.value,
            "retryable": self.retryable,
            **self.metadata,
        }


class ReauthorizationRequired(PublishError):
    kind = PublishErrorKind.REAUTHORIZATION_REQUIRED
    status_code = 401
    message = "Account authorization expired. Please reconnect the account."


class ContentNotFound(PublishError):
    kind = PublishErrorKind.CONTENT_NOT_FOUND
    status_code = 404
    message = "Video file not found"


class InboxLimitReached(PublishError):
    kind = PublishErrorKind.INBOX_LIMIT
    status_code = 422
    message = (
        "TikTok inbox limit reached. Complete or delete pending drafts in the "
        "TikTok app before sending more."
    )


class ContentValidationError(PublishError):
    kind = PublishErrorKind.CONTENT_VALIDATION
    status_code = 422
    message = (
        "The platform rejected this video. Fix its size, format or dimensions "
        "before trying again."
    )


class ScopeInsufficientError(PublishError):
    kind = PublishErrorKind.SCOPE_INSUFFICIENT
    status_code = 401
    message = (
        "This account is missing publishing permissions. Disconnect it and "
        "reconnect, approving all requested permissions."
    )


class QuotaExceededError(PublishError):
    kind = PublishErrorKind.QUOTA_EXCEEDED
    status_code = 403
    message = (
        "The platform account or app has reached its usage limit. Check quotas "
        "in the platform's developer console."
    )


class TransientPublishError(PublishError):
    kind = PublishErrorKind.TRANSIENT
    status_code = 502
    message = "Publishing failed. You can retry this post."


class PlatformNotSupportedError(PublishError):
    kind = PublishErrorKind.NOT_SUPPORTED
    status_code = 501
    message = "Publishing to this platform is not available yet."


PUBLISH_ERRORS_BY_KIND: dict[PublishErrorKind, type[PublishError]] = {
    cls.kind: cls
    for cls in (
        ReauthorizationRequired,
        ContentNotFound,
        InboxLimitReached,
        ContentValidationError,
        ScopeInsufficientError,
        QuotaExceededError,
        TransientPublishError,
        PlatformNotSupportedError,
    )
}


class PlatformAPIError(Exception):
    """Raised by publisher adapters when a platform call fails.

    ``code`` is the platform's structured error code when the response had one.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.payload = payload


class PostError(Exception):
    """Base for post lifecycle errors."""


class InvalidTransitionError(PostError):
    def __init__(self, current: PostStatus, target: PostStatus):
        super().__init__(f"Cannot move post from {current} to {target}")
        self.current = current
        self.target = target


class PostNotFoundError(PostError):
    pass


class PostAccessDenied(PostError):
    pass


class RetryNotAllowedError(PostError):
    """Raised when a post is not in a state, or failure class, that permits retry."""

    def __init__(self, message: str, *, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class ConcurrentAttemptError(PostError):
    """Another attempt claimed the post first."""


class SchedulingValidationError(PostError):
    pass
