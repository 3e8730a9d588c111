"""Domain enumerations."""

from enum import StrEnum


class Platform(StrEnum):
    """Supported publishing platforms."""

    YOUTUBE = "youtube"
    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    TWITTER = "twitter"


class PostStatus(StrEnum):
    """Lifecycle status of a scheduled or published post."""

    SCHEDULED = "SCHEDULED"
    PROCESSING = "PROCESSING"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"
    DRAFT = "DRAFT"


class PublishMode(StrEnum):
    """How content is handed to the platform."""

    DIRECT_POST = "DIRECT_POST"
    INBOX_UPLOAD = "INBOX_UPLOAD"


class PublishType(StrEnum):
    """What actually happened on the platform."""

    DIRECT_POST = "DIRECT_POST"
    INBOX_SHARE = "INBOX_SHARE"
    SIMULATED = "SIMULATED"


class ChallengeEncoding(StrEnum):
    """Encoding of the SHA-256 digest sent as the PKCE code_challenge."""

    BASE64URL = "base64url"
    HEX = "hex"


class PublishErrorKind(StrEnum):
    """Failure classes, each with its own HTTP status and remediation."""

    CONTENT_VALIDATION = "content_validation"
    SCOPE_INSUFFICIENT = "scope_insufficient"
    QUOTA_EXCEEDED = "quota_exceeded"
    TRANSIENT = "transient"
    REAUTHORIZATION_REQUIRED = "reauthorization_required"
    CONTENT_NOT_FOUND = "content_not_found"
    INBOX_LIMIT = "inbox_limit"
    NOT_SUPPORTED = "not_supported"


class AuthorizationOutcome(StrEnum):
    """Error codes carried back to the UI after an authorization attempt."""

    PLATFORM_NOT_CONFIGURED = "platform_not_configured"
    INVALID_REQUEST = "invalid_request"
    INVALID_STATE = "invalid_state"
    PLATFORM_MISMATCH = "platform_mismatch"
    MISSING_CODE_VERIFIER = "missing_code_verifier"
    CODE_CHALLENGE_ERROR = "code_challenge_error"
    ACCESS_DENIED = "access_denied"
    TOKEN_EXCHANGE = "token_exchange"
    SAVE_FAILED = "save_failed"


class AuthorizationPhase(StrEnum):
    """Where an authorization attempt ended up."""

    REDIRECTED = "redirected"
    SAVED = "saved"
    REJECTED = "rejected"
