"""Domain models and business logic."""

from social_publisher.domain.enums import (
    AuthorizationOutcome,
    AuthorizationPhase,
    ChallengeEncoding,
    Platform,
    PostStatus,
    PublishErrorKind,
    PublishMode,
    PublishType,
)
from social_publisher.domain.models import (
    AccountSummary,
    ParsedState,
    PlatformCredentials,
    PublishResult,
    TokenResult,
)
from social_publisher.domain.platforms import PROFILES, PlatformProfile, get_profile

__all__ = [
    "PROFILES",
    "AccountSummary",
    "AuthorizationOutcome",
    "AuthorizationPhase",
    "ChallengeEncoding",
    "ParsedState",
    "Platform",
    "PlatformCredentials",
    "PlatformProfile",
    "PostStatus",
    "PublishErrorKind",
    "PublishMode",
    "PublishResult",
    "PublishType",
    "TokenResult",
    "get_profile",
]
