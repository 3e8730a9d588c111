"""Domain models - pure Python classes independent of database."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from social_publisher.domain.enums import Platform, PostStatus, PublishType

LIMITED_ACCESS_SUFFIX = " (Limited Access)"


@dataclass(frozen=True)
class ParsedState:
    """Fields recovered from an OAuth state value."""

    user_id: str
    platform: Platform
    nonce: str


@dataclass(frozen=True)
class PlatformCredentials:
    """OAuth client credentials for one platform. Empty strings mean unset."""

    client_id: str = ""
    client_secret: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class TokenResult:
    """Normalized token response, whatever shape the platform returned."""

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    granted_scopes: list[str] | None = None
    # Platform-side user identifier when the token response carries one (TikTok open_id)
    subject: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class AccountSummary:
    """Public view of a connected account. Never carries tokens."""

    id: UUID
    platform: Platform
    account_name: str
    is_active: bool
    limited_access: bool
    token_expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class PublishResult:
    """Outcome of a successful publish or inbox upload."""

    platform: Platform
    publish_type: PublishType
    status: PostStatus
    external_id: str | None = None
    post_url: str | None = None
    simulated: bool = False
    simulation_reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def is_limited_account_name(account_name: str) -> bool:
    """Whether an account was saved without all required scopes."""
    return account_name.endswith(LIMITED_ACCESS_SUFFIX)
