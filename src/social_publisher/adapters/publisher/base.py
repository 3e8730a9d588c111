"""Base interface for platform publishing adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from social_publisher.domain.enums import Platform, PublishMode
from social_publisher.domain.errors import PlatformAPIError
from social_publisher.domain.models import PublishResult

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
}


@dataclass
class PublishRequest:
    """Content and options for one publish attempt."""

    video_path: Path
    title: str
    caption: str | None = None
    hashtags: list[str] = field(default_factory=list)
    mode: PublishMode = PublishMode.DIRECT_POST
    options: dict[str, Any] = field(default_factory=dict)
    # Platform ids of this account's earlier inbox uploads (DRAFT posts)
    pending_inbox_ids: list[str] = field(default_factory=list)

    def caption_with_hashtags(self, max_length: int | None = None) -> str:
        """Caption (or title) followed by space-separated #hashtags."""
        text = self.caption or self.title
        tags = " ".join(f"#{tag.lstrip('#').replace(' ', '')}" for tag in self.hashtags if tag)
        full = f"{text} {tags}".strip() if tags else text
        return full[:max_length] if max_length else full


class PublisherAdapter(ABC):
    """Abstract base class for platform publishing adapters.

    Implementations:
    - YouTubePublisher: resumable upload, then make public
    - TikTokPublisher: direct post or inbox upload via the Content Posting API
    - SimulatedPublisher: labeled stand-in for platforms without an integration
    """

    simulated: bool = False
    supported_modes: frozenset[PublishMode] = frozenset({PublishMode.DIRECT_POST})

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """The platform this adapter publishes to."""
        ...

    async def preflight(self, request: PublishRequest, access_token: str) -> None:
        """Checks that must pass before a post record is created.

        Raises a PublishError subclass to refuse the attempt up front.
        """
        return None

    @abstractmethod
    async def publish(self, request: PublishRequest, access_token: str) -> PublishResult:
        """Upload and publish.

        Returns:
            PublishResult with status PUBLISHED, or DRAFT for inbox uploads.

        Raises:
            PlatformAPIError: If the platform rejects a step.
            PublishError: For failures the adapter can classify itself.
            httpx.HTTPError: For timeouts and transport failures.
        """
        ...

    async def aclose(self) -> None:
        """Release HTTP resources."""
        return None


def content_type_for(path: Path) -> str:
    return CONTENT_TYPES.get(path.suffix.lower(), "video/mp4")


def safe_json(response: httpx.Response) -> dict[str, Any]:
    """Parse a JSON object body, or return an empty dict."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def raise_for_platform_status(response: httpx.Response, step: str) -> None:
    """Raise PlatformAPIError for non-2xx responses, keeping the body."""
    if response.is_success:
        return
    data = safe_json(response)
    error = data.get("error")
    code = None
    message = response.text[:500]
    if isinstance(error, dict):
        code = error.get("code") or None
        message = error.get("message") or message
        reasons = [e.get("reason") for e in error.get("errors", []) if isinstance(e, dict)]
        if reasons and reasons[0]:
            code = reasons[0]
    elif isinstance(error, str):
        code = error
        message = data.get("error_description") or message
    raise PlatformAPIError(
        f"{step} failed ({response.status_code}): {message}",
        code=code,
        status_code=response.status_code,
        payload=data or None,
    )
