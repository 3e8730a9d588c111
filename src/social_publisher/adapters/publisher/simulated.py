"""Simulated publisher for platforms without a real integration.

Only used when ``publish_simulation_enabled`` is on. Results are flagged
``simulated=True`` and ids carry a ``sim-`` prefix so they can never be
mistaken for real posts.
"""

import hashlib

from social_publisher.adapters.publisher.base import PublisherAdapter, PublishRequest
from social_publisher.domain.enums import Platform, PostStatus, PublishType
from social_publisher.domain.models import PublishResult
from social_publisher.logging import get_logger

logger = get_logger(__name__)

SIMULATION_REASON = "No {platform} integration; simulation mode is enabled"


def simulated_post_id(platform: Platform, request: PublishRequest) -> str:
    """Deterministic id derived from the platform and content."""
    digest = hashlib.sha256(
        "|".join(
            (platform.value, str(request.video_path), request.title, request.caption or "")
        ).encode("utf-8")
    ).hexdigest()
    return f"sim-{digest[:16]}"


class SimulatedPublisher(PublisherAdapter):
    """Stand-in that reports a plausible success without any network call."""

    simulated = True

    def __init__(self, platform: Platform) -> None:
        self._platform = platform

    @property
    def platform(self) -> Platform:
        return self._platform

    async def publish(self, request: PublishRequest, access_token: str) -> PublishResult:
        post_id = simulated_post_id(self._platform, request)
        reason = SIMULATION_REASON.format(platform=self._platform.value)
        logger.warning(
            "publish_simulated",
            platform=self._platform.value,
            post_id=post_id,
            reason=reason,
        )
        return PublishResult(
            platform=self._platform,
            publish_type=PublishType.SIMULATED,
            status=PostStatus.PUBLISHED,
            external_id=post_id,
            post_url=f"https://example.com/{self._platform.value}/post/{post_id}",
            simulated=True,
            simulation_reason=reason,
        )
