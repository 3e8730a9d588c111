"""Platform publishing adapters."""

from social_publisher.adapters.publisher.base import PublisherAdapter, PublishRequest
from social_publisher.adapters.publisher.simulated import SimulatedPublisher
from social_publisher.adapters.publisher.tiktok import TikTokPublisher
from social_publisher.adapters.publisher.youtube import YouTubePublisher
from social_publisher.config import Settings, settings
from social_publisher.domain.enums import Platform
from social_publisher.domain.errors import PlatformNotSupportedError

# Platforms with a real integration
PUBLISHERS: dict[Platform, type[PublisherAdapter]] = {
    Platform.YOUTUBE: YouTubePublisher,
    Platform.TIKTOK: TikTokPublisher,
}


def get_publisher(platform: Platform | str, config: Settings | None = None) -> PublisherAdapter:
    """Create the adapter for a platform.

    Platforms without an integration get a SimulatedPublisher when simulation
    is enabled.

    Raises:
        PlatformNotSupportedError: If there is no integration and simulation is off.
    """
    config = config or settings
    platform = Platform(platform)
    publisher_cls = PUBLISHERS.get(platform)
    if publisher_cls is not None:
        return publisher_cls(config=config)
    if config.publish_simulation_enabled:
        return SimulatedPublisher(platform)
    raise PlatformNotSupportedError(f"No {platform.value} integration")


__all__ = [
    "PUBLISHERS",
    "PublishRequest",
    "PublisherAdapter",
    "SimulatedPublisher",
    "TikTokPublisher",
    "YouTubePublisher",
    "get_publisher",
]
