"""YouTube publisher using the YouTube Data API v3.

Direct post is two calls: a resumable upload that creates the video as
private, then a ``videos?part=status`` update that makes it public.
"""

import logging
from typing import Any

import httpx

from social_publisher.adapters.publisher.base import (
    PublisherAdapter,
    PublishRequest,
    content_type_for,
    raise_for_platform_status,
    safe_json,
)
from social_publisher.config import Settings, settings
from social_publisher.domain.enums import Platform, PostStatus, PublishType
from social_publisher.domain.errors import PlatformAPIError
from social_publisher.domain.models import PublishResult

logger = logging.getLogger(__name__)

YOUTUBE_UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
YOUTUBE_VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 5000
MAX_TAGS_TOTAL_LENGTH = 500
# People & Blogs
DEFAULT_CATEGORY_ID = "22"


def build_video_resource(request: PublishRequest) -> dict[str, Any]:
    """Snippet and status for the initial (private) upload."""
    tags: list[str] = []
    total_length = 0
    for tag in (t.lstrip("#") for t in request.hashtags):
        if tag and total_length + len(tag) <= MAX_TAGS_TOTAL_LENGTH:
            tags.append(tag)
            total_length += len(tag)

    snippet: dict[str, Any] = {
        "title": request.title[:MAX_TITLE_LENGTH],
        "description": request.caption_with_hashtags(MAX_DESCRIPTION_LENGTH),
        "categoryId": str(request.options.get("category_id") or DEFAULT_CATEGORY_ID),
    }
    if tags:
        snippet["tags"] = tags

    return {
        "snippet": snippet,
        "status": {
            "privacyStatus": "private",
            "selfDeclaredMadeForKids": bool(request.options.get("made_for_kids", False)),
        },
    }


class YouTubePublisher(PublisherAdapter):
    """YouTube Data API adapter."""

    def __init__(self, client: httpx.AsyncClient | None = None, config: Settings | None = None):
        self._config = config or settings
        self._client = client
        self._owns_client = client is None

    @property
    def platform(self) -> Platform:
        return Platform.YOUTUBE

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.http_status_timeout)
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def publish(self, request: PublishRequest, access_token: str) -> PublishResult:
        video_id = await self._upload(request, access_token)
        logger.info(f"YouTube upload complete: {video_id}, making public")

        # Step (b): flip to the requested visibility
        visibility = request.options.get("visibility") or "public"
        response = await self._get_client().put(
            YOUTUBE_VIDEOS_URL,
            params={"part": "status"},
            headers={"Authorization": f"Bearer {access_token}"},
            json={"id": video_id, "status": {"privacyStatus": visibility}},
        )
        raise_for_platform_status(response, "YouTube publish")

        return PublishResult(
            platform=Platform.YOUTUBE,
            publish_type=PublishType.DIRECT_POST,
            status=PostStatus.PUBLISHED,
            external_id=video_id,
            post_url=f"https://www.youtube.com/watch?v={video_id}",
            metadata={"visibility": visibility},
        )

    async def _upload(self, request: PublishRequest, access_token: str) -> str:
        """Resumable upload; returns the new video id."""
        client = self._get_client()
        path = request.video_path
        file_size = path.stat().st_size
        content_type = content_type_for(path)

        init_response = await client.post(
            YOUTUBE_UPLOAD_URL,
            params={"uploadType": "resumable", "part": "snippet,status"},
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json; charset=UTF-8",
                "X-Upload-Content-Length": str(file_size),
                "X-Upload-Content-Type": content_type,
            },
            json=build_video_resource(request),
        )
        raise_for_platform_status(init_response, "YouTube upload init")

        upload_url = init_response.headers.get("Location")
        if not upload_url:
            raise PlatformAPIError("YouTube upload init returned no upload URL")

        upload_response = await client.put(
            upload_url,
            headers={"Content-Type": content_type, "Content-Length": str(file_size)},
            content=path.read_bytes(),
            timeout=self._config.http_upload_timeout,
        )
        raise_for_platform_status(upload_response, "YouTube upload")

        video_id = safe_json(upload_response).get("id")
        if not video_id:
            raise PlatformAPIError("YouTube upload response had no video id")
        return video_id
