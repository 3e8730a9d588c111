"""Tests for the YouTube publisher."""

import json

import httpx
import pytest

from social_publisher.adapters.publisher import PublishRequest, YouTubePublisher
from social_publisher.adapters.publisher.youtube import (
    YOUTUBE_UPLOAD_URL,
    YOUTUBE_VIDEOS_URL,
    build_video_resource,
)
from social_publisher.domain.enums import PostStatus, PublishType
from social_publisher.domain.errors import PlatformAPIError
from social_publisher.services.publishing import classify_platform_error

SESSION_URL = "https://www.googleapis.com/upload/youtube/v3/videos?upload_id=xyz"


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00" * 4096)
    return path


class TestBuildVideoResource:
    """Tests for upload metadata."""

    def test_uploads_private_with_defaults(self, tmp_path):
        request = PublishRequest(
            video_path=tmp_path / "a.mp4",
            title="T" * 150,
            caption="Watch this",
            hashtags=["#shorts", "cats"],
        )

        resource = build_video_resource(request)

        assert resource["status"]["privacyStatus"] == "private"
        assert resource["status"]["selfDeclaredMadeForKids"] is False
        assert resource["snippet"]["categoryId"] == "22"
        assert len(resource["snippet"]["title"]) == 100
        assert resource["snippet"]["description"] == "Watch this #shorts #cats"
        assert resource["snippet"]["tags"] == ["shorts", "cats"]

    def test_options_override_defaults(self, tmp_path):
        request = PublishRequest(
            video_path=tmp_path / "a.mp4",
            title="T",
            options={"category_id": 10, "made_for_kids": True},
        )

        resource = build_video_resource(request)

        assert resource["snippet"]["categoryId"] == "10"
        assert resource["status"]["selfDeclaredMadeForKids"] is True
        assert "tags" not in resource["snippet"]


class TestPublish:
    """Tests for the resumable upload and visibility update."""

    @pytest.mark.asyncio
    async def test_upload_then_make_public(self, video_file):
        calls = []

        def handler(request):
            calls.append(request)
            if request.method == "POST":
                return httpx.Response(200, headers={"Location": SESSION_URL})
            return httpx.Response(200, json={"id": "dQw4w9WgXcQ"})

        publisher = YouTubePublisher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        result = await publisher.publish(
            PublishRequest(video_path=video_file, title="Clip"), "ya29.token"
        )

        init, upload, update = calls
        assert str(init.url).startswith(YOUTUBE_UPLOAD_URL)
        assert init.url.params["uploadType"] == "resumable"
        assert init.headers["X-Upload-Content-Length"] == "4096"
        assert init.headers["Authorization"] == "Bearer ya29.token"
        assert upload.method == "PUT"
        assert len(upload.content) == 4096
        assert str(update.url).startswith(YOUTUBE_VIDEOS_URL)
        assert update.url.params["part"] == "status"
        assert json.loads(update.content) == {
            "id": "dQw4w9WgXcQ",
            "status": {"privacyStatus": "public"},
        }

        assert result.status == PostStatus.PUBLISHED
        assert result.publish_type == PublishType.DIRECT_POST
        assert result.external_id == "dQw4w9WgXcQ"
        assert result.post_url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"

    @pytest.mark.asyncio
    async def test_missing_upload_location(self, video_file):
        def handler(request):
            return httpx.Response(200)

        publisher = YouTubePublisher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        with pytest.raises(PlatformAPIError):
            await publisher.publish(PublishRequest(video_path=video_file, title="Clip"), "t")

    @pytest.mark.asyncio
    async def test_quota_error_keeps_reason(self, video_file):
        def handler(request):
            return httpx.Response(
                403,
                json={
                    "error": {
                        "code": 403,
                        "message": "The request cannot be completed because you have exceeded your quota.",
                        "errors": [{"reason": "quotaExceeded"}],
                    }
                },
            )

        publisher = YouTubePublisher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        with pytest.raises(PlatformAPIError) as exc_info:
            await publisher.publish(PublishRequest(video_path=video_file, title="Clip"), "t")

        assert exc_info.value.code == "quotaExceeded"
        assert exc_info.value.status_code == 403
        assert classify_platform_error(exc_info.value).kind.value == "quota_exceeded"
