"""TikTok publisher using the Content Posting API.

Two modes:
- Direct post: creator_info query, video/init, binary PUT, explicit
  publish via status/update, then status polling for the public post id.
- Inbox upload: inbox/video/init and binary PUT; the user finishes
  posting inside the TikTok app, so the result is a DRAFT.

Every call that carries the access token goes through ``_api_post``,
which unwraps TikTok's ``{"data": ..., "error": {"code": "ok"}}`` envelope.
"""

import asyncio
import logging
from pathlib import Path
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
from social_publisher.domain.enums import Platform, PostStatus, PublishMode, PublishType
from social_publisher.domain.errors import (
    ContentValidationError,
    InboxLimitReached,
    PlatformAPIError,
)
from social_publisher.domain.models import PublishResult

logger = logging.getLogger(__name__)

TIKTOK_API_BASE = "https://open.tiktokapis.com/v2/post/publish"
TIKTOK_CREATOR_INFO_URL = f"{TIKTOK_API_BASE}/creator_info/query/"
TIKTOK_DIRECT_INIT_URL = f"{TIKTOK_API_BASE}/video/init/"
TIKTOK_INBOX_INIT_URL = f"{TIKTOK_API_BASE}/inbox/video/init/"
TIKTOK_STATUS_FETCH_URL = f"{TIKTOK_API_BASE}/status/fetch/"
TIKTOK_STATUS_UPDATE_URL = f"{TIKTOK_API_BASE}/status/update/"

MIN_VIDEO_SIZE = 4 * 1024  # 4 KB
MAX_VIDEO_SIZE = 190 * 1024 * 1024  # 190 MB
ALLOWED_EXTENSIONS = frozenset({".mp4", ".mov", ".webm"})
MAX_TITLE_LENGTH = 2200

# Pending inbox items allowed before TikTok starts refusing shares
INBOX_LIMIT = 5

INBOX_PENDING_STATUSES = frozenset(
    {"PROCESSING_UPLOAD", "PROCESSING_DOWNLOAD", "SEND_TO_USER_INBOX", "UPLOAD_COMPLETE"}
)
INBOX_DONE_STATUSES = frozenset({"SEND_TO_USER_INBOX", "UPLOAD_COMPLETE"})

# Errors the sandbox returns for calls that would succeed for an audited app
SANDBOX_ERROR_CODES = frozenset(
    {"sandbox_limitation", "unaudited_client_can_only_post_to_private_accounts"}
)

DEFAULT_PRIVACY_LEVEL = "PUBLIC_TO_EVERYONE"


def validate_video_file(path: Path) -> int:
    """Check size and extension against TikTok's upload limits.

    Returns:
        File size in bytes.

    Raises:
        ContentValidationError: If the file is outside the limits.
    """
    if path.suffix.lower() not in ALLOWED_EXTENSIONS:
        raise ContentValidationError(
            f"Unsupported format '{path.suffix or 'none'}'; TikTok accepts MP4, MOV or WebM"
        )
    size = path.stat().st_size
    if size < MIN_VIDEO_SIZE:
        raise ContentValidationError(f"Video is too small ({size} bytes)")
    if size > MAX_VIDEO_SIZE:
        raise ContentValidationError(
            f"Video is too large ({size / (1024 * 1024):.1f} MB); the limit is 190 MB"
        )
    return size


class TikTokPublisher(PublisherAdapter):
    """TikTok Content Posting API adapter."""

    supported_modes = frozenset({PublishMode.DIRECT_POST, PublishMode.INBOX_UPLOAD})

    def __init__(self, client: httpx.AsyncClient | None = None, config: Settings | None = None):
        self._config = config or settings
        self._client = client
        self._owns_client = client is None

    @property
    def platform(self) -> Platform:
        return Platform.TIKTOK

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

    # -------------------------------------------------------------------------
    # API helpers
    # -------------------------------------------------------------------------

    async def _api_post(
        self,
        url: str,
        access_token: str,
        payload: dict[str, Any] | None,
        step: str,
    ) -> dict[str, Any]:
        response = await self._get_client().post(
            url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json; charset=UTF-8",
            },
            json=payload,
        )
        raise_for_platform_status(response, step)

        body = safe_json(response)
        error = body.get("error") or {}
        code = error.get("code") if isinstance(error, dict) else None
        if code and code != "ok":
            raise PlatformAPIError(
                f"{step} failed: {error.get('message') or code}",
                code=code,
                status_code=response.status_code,
                payload=body,
            )
        return body.get("data") or {}

    async def _upload_binary(self, upload_url: str, path: Path, size: int) -> None:
        response = await self._get_client().put(
            upload_url,
            headers={
                "Content-Type": content_type_for(path),
                "Content-Range": f"bytes 0-{size - 1}/{size}",
            },
            content=path.read_bytes(),
            timeout=self._config.http_upload_timeout,
        )
        raise_for_platform_status(response, "TikTok video upload")

    async def fetch_status(self, publish_id: str, access_token: str) -> dict[str, Any]:
        return await self._api_post(
            TIKTOK_STATUS_FETCH_URL,
            access_token,
            {"publish_id": publish_id},
            "TikTok status fetch",
        )

    async def _poll_status(
        self,
        publish_id: str,
        access_token: str,
        done_statuses: frozenset[str],
    ) -> dict[str, Any] | None:
        """Poll until a done status, raising on FAILED. None if polling ran out."""
        for attempt in range(self._config.tiktok_status_poll_attempts):
            data = await self.fetch_status(publish_id, access_token)
            status = data.get("status")
            if status in done_statuses:
                return data
            if status == "FAILED":
                fail_reason = data.get("fail_reason") or "unknown_error"
                raise PlatformAPIError(
                    f"TikTok rejected the video: {fail_reason}",
                    code=fail_reason,
                    payload=data,
                )
            logger.debug(f"TikTok {publish_id} status {status} (attempt {attempt + 1})")
            await asyncio.sleep(self._config.tiktok_status_poll_interval)
        logger.warning(f"TikTok status polling ran out for {publish_id}")
        return None

    # -------------------------------------------------------------------------
    # Inbox accounting
    # -------------------------------------------------------------------------

    async def count_pending_inbox(self, access_token: str, publish_ids: list[str]) -> int:
        """Count earlier inbox uploads that are still waiting in the user's inbox.

        Stops counting once the limit is reached.
        """
        pending = 0
        for publish_id in publish_ids:
            try:
                data = await self.fetch_status(publish_id, access_token)
            except PlatformAPIError as e:
                # Unknown ids have been posted or expired on TikTok's side
                logger.info(f"Not counting inbox item {publish_id}: {e.message}")
                continue
            if data.get("status") in INBOX_PENDING_STATUSES:
                pending += 1
                if pending >= INBOX_LIMIT:
                    break
        return pending

    async def preflight(self, request: PublishRequest, access_token: str) -> None:
        validate_video_file(request.video_path)
        if request.mode != PublishMode.INBOX_UPLOAD:
            return

        pending = await self.count_pending_inbox(access_token, request.pending_inbox_ids)
        if pending >= INBOX_LIMIT:
            raise InboxLimitReached(f"{pending} videos are waiting in the TikTok inbox")

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    async def publish(self, request: PublishRequest, access_token: str) -> PublishResult:
        size = validate_video_file(request.video_path)
        if request.mode == PublishMode.INBOX_UPLOAD:
            return await self._inbox_upload(request, access_token, size)
        return await self._direct_post(request, access_token, size)

    async def _inbox_upload(
        self, request: PublishRequest, access_token: str, size: int
    ) -> PublishResult:
        source_info = {
            "source": "FILE_UPLOAD",
            "video_size": size,
            "chunk_size": size,
            "total_chunk_count": 1,
        }
        try:
            data = await self._api_post(
                TIKTOK_INBOX_INIT_URL,
                access_token,
                {"source_info": source_info},
                "TikTok inbox init",
            )
        except PlatformAPIError as e:
            if e.code == "spam_risk_too_many_pending_share":
                raise InboxLimitReached(e.message) from e
            raise

        publish_id = data.get("publish_id")
        upload_url = data.get("upload_url")
        if not publish_id or not upload_url:
            raise PlatformAPIError("TikTok inbox init returned no upload URL", payload=data)

        await self._upload_binary(upload_url, request.video_path, size)
        status = await self._poll_status(publish_id, access_token, INBOX_DONE_STATUSES)

        logger.info(f"TikTok video {publish_id} sent to inbox")
        return PublishResult(
            platform=Platform.TIKTOK,
            publish_type=PublishType.INBOX_SHARE,
            status=PostStatus.DRAFT,
            external_id=publish_id,
            metadata={"platform_status": (status or {}).get("status")},
        )

    async def _direct_post(
        self, request: PublishRequest, access_token: str, size: int
    ) -> PublishResult:
        creator = await self._api_post(
            TIKTOK_CREATOR_INFO_URL, access_token, None, "TikTok creator info"
        )
        privacy_options = creator.get("privacy_level_options") or [DEFAULT_PRIVACY_LEVEL]
        privacy_level = request.options.get("privacy_level") or DEFAULT_PRIVACY_LEVEL
        if privacy_level not in privacy_options:
            privacy_level = privacy_options[0]
        username = creator.get("creator_username")

        # Step (a): upload the binary
        data = await self._api_post(
            TIKTOK_DIRECT_INIT_URL,
            access_token,
            {
                "post_info": {
                    "title": request.caption_with_hashtags(MAX_TITLE_LENGTH),
                    "privacy_level": privacy_level,
                    "disable_duet": bool(request.options.get("disable_duet", False)),
                    "disable_stitch": bool(request.options.get("disable_stitch", False)),
                    "disable_comment": bool(request.options.get("disable_comment", False)),
                    "video_cover_timestamp_ms": 1000,
                },
                "source_info": {
                    "source": "FILE_UPLOAD",
                    "video_size": size,
                    "chunk_size": size,
                    "total_chunk_count": 1,
                },
            },
            "TikTok direct post init",
        )
        publish_id = data.get("publish_id")
        upload_url = data.get("upload_url")
        if not publish_id or not upload_url:
            raise PlatformAPIError("TikTok direct post init returned no upload URL", payload=data)

        await self._upload_binary(upload_url, request.video_path, size)
        logger.info(f"TikTok upload {publish_id} complete, publishing")

        # Step (b): explicitly publish
        try:
            await self._api_post(
                TIKTOK_STATUS_UPDATE_URL,
                access_token,
                {"publish_id": publish_id, "status": "PUBLISH_COMPLETE"},
                "TikTok publish",
            )
        except PlatformAPIError as e:
            if e.code in SANDBOX_ERROR_CODES and self._simulate_sandbox():
                logger.warning(f"TikTok sandbox refused publish for {publish_id}; simulating")
                return PublishResult(
                    platform=Platform.TIKTOK,
                    publish_type=PublishType.DIRECT_POST,
                    status=PostStatus.PUBLISHED,
                    external_id=publish_id,
                    post_url=self._profile_url(username),
                    simulated=True,
                    simulation_reason=f"TikTok sandbox: {e.code}",
                )
            raise

        status = await self._poll_status(publish_id, access_token, frozenset({"PUBLISH_COMPLETE"}))
        post_ids = (status or {}).get("publicaly_available_post_id") or []
        post_id = str(post_ids[0]) if post_ids else None

        return PublishResult(
            platform=Platform.TIKTOK,
            publish_type=PublishType.DIRECT_POST,
            status=PostStatus.PUBLISHED,
            external_id=post_id or publish_id,
            post_url=self._post_url(username, post_id),
            metadata={"publish_id": publish_id, "status_confirmed": status is not None},
        )

    def _simulate_sandbox(self) -> bool:
        return (
            self._config.publish_simulation_enabled
            and self._config.tiktok_environment == "sandbox"
        )

    @staticmethod
    def _profile_url(username: str | None) -> str:
        return f"https://www.tiktok.com/@{username}" if username else "https://www.tiktok.com/"

    @classmethod
    def _post_url(cls, username: str | None, post_id: str | None) -> str:
        if username and post_id:
            return f"https://www.tiktok.com/@{username}/video/{post_id}"
        return cls._profile_url(username)
