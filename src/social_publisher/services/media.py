"""Video lookup and file resolution."""

from pathlib import Path
from uuid import UUID

from sqlalchemy.orm import Session

from social_publisher.config import settings
from social_publisher.db.models import VideoModel
from social_publisher.domain.errors import ContentNotFound
from social_publisher.logging import get_logger

logger = get_logger(__name__)


class VideoNotFoundError(Exception):
    """Raised when a video does not exist or belongs to another user."""

    pass


def get_owned_video(session: Session, video_id: UUID, user_id: str) -> VideoModel:
    video = session.get(VideoModel, video_id)
    if video is None or video.user_id != user_id:
        raise VideoNotFoundError(f"No video found with ID '{video_id}'")
    return video


def resolve_video_path(video: VideoModel, media_root: str | None = None) -> Path:
    """Absolute path of a video file; relative paths are under media_root."""
    path = Path(video.file_path)
    if path.is_absolute():
        return path
    return Path(media_root or settings.media_root) / video.file_path.lstrip("/")


def require_video_file(video: VideoModel, media_root: str | None = None) -> Path:
    """Resolve the video's file and check it is present.

    Raises:
        ContentNotFound: If the file is missing.
    """
    path = resolve_video_path(video, media_root)
    if not path.is_file():
        logger.warning("video_file_missing", video_id=str(video.id), path=str(path))
        raise ContentNotFound()
    return path
