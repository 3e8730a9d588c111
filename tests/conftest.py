"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import Callable, Generator
from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

# Set test environment before importing app modules
_TEST_DIR = Path(tempfile.mkdtemp(prefix="social-publisher-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR / 'test.db'}"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["ENCRYPTION_MASTER_KEY"] = Fernet.generate_key().decode()
os.environ["MEDIA_ROOT"] = str(_TEST_DIR / "media")
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["APP_URL"] = "http://ui.test"
os.environ["API_PUBLIC_URL"] = "http://api.test"
os.environ["TIKTOK_CLIENT_ID"] = "tiktok-client-key"
os.environ["TIKTOK_CLIENT_SECRET"] = "tiktok-client-secret"
os.environ["YOUTUBE_CLIENT_ID"] = "youtube-client-id"
os.environ["YOUTUBE_CLIENT_SECRET"] = "youtube-client-secret"
os.environ["TIKTOK_STATUS_POLL_INTERVAL"] = "0"
os.environ["TIKTOK_STATUS_POLL_ATTEMPTS"] = "3"

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
MEDIA_ROOT = _TEST_DIR / "media"


@pytest.fixture(autouse=True)
def database() -> Generator[None, None, None]:
    """Fresh tables for every test."""
    from social_publisher.db.models import Base
    from social_publisher.db.session import engine

    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def session(database: None) -> Generator[Any, None, None]:
    from social_publisher.db.session import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def test_client(database: None) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    from social_publisher.main import app

    with TestClient(app) as client:
        yield client


@pytest.fixture
def user_headers() -> dict[str, str]:
    return {"X-User-Id": USER_ID}


@pytest.fixture
def make_account(session: Any) -> Callable[..., Any]:
    """Create and commit a connected account with a valid access token."""
    from social_publisher.db.models import SocialAccountModel
    from social_publisher.services.encryption import encrypt_token
    from social_publisher.utils.clock import utcnow

    def _make(
        platform: str = "tiktok",
        account_name: str = "TikTok User abc123",
        user_id: str = USER_ID,
        access_token: str = "access-token",
        refresh_token: str | None = "refresh-token",
        expires_in: timedelta | None = timedelta(hours=1),
        is_active: bool = True,
    ) -> SocialAccountModel:
        account = SocialAccountModel(
            user_id=user_id,
            platform=platform,
            account_name=account_name,
            encrypted_access_token=encrypt_token(access_token),
            encrypted_refresh_token=encrypt_token(refresh_token) if refresh_token else None,
            token_expires_at=utcnow() + expires_in if expires_in is not None else None,
            is_active=is_active,
        )
        session.add(account)
        session.commit()
        return account

    return _make


@pytest.fixture
def make_video(session: Any) -> Callable[..., Any]:
    """Create and commit a video, writing its file under MEDIA_ROOT unless told not to."""
    from uuid import uuid4

    from social_publisher.db.models import VideoModel

    def _make(
        user_id: str = USER_ID,
        title: str = "Test Video",
        size: int = 8 * 1024,
        suffix: str = ".mp4",
        write_file: bool = True,
    ) -> VideoModel:
        relative = f"videos/{uuid4().hex}{suffix}"
        if write_file:
            path = MEDIA_ROOT / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"\x00" * size)
        video = VideoModel(user_id=user_id, title=title, file_path=relative)
        session.add(video)
        session.commit()
        return video

    return _make


@pytest.fixture
def make_post(session: Any) -> Callable[..., Any]:
    """Create and commit a post in any status, bypassing the lifecycle checks."""
    from social_publisher.db.models import ScheduledPostModel
    from social_publisher.utils.clock import utcnow

    def _make(
        account: Any,
        video: Any,
        status: str = "SCHEDULED",
        failure_reason: str | None = None,
        scheduled_for: Any = None,
        external_post_id: str | None = None,
    ) -> ScheduledPostModel:
        post = ScheduledPostModel(
            user_id=account.user_id,
            social_account_id=account.id,
            video_id=video.id,
            caption="Hello",
            hashtags=["shorts"],
            scheduled_for=scheduled_for or utcnow() + timedelta(hours=1),
            status=status,
            failure_reason=failure_reason,
            external_post_id=external_post_id,
        )
        session.add(post)
        session.commit()
        return post

    return _make


class FakePublisher:
    """In-memory publisher adapter for dispatcher and API tests."""

    simulated = False

    def __init__(
        self,
        platform: Any = None,
        result: Any = None,
        error: BaseException | None = None,
        preflight_error: BaseException | None = None,
        supported_modes: Any = None,
    ):
        from social_publisher.domain.enums import Platform, PublishMode

        self._platform = platform or Platform.TIKTOK
        self.result = result
        self.error = error
        self.preflight_error = preflight_error
        self.supported_modes = supported_modes or frozenset(
            {PublishMode.DIRECT_POST, PublishMode.INBOX_UPLOAD}
        )
        self.requests: list[Any] = []
        self.closed = False

    @property
    def platform(self) -> Any:
        return self._platform

    async def preflight(self, request: Any, access_token: str) -> None:
        if self.preflight_error is not None:
            raise self.preflight_error

    async def publish(self, request: Any, access_token: str) -> Any:
        from social_publisher.domain.enums import PostStatus, PublishType
        from social_publisher.domain.models import PublishResult

        self.requests.append((request, access_token))
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return PublishResult(
            platform=self._platform,
            publish_type=PublishType.DIRECT_POST,
            status=PostStatus.PUBLISHED,
            external_id="post-123",
            post_url="https://www.tiktok.com/@creator/video/post-123",
        )

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_publisher() -> FakePublisher:
    return FakePublisher()


class FixedCredentialSource:
    """Credential source returning the same pair for every platform."""

    name = "fixed"

    def __init__(self, client_id: str | None = "client-id", client_secret: str | None = "secret"):
        self.client_id = client_id
        self.client_secret = client_secret

    def lookup(self, platform: Any) -> tuple[str | None, str | None]:
        return self.client_id, self.client_secret
