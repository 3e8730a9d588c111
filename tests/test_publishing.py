"""Tests for the publish dispatcher and failure classification."""

import threading
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest
from conftest import FakePublisher

from social_publisher.adapters.publisher import PublishRequest, SimulatedPublisher, get_publisher
from social_publisher.adapters.publisher.simulated import simulated_post_id
from social_publisher.config import Settings
from social_publisher.domain.enums import Platform, PostStatus, PublishErrorKind, PublishMode
from social_publisher.domain.errors import (
    ContentNotFound,
    ContentValidationError,
    InboxLimitReached,
    PlatformAPIError,
    PlatformNotSupportedError,
    QuotaExceededError,
    ReauthorizationRequired,
    ScopeInsufficientError,
    TransientPublishError,
)
from social_publisher.domain.models import TokenResult
from social_publisher.services.publishing import (
    PublishDispatcher,
    classify_failure_reason,
    classify_platform_error,
    pending_inbox_ids,
)


class TestClassifyPlatformError:
    """Tests for mapping adapter failures to failure classes."""

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("picture_size_check_failed", ContentValidationError),
            ("scope_not_authorized", ScopeInsufficientError),
            ("insufficientPermissions", ScopeInsufficientError),
            ("reached_active_user_cap", QuotaExceededError),
            ("quotaExceeded", QuotaExceededError),
            ("access_token_invalid", ReauthorizationRequired),
        ],
    )
    def test_structured_codes(self, code, expected):
        error = classify_platform_error(PlatformAPIError("init failed", code=code))

        assert type(error) is expected
        assert error.detail == "init failed"

    def test_unauthorized_status(self):
        error = classify_platform_error(PlatformAPIError("nope", status_code=401))

        assert isinstance(error, ReauthorizationRequired)

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("This video cannot be used on TikTok", ContentValidationError),
            ("Missing permission for publishing", ScopeInsufficientError),
            ("Daily quota used up", QuotaExceededError),
        ],
    )
    def test_message_fragments(self, message, expected):
        assert type(classify_platform_error(PlatformAPIError(message))) is expected

    def test_rate_limited_status(self):
        error = classify_platform_error(PlatformAPIError("slow down", status_code=429))

        assert isinstance(error, QuotaExceededError)

    def test_unknown_failure_is_transient(self):
        error = classify_platform_error(PlatformAPIError("boom", code="internal", status_code=500))

        assert isinstance(error, TransientPublishError)
        assert error.retryable


class TestClassifyFailureReason:
    """Tests for recovering the class of a stored failure."""

    def test_round_trips_stored_reason(self):
        reason = QuotaExceededError("cap reached").failure_reason

        assert classify_failure_reason(reason) == PublishErrorKind.QUOTA_EXCEEDED

    def test_transient_reason(self):
        reason = TransientPublishError("Platform timed out").failure_reason

        assert classify_failure_reason(reason) == PublishErrorKind.TRANSIENT

    def test_missing_reason_is_transient(self):
        assert classify_failure_reason(None) == PublishErrorKind.TRANSIENT

    def test_unexpected_error_reason_is_transient(self):
        assert classify_failure_reason("Unexpected error: RuntimeError") == PublishErrorKind.TRANSIENT


class TestDispatcher:
    """Tests for the prepare/execute halves of a publish attempt."""

    def _dispatcher(self, publisher):
        return PublishDispatcher(publisher_factory=lambda platform: publisher)

    @pytest.mark.asyncio
    async def test_success(self, session, make_account, make_video, fake_publisher):
        account = make_account()
        video = make_video(title="My Video")
        dispatcher = self._dispatcher(fake_publisher)

        prepared = await dispatcher.prepare(
            session, account, video, caption="Hi", hashtags=["fyp"]
        )
        result = await dispatcher.execute(prepared)

        assert result.status == PostStatus.PUBLISHED
        assert result.external_id == "post-123"
        request, token = fake_publisher.requests[0]
        assert token == "access-token"
        assert request.title == "My Video"
        assert request.caption_with_hashtags() == "Hi #fyp"
        assert fake_publisher.closed

    @pytest.mark.asyncio
    async def test_limited_account_cannot_direct_post(
        self, session, make_account, make_video, fake_publisher
    ):
        account = make_account(account_name="TikTok User abc123 (Limited Access)")
        dispatcher = self._dispatcher(fake_publisher)
        prepared = await dispatcher.prepare(session, account, make_video())

        with pytest.raises(ScopeInsufficientError):
            await dispatcher.execute(prepared)

        assert fake_publisher.requests == []
        assert fake_publisher.closed

    @pytest.mark.asyncio
    async def test_limited_account_may_use_inbox(self, session, make_account, make_video):
        publisher = FakePublisher()
        account = make_account(account_name="TikTok User abc123 (Limited Access)")
        dispatcher = self._dispatcher(publisher)

        prepared = await dispatcher.prepare(
            session, account, make_video(), mode=PublishMode.INBOX_UPLOAD
        )
        await dispatcher.execute(prepared)

        assert len(publisher.requests) == 1

    @pytest.mark.asyncio
    async def test_platform_error_is_classified(self, session, make_account, make_video):
        publisher = FakePublisher(
            error=PlatformAPIError("init failed", code="reached_active_user_cap")
        )
        dispatcher = self._dispatcher(publisher)
        prepared = await dispatcher.prepare(session, make_account(), make_video())

        with pytest.raises(QuotaExceededError):
            await dispatcher.execute(prepared)

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, session, make_account, make_video):
        publisher = FakePublisher(error=httpx.ReadTimeout("read timed out"))
        dispatcher = self._dispatcher(publisher)
        prepared = await dispatcher.prepare(session, make_account(), make_video())

        with pytest.raises(TransientPublishError) as exc_info:
            await dispatcher.execute(prepared)

        assert "ReadTimeout" in exc_info.value.failure_reason
        assert publisher.closed

    @pytest.mark.asyncio
    async def test_unsupported_mode(self, session, make_account, make_video):
        publisher = FakePublisher(supported_modes=frozenset({PublishMode.DIRECT_POST}))
        dispatcher = self._dispatcher(publisher)

        with pytest.raises(PlatformNotSupportedError):
            await dispatcher.prepare(
                session, make_account(), make_video(), mode=PublishMode.INBOX_UPLOAD
            )

        assert publisher.closed

    @pytest.mark.asyncio
    async def test_missing_file(self, session, make_account, make_video, fake_publisher):
        dispatcher = self._dispatcher(fake_publisher)

        with pytest.raises(ContentNotFound):
            await dispatcher.prepare(session, make_account(), make_video(write_file=False))

    @pytest.mark.asyncio
    async def test_inactive_account(self, session, make_account, make_video, fake_publisher):
        dispatcher = self._dispatcher(fake_publisher)

        with pytest.raises(ReauthorizationRequired):
            await dispatcher.prepare(session, make_account(is_active=False), make_video())

    @pytest.mark.asyncio
    async def test_preflight_refusal_closes_publisher(self, session, make_account, make_video):
        publisher = FakePublisher(preflight_error=InboxLimitReached("5 pending"))
        dispatcher = self._dispatcher(publisher)

        with pytest.raises(InboxLimitReached):
            await dispatcher.prepare(
                session, make_account(), make_video(), mode=PublishMode.INBOX_UPLOAD
            )

        assert publisher.closed

    @pytest.mark.asyncio
    async def test_inbox_request_carries_pending_ids(
        self, session, make_account, make_video, make_post, fake_publisher
    ):
        account = make_account()
        video = make_video()
        make_post(account, video, status="DRAFT", external_post_id="v_inbox_1")
        make_post(account, video, status="PUBLISHED", external_post_id="v_pub_1")
        dispatcher = self._dispatcher(fake_publisher)

        prepared = await dispatcher.prepare(
            session, account, video, mode=PublishMode.INBOX_UPLOAD
        )

        assert prepared.request.pending_inbox_ids == ["v_inbox_1"]
        assert pending_inbox_ids(session, account.id) == ["v_inbox_1"]

    @pytest.mark.asyncio
    async def test_token_refresh_runs_off_event_loop(
        self, session, make_account, make_video, fake_publisher
    ):
        """Test the blocking refresh call does not run on the loop thread."""
        account = make_account(expires_in=timedelta(minutes=-5))
        refresh_threads = []

        def refresh(platform, refresh_token):
            refresh_threads.append(threading.get_ident())
            return TokenResult(access_token="fresh-access", expires_in=3600)

        token_client = MagicMock()
        token_client.refresh.side_effect = refresh
        dispatcher = PublishDispatcher(
            token_client=token_client, publisher_factory=lambda platform: fake_publisher
        )

        prepared = await dispatcher.prepare(session, account, make_video())
        await dispatcher.execute(prepared)

        assert refresh_threads and refresh_threads[0] != threading.get_ident()
        assert fake_publisher.requests[0][1] == "fresh-access"


class TestPublisherSelection:
    """Tests for adapter lookup and simulation mode."""

    def test_real_integrations(self):
        config = Settings(publish_simulation_enabled=False)

        assert get_publisher("tiktok", config).platform == Platform.TIKTOK
        assert get_publisher(Platform.YOUTUBE, config).platform == Platform.YOUTUBE

    @pytest.mark.parametrize("platform", ["instagram", "facebook", "twitter"])
    def test_no_integration_without_simulation(self, platform):
        with pytest.raises(PlatformNotSupportedError):
            get_publisher(platform, Settings(publish_simulation_enabled=False))

    def test_simulation_is_labeled(self):
        publisher = get_publisher("instagram", Settings(publish_simulation_enabled=True))

        assert isinstance(publisher, SimulatedPublisher)
        assert publisher.simulated

    @pytest.mark.asyncio
    async def test_simulated_result(self):
        publisher = SimulatedPublisher(Platform.FACEBOOK)
        request = PublishRequest(video_path=Path("videos/a.mp4"), title="Clip")

        result = await publisher.publish(request, "token")

        assert result.simulated
        assert result.simulation_reason
        assert result.external_id == simulated_post_id(Platform.FACEBOOK, request)
        assert result.external_id.startswith("sim-")
        assert result.post_url == f"https://example.com/facebook/post/{result.external_id}"

    def test_simulated_ids_are_deterministic(self):
        request = PublishRequest(video_path=Path("videos/a.mp4"), title="Clip")

        assert simulated_post_id(Platform.TWITTER, request) == simulated_post_id(
            Platform.TWITTER, request
        )
        assert simulated_post_id(Platform.TWITTER, request) != simulated_post_id(
            Platform.FACEBOOK, request
        )
