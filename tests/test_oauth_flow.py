"""Tests for the authorization flow controller."""

from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from conftest import FixedCredentialSource

from social_publisher.db.models import SocialAccountModel
from social_publisher.domain.enums import AuthorizationPhase, Platform
from social_publisher.domain.models import TokenResult
from social_publisher.services.credentials import CredentialStore
from social_publisher.services.encryption import EncryptionError, decrypt_token
from social_publisher.services.oauth_flow import (
    FLOW_COOKIES,
    REDIRECT_URI_COOKIE,
    STATE_COOKIE,
    VERIFIER_COOKIE,
    AuthorizationFlowController,
    classify_callback_error,
)
from social_publisher.services.oauth_state import generate_state
from social_publisher.services.token_exchange import TokenExchangeError


def _query(url: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlparse(url).query).items()}


@pytest.fixture
def token_client():
    client = MagicMock()
    client.exchange_code.return_value = TokenResult(
        access_token="act.fresh",
        refresh_token="rft.fresh",
        expires_in=86400,
        granted_scopes=["user.info.basic", "video.publish", "video.upload"],
        subject="abcdef123456",
    )
    return client


@pytest.fixture
def controller(session, token_client):
    return AuthorizationFlowController(
        session,
        credential_store=CredentialStore([FixedCredentialSource()]),
        token_client=token_client,
    )


def _cookies(result) -> dict[str, str]:
    return {cookie.name: cookie.value for cookie in result.set_cookies}


class TestStart:
    """Tests for building the consent redirect."""

    def test_unconfigured_platform_is_rejected(self, session):
        controller = AuthorizationFlowController(
            session, credential_store=CredentialStore([FixedCredentialSource(None, None)])
        )

        result = controller.start_authorization("user-1", Platform.INSTAGRAM)

        assert result.phase == AuthorizationPhase.REJECTED
        assert result.error == "platform_not_configured"
        assert result.redirect_url.startswith("http://ui.test")
        assert _query(result.redirect_url) == {"error": "platform_not_configured"}
        assert result.set_cookies == []

    def test_tiktok_redirect_uses_pkce(self, controller):
        result = controller.start_authorization("user-1", "tiktok")

        assert result.phase == AuthorizationPhase.REDIRECTED
        assert result.redirect_url.startswith("https://www.tiktok.com/v2/auth/authorize/")
        query = _query(result.redirect_url)
        assert query["client_key"] == "client-id"
        assert "client_id" not in query
        assert query["scope"] == "user.info.basic,video.publish,video.upload"
        assert query["redirect_uri"] == "http://api.test/api/v1/oauth/callback/tiktok"
        assert query["code_challenge_method"] == "S256"
        assert len(query["code_challenge"]) == 64
        int(query["code_challenge"], 16)

        cookies = _cookies(result)
        assert cookies[STATE_COOKIE] == query["state"]
        assert len(cookies[VERIFIER_COOKIE]) == 43
        assert cookies[REDIRECT_URI_COOKIE] == query["redirect_uri"]
        assert all(
            cookie.path == "/api/v1/oauth/callback/tiktok" for cookie in result.set_cookies
        )

    def test_youtube_redirect_requests_offline_access(self, controller):
        result = controller.start_authorization("user-1", Platform.YOUTUBE)

        query = _query(result.redirect_url)
        assert query["client_id"] == "client-id"
        assert query["access_type"] == "offline"
        assert query["prompt"] == "consent"
        assert "code_challenge" not in query
        assert VERIFIER_COOKIE not in _cookies(result)

    def test_unknown_platform(self, controller):
        with pytest.raises(ValueError):
            controller.start_authorization("user-1", "myspace")


class TestCallback:
    """Tests for callback validation and account persistence."""

    def _start(self, controller, platform=Platform.TIKTOK):
        started = controller.start_authorization("user-1", platform)
        return _query(started.redirect_url)["state"], _cookies(started)

    def test_success_saves_account(self, session, controller, token_client):
        state, cookies = self._start(controller)

        result = controller.handle_callback(
            "tiktok", {"code": "auth-code", "state": state}, cookies
        )

        assert result.phase == AuthorizationPhase.SAVED
        assert _query(result.redirect_url) == {"connected": "tiktok"}
        assert sorted(result.clear_cookies) == sorted(FLOW_COOKIES)
        token_client.exchange_code.assert_called_once_with(
            Platform.TIKTOK,
            "auth-code",
            "http://api.test/api/v1/oauth/callback/tiktok",
            code_verifier=cookies[VERIFIER_COOKIE],
        )

        account = session.get(SocialAccountModel, result.account_id)
        assert account.user_id == "user-1"
        assert account.account_name == "TikTok User abcdef"
        assert decrypt_token(account.encrypted_access_token) == "act.fresh"
        assert account.token_expires_at is not None

    def test_missing_scopes_mark_account_limited(self, session, controller, token_client):
        token_client.exchange_code.return_value = TokenResult(
            access_token="act.fresh",
            granted_scopes=["user.info.basic", "video.upload"],
            subject="abcdef123456",
        )
        state, cookies = self._start(controller)

        result = controller.handle_callback("tiktok", {"code": "c", "state": state}, cookies)

        assert result.phase == AuthorizationPhase.SAVED
        assert result.missing_scopes == ["video.publish"]
        query = _query(result.redirect_url)
        assert query["scope_warning"] == "true"
        assert query["missing_scopes"] == "video.publish"
        account = session.get(SocialAccountModel, result.account_id)
        assert account.account_name == "TikTok User abcdef (Limited Access)"

    def test_youtube_account_named_after_channel(self, session, token_client):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer ya29.token"
            return httpx.Response(200, json={"items": [{"snippet": {"title": "My Channel"}}]})

        token_client.exchange_code.return_value = TokenResult(access_token="ya29.token")
        controller = AuthorizationFlowController(
            session,
            credential_store=CredentialStore([FixedCredentialSource()]),
            token_client=token_client,
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        state, cookies = self._start(controller, Platform.YOUTUBE)

        result = controller.handle_callback("youtube", {"code": "c", "state": state}, cookies)

        assert session.get(SocialAccountModel, result.account_id).account_name == "My Channel"
        assert token_client.exchange_code.call_args.kwargs["code_verifier"] is None

    @pytest.mark.parametrize(
        ("params", "expected"),
        [
            ({"error": "access_denied"}, "access_denied"),
            ({"error": "invalid_request", "error_type": "code_challenge"}, "code_challenge_error"),
            ({"error": "param_error"}, "code_challenge_error"),
        ],
    )
    def test_platform_errors(self, controller, token_client, params, expected):
        result = controller.handle_callback("tiktok", params, {})

        assert result.phase == AuthorizationPhase.REJECTED
        assert result.error == expected
        assert sorted(result.clear_cookies) == sorted(FLOW_COOKIES)
        token_client.exchange_code.assert_not_called()

    def test_missing_state_cookie(self, controller, token_client):
        state, _ = self._start(controller)

        result = controller.handle_callback("tiktok", {"code": "c", "state": state}, {})

        assert result.error == "invalid_request"
        token_client.exchange_code.assert_not_called()

    def test_mismatched_state(self, controller):
        _, cookies = self._start(controller)
        other_state = generate_state("user-1", Platform.TIKTOK)

        result = controller.handle_callback(
            "tiktok", {"code": "c", "state": other_state}, cookies
        )

        assert result.error == "invalid_request"

    def test_missing_code(self, controller):
        state, cookies = self._start(controller)

        result = controller.handle_callback("tiktok", {"state": state}, cookies)

        assert result.error == "invalid_request"

    def test_malformed_state(self, controller):
        result = controller.handle_callback(
            "tiktok", {"code": "c", "state": "garbage"}, {STATE_COOKIE: "garbage"}
        )

        assert result.error == "invalid_state"

    def test_platform_mismatch(self, controller):
        state, cookies = self._start(controller, Platform.YOUTUBE)

        result = controller.handle_callback("tiktok", {"code": "c", "state": state}, cookies)

        assert result.error == "platform_mismatch"

    def test_missing_verifier(self, controller):
        state, cookies = self._start(controller)
        del cookies[VERIFIER_COOKIE]

        result = controller.handle_callback("tiktok", {"code": "c", "state": state}, cookies)

        assert result.error == "missing_code_verifier"

    def test_token_exchange_failure(self, session, controller, token_client):
        token_client.exchange_code.side_effect = TokenExchangeError(
            "Authorization code expired", error_code="10007"
        )
        state, cookies = self._start(controller)

        result = controller.handle_callback("tiktok", {"code": "c", "state": state}, cookies)

        assert result.error == "token_exchange"
        assert session.query(SocialAccountModel).count() == 0

    def test_encryption_failure_on_save(self, session, controller):
        """Test an unusable master key is reported as a save failure, not a crash."""
        state, cookies = self._start(controller)

        with patch(
            "social_publisher.services.oauth_flow.upsert_account",
            side_effect=EncryptionError("Invalid master key"),
        ):
            result = controller.handle_callback(
                "tiktok", {"code": "c", "state": state}, cookies
            )

        assert result.phase == AuthorizationPhase.REJECTED
        assert result.error == "save_failed"
        assert sorted(result.clear_cookies) == sorted(FLOW_COOKIES)
        assert session.query(SocialAccountModel).count() == 0


@pytest.mark.parametrize(
    ("error", "error_type", "expected"),
    [
        ("access_denied", None, "access_denied"),
        ("server_error", "code_challenge", "code_challenge_error"),
        ("Temporarily Unavailable!", None, "temporarily_unavailable"),
        ("???", None, "unknown_error"),
    ],
)
def test_classify_callback_error(error, error_type, expected):
    assert classify_callback_error(error, error_type) == expected
