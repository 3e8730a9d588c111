"""Authorization flow: consent redirect and callback handling.

The controller is framework-agnostic. It returns a FlowResult describing
the redirect to issue and the cookies to set or clear; the HTTP route turns
that into a response. Every callback clears the flow cookies, whatever the
outcome.
"""

import hmac
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import urlencode
from uuid import UUID

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from social_publisher.config import Settings, settings
from social_publisher.domain.enums import AuthorizationOutcome, AuthorizationPhase, Platform
from social_publisher.domain.models import LIMITED_ACCESS_SUFFIX, TokenResult
from social_publisher.domain.platforms import PlatformProfile, get_profile
from social_publisher.logging import get_logger
from social_publisher.services.accounts import expiry_from, upsert_account
from social_publisher.services.credentials import CredentialStore, credential_store_for
from social_publisher.services.encryption import EncryptionError
from social_publisher.services.oauth_state import (
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
    parse_state,
)
from social_publisher.services.token_exchange import (
    PlatformNotConfiguredError,
    TokenExchangeClient,
    TokenExchangeError,
    missing_scopes,
)

logger = get_logger(__name__)

STATE_COOKIE = "oauth_state"
VERIFIER_COOKIE = "oauth_code_verifier"
REDIRECT_URI_COOKIE = "oauth_redirect_uri"
FLOW_COOKIES = (STATE_COOKIE, VERIFIER_COOKIE, REDIRECT_URI_COOKIE)

CALLBACK_PATH = "/api/v1/oauth/callback/{platform}"
YOUTUBE_CHANNELS_URL = "https://www.googleapis.com/youtube/v3/channels"

_SAFE_ERROR_CODE = re.compile(r"[^a-z0-9_]+")


@dataclass(frozen=True)
class CookieSpec:
    """A cookie to set on the response."""

    name: str
    value: str
    max_age: int
    path: str


@dataclass
class FlowResult:
    """Outcome of one step of an authorization attempt."""

    phase: AuthorizationPhase
    redirect_url: str
    error: str | None = None
    set_cookies: list[CookieSpec] = field(default_factory=list)
    clear_cookies: list[str] = field(default_factory=list)
    cookie_path: str = "/"
    account_id: UUID | None = None
    missing_scopes: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.phase in (AuthorizationPhase.REDIRECTED, AuthorizationPhase.SAVED)


def classify_callback_error(error: str, error_type: str | None = None) -> str:
    """Map a platform's callback error parameters to an outcome code."""
    if error == "param_error" or error_type == "code_challenge":
        return AuthorizationOutcome.CODE_CHALLENGE_ERROR.value
    if error == "access_denied":
        return AuthorizationOutcome.ACCESS_DENIED.value
    return _SAFE_ERROR_CODE.sub("_", error.lower()).strip("_")[:64] or "unknown_error"


def _youtube_channel_title(
    token: TokenResult, http_client: httpx.Client | None, timeout: float
) -> str | None:
    params = {"part": "snippet", "mine": "true"}
    headers = {"Authorization": f"Bearer {token.access_token}"}
    try:
        if http_client is not None:
            response = http_client.get(
                YOUTUBE_CHANNELS_URL, params=params, headers=headers, timeout=timeout
            )
        else:
            with httpx.Client(timeout=timeout) as client:
                response = client.get(YOUTUBE_CHANNELS_URL, params=params, headers=headers)
        response.raise_for_status()
        items = response.json().get("items") or []
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("youtube_channel_lookup_failed", error=str(e))
        return None
    if not items:
        return None
    return items[0].get("snippet", {}).get("title")


class AuthorizationFlowController:
    """Drives START -> REDIRECTED and CALLBACK_RECEIVED -> SAVED | REJECTED."""

    def __init__(
        self,
        session: Session,
        credential_store: CredentialStore | None = None,
        token_client: TokenExchangeClient | None = None,
        http_client: httpx.Client | None = None,
        config: Settings | None = None,
    ):
        self._session = session
        self._config = config or settings
        self._credentials = credential_store or credential_store_for(session)
        self._token_client = token_client or TokenExchangeClient(
            self._credentials, http_client=http_client
        )
        self._http_client = http_client

    # -------------------------------------------------------------------------
    # URLs
    # -------------------------------------------------------------------------

    def callback_path(self, platform: Platform) -> str:
        return CALLBACK_PATH.format(platform=platform.value)

    def redirect_uri(self, platform: Platform) -> str:
        return f"{self._config.api_public_url.rstrip('/')}{self.callback_path(platform)}"

    def ui_redirect(self, **params: str) -> str:
        base = f"{self._config.app_url.rstrip('/')}{self._config.accounts_ui_path}"
        return f"{base}?{urlencode(params)}"

    # -------------------------------------------------------------------------
    # START
    # -------------------------------------------------------------------------

    def start_authorization(self, user_id: str, platform: Platform | str) -> FlowResult:
        """Build the consent redirect and the cookies that bind the callback to it."""
        profile = get_profile(platform)
        credentials = self._credentials.get_credentials(profile.platform)
        if not credentials.is_configured:
            logger.error("oauth_platform_not_configured", platform=profile.platform.value)
            return FlowResult(
                phase=AuthorizationPhase.REJECTED,
                redirect_url=self.ui_redirect(
                    error=AuthorizationOutcome.PLATFORM_NOT_CONFIGURED.value
                ),
                error=AuthorizationOutcome.PLATFORM_NOT_CONFIGURED.value,
            )

        state = generate_state(user_id, profile.platform)
        redirect_uri = self.redirect_uri(profile.platform)
        params: dict[str, str] = {
            profile.client_id_field: credentials.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": profile.scope_string(),
            "state": state,
        }
        params.update(dict(profile.extra_auth_params))

        cookie_path = self.callback_path(profile.platform)
        max_age = self._config.oauth_cookie_max_age
        cookies = [
            CookieSpec(STATE_COOKIE, state, max_age, cookie_path),
            CookieSpec(REDIRECT_URI_COOKIE, redirect_uri, max_age, cookie_path),
        ]

        if profile.requires_pkce:
            verifier = generate_code_verifier()
            params["code_challenge"] = generate_code_challenge(
                verifier, profile.challenge_encoding
            )
            params["code_challenge_method"] = "S256"
            cookies.append(CookieSpec(VERIFIER_COOKIE, verifier, max_age, cookie_path))

        logger.info(
            "oauth_authorization_started",
            platform=profile.platform.value,
            user_id=user_id,
            pkce=profile.requires_pkce,
        )
        return FlowResult(
            phase=AuthorizationPhase.REDIRECTED,
            redirect_url=f"{profile.auth_url}?{urlencode(params)}",
            set_cookies=cookies,
            cookie_path=cookie_path,
        )

    # -------------------------------------------------------------------------
    # CALLBACK
    # -------------------------------------------------------------------------

    def handle_callback(
        self,
        platform: Platform | str,
        params: Mapping[str, str],
        cookies: Mapping[str, str],
    ) -> FlowResult:
        """Validate the callback, exchange the code, and save the account."""
        profile = get_profile(platform)
        cookie_path = self.callback_path(profile.platform)

        def reject(code: str, **extra: str) -> FlowResult:
            return FlowResult(
                phase=AuthorizationPhase.REJECTED,
                redirect_url=self.ui_redirect(error=code, **extra),
                error=code,
                clear_cookies=list(FLOW_COOKIES),
                cookie_path=cookie_path,
            )

        error = params.get("error")
        if error:
            code = classify_callback_error(error, params.get("error_type"))
            logger.warning(
                "oauth_callback_platform_error",
                platform=profile.platform.value,
                error=error,
                error_type=params.get("error_type"),
                description=params.get("error_description"),
            )
            extra = {}
            if params.get("error_description"):
                extra["error_description"] = params["error_description"][:200]
            return reject(code, **extra)

        code = params.get("code")
        state = params.get("state")
        cookie_state = cookies.get(STATE_COOKIE)
        if not code or not state or not cookie_state or not hmac.compare_digest(
            state.encode(), cookie_state.encode()
        ):
            logger.warning(
                "oauth_callback_state_rejected",
                platform=profile.platform.value,
                has_code=bool(code),
                has_state=bool(state),
                has_cookie=bool(cookie_state),
            )
            return reject(AuthorizationOutcome.INVALID_REQUEST.value)

        parsed = parse_state(state)
        if parsed is None:
            logger.warning("oauth_callback_state_unparseable", platform=profile.platform.value)
            return reject(AuthorizationOutcome.INVALID_STATE.value)

        if parsed.platform != profile.platform:
            logger.warning(
                "oauth_callback_platform_mismatch",
                route_platform=profile.platform.value,
                state_platform=parsed.platform.value,
            )
            return reject(AuthorizationOutcome.PLATFORM_MISMATCH.value)

        verifier = cookies.get(VERIFIER_COOKIE)
        if profile.requires_pkce and not verifier:
            logger.warning("oauth_callback_missing_verifier", platform=profile.platform.value)
            return reject(AuthorizationOutcome.MISSING_CODE_VERIFIER.value)

        redirect_uri = cookies.get(REDIRECT_URI_COOKIE) or self.redirect_uri(profile.platform)

        try:
            token = self._token_client.exchange_code(
                profile.platform,
                code,
                redirect_uri,
                code_verifier=verifier if profile.requires_pkce else None,
            )
        except PlatformNotConfiguredError:
            return reject(AuthorizationOutcome.PLATFORM_NOT_CONFIGURED.value)
        except TokenExchangeError as e:
            logger.error(
                "oauth_token_exchange_failed",
                platform=profile.platform.value,
                user_id=parsed.user_id,
                error_code=e.error_code,
                status_code=e.status_code,
                detail=str(e),
            )
            return reject(AuthorizationOutcome.TOKEN_EXCHANGE.value)

        missing = missing_scopes(profile.scopes, token.granted_scopes)
        account_name = self.account_name(profile, token)
        if missing:
            account_name = f"{account_name}{LIMITED_ACCESS_SUFFIX}"

        try:
            account = upsert_account(
                self._session,
                user_id=parsed.user_id,
                platform=profile.platform,
                account_name=account_name,
                access_token=token.access_token,
                refresh_token=token.refresh_token,
                expires_at=expiry_from(token.expires_in) if token.expires_in else None,
            )
            self._session.commit()
        except (SQLAlchemyError, EncryptionError) as e:
            self._session.rollback()
            logger.error(
                "oauth_account_save_failed", platform=profile.platform.value, error=str(e)
            )
            return reject(AuthorizationOutcome.SAVE_FAILED.value)

        ui_params = {"connected": profile.platform.value}
        if missing:
            ui_params["scope_warning"] = "true"
            ui_params["missing_scopes"] = ",".join(missing)
            logger.warning(
                "oauth_scopes_missing",
                platform=profile.platform.value,
                account_id=str(account.id),
                missing_scopes=missing,
            )

        logger.info(
            "oauth_account_connected",
            platform=profile.platform.value,
            account_id=str(account.id),
            limited=bool(missing),
        )
        return FlowResult(
            phase=AuthorizationPhase.SAVED,
            redirect_url=self.ui_redirect(**ui_params),
            clear_cookies=list(FLOW_COOKIES),
            cookie_path=cookie_path,
            account_id=account.id,
            missing_scopes=missing,
        )

    def account_name(self, profile: PlatformProfile, token: TokenResult) -> str:
        """Human-readable account name for a freshly exchanged token."""
        if profile.platform == Platform.YOUTUBE:
            title = _youtube_channel_title(
                token, self._http_client, self._config.http_status_timeout
            )
            return title or "YouTube Channel"
        if profile.platform == Platform.TIKTOK:
            if token.subject:
                return f"TikTok User {token.subject[:6]}"
            return "TikTok User"
        return f"{profile.display_name} Account"
