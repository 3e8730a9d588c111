"""Authorization-code and refresh-token exchange against platform token endpoints.

One client serves every platform. Request field names and the response
nesting come from the platform profile; every response is normalized into
a TokenResult.
"""

import re
from typing import Any

import httpx

from social_publisher.config import settings
from social_publisher.domain.enums import Platform
from social_publisher.domain.models import TokenResult
from social_publisher.domain.platforms import PlatformProfile, get_profile
from social_publisher.logging import get_logger
from social_publisher.services.credentials import CredentialStore

logger = get_logger(__name__)

_SCOPE_SPLIT = re.compile(r"[,\s]+")
_SCOPE_PUNCTUATION = re.compile(r"[._]+")


class TokenExchangeError(Exception):
    """Raised when a platform token endpoint rejects a request or is unreachable."""

    def __init__(self, message: str, *, status_code: int | None = None, error_code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class PlatformNotConfiguredError(Exception):
    """Raised when a platform has no OAuth client credentials."""

    def __init__(self, platform: Platform):
        super().__init__(f"{platform.value} OAuth client credentials are not configured")
        self.platform = platform


def normalize_scope(scope: str) -> str:
    """Case-fold and treat '.' and '_' as the same separator."""
    return _SCOPE_PUNCTUATION.sub("_", scope.strip().lower())


def parse_granted_scopes(value: Any) -> list[str] | None:
    """Accept a delimited string or a list; None when the platform sent nothing."""
    if value is None:
        return None
    if isinstance(value, str):
        return [scope for scope in _SCOPE_SPLIT.split(value) if scope]
    if isinstance(value, list | tuple):
        return [str(scope) for scope in value if scope]
    return None


def missing_scopes(required: tuple[str, ...] | list[str], granted: list[str] | None) -> list[str]:
    """Required scopes absent from the granted list.

    When the platform did not report granted scopes nothing is considered
    missing.
    """
    if granted is None:
        return []
    granted_normalized = {normalize_scope(scope) for scope in granted}
    return [scope for scope in required if normalize_scope(scope) not in granted_normalized]


def _coerce_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _extract_error(body: dict[str, Any], payload: dict[str, Any]) -> tuple[str, str] | None:
    """Return (code, description) if the body reports an error."""
    error = body.get("error")
    if isinstance(error, dict):
        code = str(error.get("code") or "")
        if code and code != "ok":
            return code, str(error.get("message") or code)
    elif error:
        return str(error), str(body.get("error_description") or error)

    error_code = payload.get("error_code")
    if error_code not in (None, 0, "0"):
        return str(error_code), str(payload.get("description") or error_code)
    return None


def parse_token_response(profile: PlatformProfile, body: dict[str, Any]) -> TokenResult:
    """Normalize a token endpoint response body.

    Raises:
        TokenExchangeError: If the body reports an error or has no access token.
    """
    payload = body
    if profile.token_payload_key and isinstance(body.get(profile.token_payload_key), dict):
        payload = body[profile.token_payload_key]

    error = _extract_error(body, payload)
    if error:
        code, description = error
        raise TokenExchangeError(description, error_code=code)

    access_token = payload.get("access_token") or body.get("access_token")
    if not access_token:
        raise TokenExchangeError("Token response did not include an access token")

    scope_value = payload.get("scope", body.get("scope"))
    return TokenResult(
        access_token=access_token,
        refresh_token=payload.get("refresh_token") or body.get("refresh_token"),
        expires_in=_coerce_int(payload.get("expires_in", body.get("expires_in"))),
        granted_scopes=parse_granted_scopes(scope_value),
        subject=payload.get("open_id") or body.get("open_id"),
        raw=body,
    )


class TokenExchangeClient:
    """Exchanges codes and refresh tokens with any configured platform."""

    def __init__(
        self,
        credential_store: CredentialStore,
        http_client: httpx.Client | None = None,
        timeout: float | None = None,
    ):
        self._credentials = credential_store
        self._http_client = http_client
        self._timeout = timeout if timeout is not None else settings.http_status_timeout

    def exchange_code(
        self,
        platform: Platform | str,
        code: str,
        redirect_uri: str,
        code_verifier: str | None = None,
    ) -> TokenResult:
        """Trade an authorization code for tokens.

        Raises:
            PlatformNotConfiguredError: If client credentials are missing.
            TokenExchangeError: If the platform rejects the code or cannot be reached.
        """
        profile = get_profile(platform)
        form = self._client_fields(profile)
        form.update(
            {
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
            }
        )
        if code_verifier:
            form["code_verifier"] = code_verifier

        result = self._post(profile, form)
        logger.info(
            "token_exchange_succeeded",
            platform=profile.platform.value,
            has_refresh_token=bool(result.refresh_token),
            expires_in=result.expires_in,
        )
        return result

    def refresh(self, platform: Platform | str, refresh_token: str) -> TokenResult:
        """Trade a refresh token for a new access token.

        The previous refresh token is kept when the platform does not rotate it.
        """
        profile = get_profile(platform)
        form = self._client_fields(profile)
        form.update({"grant_type": "refresh_token", "refresh_token": refresh_token})

        result = self._post(profile, form)
        if not result.refresh_token:
            result.refresh_token = refresh_token
        logger.info("token_refresh_succeeded", platform=profile.platform.value)
        return result

    def _client_fields(self, profile: PlatformProfile) -> dict[str, str]:
        credentials = self._credentials.get_credentials(profile.platform)
        if not credentials.is_configured:
            raise PlatformNotConfiguredError(profile.platform)
        return {
            profile.client_id_field: credentials.client_id,
            "client_secret": credentials.client_secret,
        }

    def _post(self, profile: PlatformProfile, form: dict[str, str]) -> TokenResult:
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        try:
            if self._http_client is not None:
                response = self._http_client.post(
                    profile.token_url, data=form, headers=headers, timeout=self._timeout
                )
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.post(profile.token_url, data=form, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(
                "token_endpoint_unreachable",
                platform=profile.platform.value,
                error=str(e),
            )
            raise TokenExchangeError(f"Token endpoint unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not isinstance(body, dict):
            body = {}

        if response.status_code >= 400:
            nested = body.get(profile.token_payload_key) if profile.token_payload_key else None
            error = _extract_error(body, nested if isinstance(nested, dict) else body)
            code, description = error or ("http_error", response.text[:500])
            logger.warning(
                "token_endpoint_rejected",
                platform=profile.platform.value,
                status_code=response.status_code,
                error_code=code,
                description=description,
            )
            raise TokenExchangeError(
                description, status_code=response.status_code, error_code=code
            )

        try:
            return parse_token_response(profile, body)
        except TokenExchangeError as e:
            e.status_code = response.status_code
            logger.warning(
                "token_endpoint_error_body",
                platform=profile.platform.value,
                error_code=e.error_code,
                description=str(e),
            )
            raise
