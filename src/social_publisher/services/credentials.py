"""OAuth client credential resolution.

Credentials come from an ordered list of sources; the first non-empty value
wins, field by field. The default order is persisted admin settings, then
environment configuration. Creating the settings row is a separate
bootstrap step and never happens during a lookup.
"""

from collections.abc import Sequence
from typing import Any, Protocol

from sqlalchemy.orm import Session

from social_publisher.config import Settings, settings
from social_publisher.db.models import AppSettingsModel
from social_publisher.domain.enums import Platform
from social_publisher.domain.models import PlatformCredentials
from social_publisher.logging import get_logger
from social_publisher.services.encryption import decrypt_token, encrypt_token

logger = get_logger(__name__)

SETTINGS_ROW_ID = 1
MASKED_SECRET = "•" * 17


def client_id_key(platform: Platform) -> str:
    return f"{platform.value}ClientId"


def client_secret_key(platform: Platform) -> str:
    return f"{platform.value}ClientSecret"


class CredentialSource(Protocol):
    """Anything that can supply a (client_id, client_secret) pair."""

    name: str

    def lookup(self, platform: Platform) -> tuple[str | None, str | None]: ...


class EnvironmentCredentialSource:
    """Reads ``{PLATFORM}_CLIENT_ID`` / ``{PLATFORM}_CLIENT_SECRET`` settings."""

    name = "environment"

    def __init__(self, config: Settings | None = None):
        self._config = config or settings

    def lookup(self, platform: Platform) -> tuple[str | None, str | None]:
        return (
            getattr(self._config, f"{platform.value}_client_id", None),
            getattr(self._config, f"{platform.value}_client_secret", None),
        )


class PersistedCredentialSource:
    """Reads the admin-managed settings row. A missing row yields nothing."""

    name = "settings"

    def __init__(self, session: Session):
        self._session = session

    def lookup(self, platform: Platform) -> tuple[str | None, str | None]:
        row = self._session.get(AppSettingsModel, SETTINGS_ROW_ID)
        if row is None or not row.credentials:
            return None, None

        encrypted_secret = row.credentials.get(client_secret_key(platform))
        return (
            row.credentials.get(client_id_key(platform)) or None,
            decrypt_token(encrypted_secret) if encrypted_secret else None,
        )


class CredentialStore:
    """Resolves per-platform OAuth client credentials."""

    def __init__(self, sources: Sequence[CredentialSource]):
        self._sources = list(sources)

    def get_credentials(self, platform: Platform | str) -> PlatformCredentials:
        """Resolve credentials; returns empty strings when nothing is configured."""
        platform = Platform(platform)
        client_id = ""
        client_secret = ""
        for source in self._sources:
            source_id, source_secret = source.lookup(platform)
            client_id = client_id or source_id or ""
            client_secret = client_secret or source_secret or ""
            if client_id and client_secret:
                break
        return PlatformCredentials(client_id=client_id, client_secret=client_secret)


def credential_store_for(session: Session) -> CredentialStore:
    """Default store: persisted settings override environment configuration."""
    return CredentialStore([PersistedCredentialSource(session), EnvironmentCredentialSource()])


def bootstrap_app_settings(session: Session) -> AppSettingsModel:
    """Create the settings row with empty credentials if it does not exist."""
    row = session.get(AppSettingsModel, SETTINGS_ROW_ID)
    if row is None:
        row = AppSettingsModel(id=SETTINGS_ROW_ID, credentials={})
        session.add(row)
        session.flush()
        logger.info("app_settings_bootstrapped")
    return row


def get_masked_credentials(session: Session) -> dict[str, dict[str, Any]]:
    """Effective credentials per platform with secrets masked."""
    store = credential_store_for(session)
    result: dict[str, dict[str, Any]] = {}
    for platform in Platform:
        credentials = store.get_credentials(platform)
        result[platform.value] = {
            "clientId": credentials.client_id,
            "clientSecret": MASKED_SECRET if credentials.client_secret else "",
            "configured": credentials.is_configured,
        }
    return result


def update_platform_credentials(
    session: Session,
    platform: Platform | str,
    client_id: str,
    client_secret: str | None,
) -> None:
    """Persist admin-supplied credentials for one platform.

    A secret equal to the mask (as returned by ``get_masked_credentials``)
    or left empty keeps the stored secret.
    """
    platform = Platform(platform)
    row = bootstrap_app_settings(session)
    credentials = dict(row.credentials or {})

    credentials[client_id_key(platform)] = client_id.strip()
    if client_secret and client_secret != MASKED_SECRET:
        credentials[client_secret_key(platform)] = encrypt_token(client_secret.strip())

    # Reassign so the JSON column is marked dirty
    row.credentials = credentials
    session.flush()
    logger.info("platform_credentials_updated", platform=platform.value)
