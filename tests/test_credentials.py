"""Tests for OAuth client credential resolution."""

from conftest import FixedCredentialSource

from social_publisher.config import Settings
from social_publisher.db.models import AppSettingsModel
from social_publisher.domain.enums import Platform
from social_publisher.services.credentials import (
    MASKED_SECRET,
    SETTINGS_ROW_ID,
    CredentialStore,
    EnvironmentCredentialSource,
    PersistedCredentialSource,
    bootstrap_app_settings,
    credential_store_for,
    get_masked_credentials,
    update_platform_credentials,
)


class TestCredentialStore:
    """Tests for source ordering."""

    def test_first_source_wins(self):
        store = CredentialStore(
            [FixedCredentialSource("db-id", "db-secret"), FixedCredentialSource("env-id", "env-secret")]
        )

        credentials = store.get_credentials(Platform.TIKTOK)

        assert credentials.client_id == "db-id"
        assert credentials.client_secret == "db-secret"

    def test_fields_resolve_independently(self):
        """Test a source missing one field lets a later source fill it."""
        store = CredentialStore(
            [FixedCredentialSource("db-id", None), FixedCredentialSource("env-id", "env-secret")]
        )

        credentials = store.get_credentials(Platform.TIKTOK)

        assert credentials.client_id == "db-id"
        assert credentials.client_secret == "env-secret"
        assert credentials.is_configured

    def test_nothing_configured(self):
        credentials = CredentialStore([FixedCredentialSource(None, None)]).get_credentials("twitter")

        assert credentials.client_id == ""
        assert credentials.client_secret == ""
        assert not credentials.is_configured

    def test_environment_source(self):
        config = Settings(instagram_client_id="ig-id", instagram_client_secret="ig-secret")

        assert EnvironmentCredentialSource(config).lookup(Platform.INSTAGRAM) == (
            "ig-id",
            "ig-secret",
        )


class TestPersistedCredentials:
    """Tests for the admin-managed settings row."""

    def test_missing_row_yields_nothing(self, session):
        assert PersistedCredentialSource(session).lookup(Platform.YOUTUBE) == (None, None)

    def test_lookup_never_creates_row(self, session):
        credential_store_for(session).get_credentials(Platform.YOUTUBE)

        assert session.get(AppSettingsModel, SETTINGS_ROW_ID) is None

    def test_bootstrap_is_idempotent(self, session):
        first = bootstrap_app_settings(session)
        second = bootstrap_app_settings(session)

        assert first is second
        assert first.credentials == {}

    def test_persisted_overrides_environment(self, session):
        update_platform_credentials(session, Platform.YOUTUBE, "db-client", "db-secret")
        session.commit()

        credentials = credential_store_for(session).get_credentials(Platform.YOUTUBE)

        assert credentials.client_id == "db-client"
        assert credentials.client_secret == "db-secret"

    def test_secret_is_stored_encrypted(self, session):
        update_platform_credentials(session, Platform.TWITTER, "tw-client", "tw-secret")
        session.commit()

        row = session.get(AppSettingsModel, SETTINGS_ROW_ID)
        assert row.credentials["twitterClientId"] == "tw-client"
        assert row.credentials["twitterClientSecret"] != "tw-secret"

    def test_masked_secret_keeps_stored_secret(self, session):
        update_platform_credentials(session, Platform.TWITTER, "tw-client", "tw-secret")
        update_platform_credentials(session, Platform.TWITTER, "tw-client-2", MASKED_SECRET)
        session.commit()

        credentials = credential_store_for(session).get_credentials(Platform.TWITTER)

        assert credentials.client_id == "tw-client-2"
        assert credentials.client_secret == "tw-secret"

    def test_masked_view(self, session):
        masked = get_masked_credentials(session)

        assert masked["tiktok"]["clientId"] == "tiktok-client-key"
        assert masked["tiktok"]["clientSecret"] == MASKED_SECRET
        assert masked["tiktok"]["configured"] is True
        assert masked["facebook"] == {"clientId": "", "clientSecret": "", "configured": False}
