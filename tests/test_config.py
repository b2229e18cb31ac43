"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from linksense.config import (
    AppConfig,
    ProviderCredentials,
    derive_fernet_key,
    load_config_from_env,
)
from linksense.integrations.credentials.encryption import CredentialEncryption


class TestAppConfig:
    """Tests for AppConfig."""

    def test_redirect_uri_should_default_to_service_callback(self) -> None:
        """Redirect URIs are derived from the public URL."""
        config = AppConfig(public_url="https://api.example.com/")

        assert config.redirect_uri_for("google-meet") == (
            "https://api.example.com/api/auth/google-meet/callback"
        )

    def test_redirect_uri_override_should_win(self) -> None:
        """An explicit redirect URI replaces the derived one."""
        config = AppConfig(
            providers={"zoom": ProviderCredentials(redirect_uri="https://edge.example.com/cb")}
        )

        assert config.redirect_uri_for("zoom") == "https://edge.example.com/cb"

    def test_unknown_provider_should_be_rejected(self) -> None:
        """Registrations for providers that are not integrated are a configuration error."""
        with pytest.raises(ValidationError):
            AppConfig(providers={"myspace": ProviderCredentials(client_id="x")})

    def test_secrets_should_not_appear_in_repr(self) -> None:
        """Sensitive values are hidden from repr."""
        config = AppConfig(
            api_secret="top-secret",
            providers={"slack": ProviderCredentials(client_id="id", client_secret="shh")},
        )

        assert "top-secret" not in repr(config)
        assert "shh" not in repr(config)

    def test_derived_key_should_be_a_valid_fernet_key(self) -> None:
        """Any secret string can be turned into a Fernet key."""
        encryptor = CredentialEncryption(derive_fernet_key("short secret"))

        assert encryptor.decrypt(encryptor.encrypt("state")) == "state"


class TestLoadConfigFromEnv:
    """Tests for load_config_from_env."""

    def test_should_read_provider_credentials(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Provider variables use the upper-cased id with underscores."""
        monkeypatch.setenv("LINKSENSE_GOOGLE_MEET_CLIENT_ID", "google-id")
        monkeypatch.setenv("LINKSENSE_GOOGLE_MEET_CLIENT_SECRET", "google-secret")
        monkeypatch.setenv("LINKSENSE_TEAMS_TENANT_ID", "contoso")
        monkeypatch.setenv("LINKSENSE_PROVIDER_TIMEOUT_SECONDS", "5")
        monkeypatch.setenv("LINKSENSE_SECURE_COOKIES", "true")

        config = load_config_from_env()

        assert config.credentials_for("google-meet").client_id == "google-id"
        assert config.credentials_for("google-meet").client_secret == "google-secret"
        assert config.credentials_for("teams").tenant_id == "contoso"
        assert config.provider_timeout_seconds == 5.0
        assert config.secure_cookies is True

    def test_unset_provider_should_have_empty_credentials(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Providers without variables get an empty registration."""
        for suffix in ("CLIENT_ID", "CLIENT_SECRET", "TENANT_ID", "REDIRECT_URI"):
            monkeypatch.delenv(f"LINKSENSE_LINE_WORKS_{suffix}", raising=False)

        config = load_config_from_env()

        assert config.credentials_for("line-works").client_id is None
