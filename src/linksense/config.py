"""Application configuration models and utilities.

This module provides configuration for the integration service: OAuth client
credentials per provider, secrets for token encryption and state signing,
and the tunables of the aggregation fan-out.
"""

import base64
import hashlib
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Canonical provider order; aggregation results and status listings follow it.
SUPPORTED_PROVIDERS: tuple[str, ...] = (
    "chatwork",
    "slack",
    "discord",
    "teams",
    "google-meet",
    "zoom",
    "line-works",
)


class ProviderCredentials(BaseModel):
    """OAuth client registration for a single provider.

    Attributes:
        client_id: OAuth client ID issued by the provider
        client_secret: OAuth client secret (sensitive - not logged)
        tenant_id: Directory tenant (Microsoft Teams only)
        redirect_uri: Explicit callback URL overriding the derived one
    """

    model_config = ConfigDict(frozen=True)

    client_id: Optional[str] = None
    client_secret: Optional[str] = Field(default=None, repr=False)
    tenant_id: Optional[str] = None
    redirect_uri: Optional[str] = None


class AppConfig(BaseModel):
    """Global service configuration.

    Attributes:
        app_base_url: Front-end base URL that OAuth callbacks redirect back to
        public_url: Externally reachable URL of this service, used for redirect URIs
        database_url: SQLAlchemy async database URL
        encryption_key: Fernet key for tokens at rest (sensitive)
        state_secret: Secret used to sign OAuth state values (sensitive)
        api_secret: Shared secret checked by the X-API-Key dependency (sensitive)
        provider_timeout_seconds: Budget for a single provider during aggregation
        state_ttl_seconds: Lifetime of an OAuth state value
        secure_cookies: Mark the OAuth nonce cookie Secure
        log_level: Logging level
        json_logs: Emit JSON logs instead of console output
        providers: Client registrations keyed by provider id
    """

    app_base_url: str = "http://localhost:3000"
    public_url: str = "http://localhost:8000"
    database_url: str = "sqlite+aiosqlite:///./linksense.db"
    encryption_key: Optional[str] = Field(default=None, repr=False)
    state_secret: Optional[str] = Field(default=None, repr=False)
    api_secret: Optional[str] = Field(default=None, repr=False)
    provider_timeout_seconds: float = Field(default=20.0, gt=0)
    state_ttl_seconds: int = Field(default=600, gt=0)
    secure_cookies: bool = False
    log_level: str = "INFO"
    json_logs: bool = True
    providers: dict[str, ProviderCredentials] = Field(default_factory=dict)

    @field_validator("app_base_url", "public_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs so paths can be appended directly."""
        return v.rstrip("/")

    @field_validator("providers")
    @classmethod
    def validate_provider_ids(
        cls, v: dict[str, ProviderCredentials]
    ) -> dict[str, ProviderCredentials]:
        """Reject registrations for providers the service does not integrate."""
        unknown = sorted(set(v) - set(SUPPORTED_PROVIDERS))
        if unknown:
            raise ValueError(f"Unknown providers in configuration: {', '.join(unknown)}")
        return v

    def credentials_for(self, provider: str) -> ProviderCredentials:
        """Get the client registration for a provider (empty if unset)."""
        return self.providers.get(provider, ProviderCredentials())

    def redirect_uri_for(self, provider: str) -> str:
        """Get the OAuth redirect URI registered for a provider.

        Args:
            provider: Provider identifier

        Returns:
            The explicit override if configured, else the service callback route
        """
        override = self.credentials_for(provider).redirect_uri
        if override:
            return override
        return f"{self.public_url}/api/auth/{provider}/callback"


def derive_fernet_key(secret: str) -> bytes:
    """Derive a Fernet key from an arbitrary secret string.

    Args:
        secret: Secret of any length

    Returns:
        32 url-safe base64-encoded bytes
    """
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def load_config_from_env() -> AppConfig:
    """Load service configuration from environment variables.

    Automatically loads variables from .env file if present in the project root.

    Reads configuration from environment variables with the following patterns:
    - LINKSENSE_APP_BASE_URL: Front-end URL for post-OAuth redirects
    - LINKSENSE_PUBLIC_URL: URL of this service (redirect URI base)
    - LINKSENSE_DATABASE_URL: Async database URL
    - LINKSENSE_ENCRYPTION_KEY: Fernet key for tokens at rest
    - LINKSENSE_STATE_SECRET: Secret for signing OAuth state
    - LINKSENSE_API_SECRET: Shared API secret
    - LINKSENSE_PROVIDER_TIMEOUT_SECONDS: Per-provider aggregation timeout
    - LINKSENSE_STATE_TTL_SECONDS: OAuth state lifetime
    - LINKSENSE_SECURE_COOKIES: Mark cookies Secure (true/false)
    - LINKSENSE_LOG_LEVEL / LINKSENSE_JSON_LOGS: Logging setup
    - LINKSENSE_<PROVIDER>_CLIENT_ID, _CLIENT_SECRET, _TENANT_ID, _REDIRECT_URI
      where <PROVIDER> is the provider id upper-cased with dashes as
      underscores (e.g. LINKSENSE_GOOGLE_MEET_CLIENT_ID)

    Returns:
        AppConfig loaded from environment

    Example:
        >>> import os
        >>> os.environ["LINKSENSE_SLACK_CLIENT_ID"] = "123.456"
        >>> config = load_config_from_env()
        >>> config.credentials_for("slack").client_id
        '123.456'
    """
    load_dotenv()

    providers: dict[str, ProviderCredentials] = {}
    for provider in SUPPORTED_PROVIDERS:
        prefix = f"LINKSENSE_{provider.upper().replace('-', '_')}_"
        values = {
            "client_id": os.getenv(f"{prefix}CLIENT_ID"),
            "client_secret": os.getenv(f"{prefix}CLIENT_SECRET"),
            "tenant_id": os.getenv(f"{prefix}TENANT_ID"),
            "redirect_uri": os.getenv(f"{prefix}REDIRECT_URI"),
        }
        if any(values.values()):
            providers[provider] = ProviderCredentials(**values)

    return AppConfig(
        app_base_url=os.getenv("LINKSENSE_APP_BASE_URL", "http://localhost:3000"),
        public_url=os.getenv("LINKSENSE_PUBLIC_URL", "http://localhost:8000"),
        database_url=os.getenv("LINKSENSE_DATABASE_URL", "sqlite+aiosqlite:///./linksense.db"),
        encryption_key=os.getenv("LINKSENSE_ENCRYPTION_KEY"),
        state_secret=os.getenv("LINKSENSE_STATE_SECRET"),
        api_secret=os.getenv("LINKSENSE_API_SECRET"),
        provider_timeout_seconds=float(os.getenv("LINKSENSE_PROVIDER_TIMEOUT_SECONDS", "20")),
        state_ttl_seconds=int(os.getenv("LINKSENSE_STATE_TTL_SECONDS", "600")),
        secure_cookies=_env_flag("LINKSENSE_SECURE_COOKIES", "false"),
        log_level=os.getenv("LINKSENSE_LOG_LEVEL", "INFO"),
        json_logs=_env_flag("LINKSENSE_JSON_LOGS", "true"),
        providers=providers,
    )
