"""Pytest configuration and shared fixtures for the test suite."""

from typing import Any, AsyncGenerator, Callable

import httpx
import pytest
from cryptography.fernet import Fernet

from linksense.config import AppConfig, ProviderCredentials
from linksense.integrations.credentials.encryption import CredentialEncryption
from linksense.storage.credential_store import CredentialUpsert, SqlCredentialStore
from linksense.storage.database import Database, DatabaseConfig
from linksense.storage.memory import InMemoryCredentialStore

# Configure pytest-asyncio to use auto mode
pytest_plugins = ["pytest_asyncio"]

Handler = Callable[[httpx.Request], httpx.Response]


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
async def test_db() -> AsyncGenerator[Database, None]:
    """Create an in-memory SQLite database for testing.

    Yields:
        Database instance with tables created
    """
    db = Database(DatabaseConfig(url="sqlite+aiosqlite:///:memory:", echo=False))
    await db.create_tables()

    yield db

    await db.drop_tables()
    await db.close()


@pytest.fixture
def encryption_key() -> bytes:
    """Generate test encryption key."""
    return Fernet.generate_key()


@pytest.fixture
def sql_store(test_db: Database, encryption_key: bytes) -> SqlCredentialStore:
    return SqlCredentialStore(test_db, CredentialEncryption(encryption_key))


@pytest.fixture
def memory_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration with a client registration for every provider."""
    providers = {
        provider: ProviderCredentials(client_id=f"{provider}-client", client_secret="secret")
        for provider in ("chatwork", "slack", "discord", "google-meet", "zoom", "line-works")
    }
    providers["teams"] = ProviderCredentials(
        client_id="teams-client", client_secret="secret", tenant_id="contoso-tenant"
    )
    return AppConfig(
        app_base_url="https://app.example.com",
        public_url="https://api.example.com",
        api_secret="test-api-secret",
        providers=providers,
    )


def _mock_client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _credential_data(provider: str, user_id: str = "user-1", **overrides: Any) -> CredentialUpsert:
    fields: dict[str, Any] = {
        "user_id": user_id,
        "provider": provider,
        "access_token": f"{provider}-access",
        "refresh_token": f"{provider}-refresh",
        "external_team_name": f"{provider} team",
        "external_user_name": "Alice",
    }
    fields.update(overrides)
    return CredentialUpsert(**fields)


@pytest.fixture
def make_client() -> Callable[[Handler], httpx.AsyncClient]:
    """Factory for HTTP clients whose requests are answered by a handler function."""
    return _mock_client


@pytest.fixture
def make_credential() -> Callable[..., CredentialUpsert]:
    """Factory for CredentialUpsert records with realistic defaults."""
    return _credential_data
