"""Wiring of the long-lived service objects shared by all requests.

The container is built once in the application lifespan and stored on
``app.state.services``; route dependencies read it from there.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from cryptography.fernet import Fernet

from linksense.aggregation.orchestrator import AggregationOrchestrator
from linksense.config import AppConfig, derive_fernet_key
from linksense.integrations.credentials.encryption import CredentialEncryption
from linksense.integrations.oauth.manager import OAuthIntegrationManager
from linksense.integrations.oauth.state import StateSigner
from linksense.observability.logging import get_logger
from linksense.storage.credential_store import CredentialStore, SqlCredentialStore
from linksense.storage.database import Database

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Long-lived services.

    Attributes:
        config: Service configuration
        store: Credential store
        client: Shared HTTP client for all provider calls
        oauth: Connect flow manager
        orchestrator: Aggregation orchestrator
        database: Database backing the store, if any
    """

    config: AppConfig
    store: CredentialStore
    client: httpx.AsyncClient
    oauth: OAuthIntegrationManager
    orchestrator: AggregationOrchestrator
    database: Optional[Database] = None

    async def close(self) -> None:
        await self.client.aclose()
        if self.database is not None:
            await self.database.close()


def _encryption_key(config: AppConfig) -> bytes:
    if config.encryption_key:
        return config.encryption_key.encode()
    # Development only: tokens stored with this key are unreadable after restart.
    logger.warning("encryption_key_missing", detail="generated a temporary key")
    return Fernet.generate_key()


def _state_key(config: AppConfig, fallback: bytes) -> bytes:
    if config.state_secret:
        return derive_fernet_key(config.state_secret)
    logger.warning("state_secret_missing", detail="signing OAuth state with the encryption key")
    return fallback


def build_services(
    config: AppConfig,
    store: Optional[CredentialStore] = None,
    client: Optional[httpx.AsyncClient] = None,
    database: Optional[Database] = None,
) -> ServiceContainer:
    """Assemble the service container.

    Args:
        config: Service configuration
        store: Credential store (defaults to a SQL store over ``database``)
        client: HTTP client (defaults to one using the configured provider timeout)
        database: Database for the default store

    Returns:
        Ready-to-use ServiceContainer

    Raises:
        ValueError: If neither a store nor a database is supplied
    """
    key = _encryption_key(config)
    if store is None:
        if database is None:
            raise ValueError("Either a credential store or a database is required")
        store = SqlCredentialStore(database, CredentialEncryption(key))

    if client is None:
        client = httpx.AsyncClient(timeout=config.provider_timeout_seconds)

    signer = StateSigner(_state_key(config, key), ttl_seconds=config.state_ttl_seconds)
    oauth = OAuthIntegrationManager(config, store, client, signer)
    orchestrator = AggregationOrchestrator(
        store,
        client,
        provider_timeout=config.provider_timeout_seconds,
        oauth_manager=oauth,
    )
    return ServiceContainer(
        config=config,
        store=store,
        client=client,
        oauth=oauth,
        orchestrator=orchestrator,
        database=database,
    )
