"""Storage layer for integration credentials.

This module provides the credential store interface together with a
SQLAlchemy-backed implementation and an in-memory implementation.
"""

from linksense.storage.credential_store import (
    Credential,
    CredentialStore,
    CredentialUpsert,
    SqlCredentialStore,
)
from linksense.storage.database import Database, DatabaseConfig
from linksense.storage.memory import InMemoryCredentialStore

__all__ = [
    "Credential",
    "CredentialStore",
    "CredentialUpsert",
    "Database",
    "DatabaseConfig",
    "InMemoryCredentialStore",
    "SqlCredentialStore",
]
