"""In-memory implementation of the credential store.

Dictionary-based storage suitable for development, testing and
single-instance deployments.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

from linksense.storage.credential_store import Credential, CredentialUpsert


class InMemoryCredentialStore:
    """In-memory implementation of CredentialStore.

    Attributes:
        _credentials: Credentials keyed by (user_id, provider)
        _lock: Asyncio lock serializing writes
    """

    def __init__(self) -> None:
        """Initialize the in-memory credential store."""
        self._credentials: dict[tuple[str, str], Credential] = {}
        self._lock = asyncio.Lock()

    async def get(self, user_id: str, provider: str) -> Optional[Credential]:
        async with self._lock:
            return self._credentials.get((user_id, provider))

    async def list_for_user(self, user_id: str) -> list[Credential]:
        async with self._lock:
            return sorted(
                (c for (uid, _), c in self._credentials.items() if uid == user_id),
                key=lambda c: c.provider,
            )

    async def list_active(self, user_id: str) -> list[Credential]:
        return [c for c in await self.list_for_user(user_id) if c.is_active]

    async def upsert(self, data: CredentialUpsert) -> Credential:
        now = datetime.now(timezone.utc)
        async with self._lock:
            key = (data.user_id, data.provider)
            existing = self._credentials.get(key)
            credential = Credential(
                **data.model_dump(),
                is_active=True,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            self._credentials[key] = credential
            return credential

    async def update_tokens(
        self,
        user_id: str,
        provider: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
    ) -> Credential:
        async with self._lock:
            existing = self._credentials.get((user_id, provider))
            if existing is None:
                raise LookupError(f"No {provider} credential for user {user_id}")
            updated = existing.model_copy(
                update={
                    "access_token": access_token,
                    "refresh_token": refresh_token or existing.refresh_token,
                    "expires_at": expires_at,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            self._credentials[(user_id, provider)] = updated
            return updated

    async def revoke(self, user_id: str, provider: str) -> bool:
        async with self._lock:
            existing = self._credentials.get((user_id, provider))
            if existing is None:
                return False
            self._credentials[(user_id, provider)] = existing.model_copy(
                update={
                    "is_active": False,
                    "access_token": None,
                    "refresh_token": None,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            return True
