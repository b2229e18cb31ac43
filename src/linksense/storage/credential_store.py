"""Credential store interface and SQLAlchemy implementation.

A credential is the persisted result of a completed OAuth flow for one
(user, provider) pair. The store guarantees at most one credential per pair:
reconnecting updates the existing row, disconnecting deactivates it.
"""

from datetime import datetime, timezone
from typing import Optional, Protocol

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from linksense.integrations.credentials.encryption import CredentialEncryption
from linksense.observability.logging import get_logger
from linksense.storage.database import Database
from linksense.storage.models import CredentialModel

logger = get_logger(__name__)


class Credential(BaseModel):
    """Decrypted credential as seen by the rest of the service.

    Attributes:
        user_id: Owning user identifier
        provider: Provider identifier
        access_token: Plaintext access token (None once disconnected)
        refresh_token: Plaintext refresh token, if the provider issued one
        scope: Granted scope string
        token_type: Token type
        expires_at: Access token expiry (UTC)
        external_team_id: Provider-side team/workspace/org identifier
        external_team_name: Provider-side team/workspace/org name
        external_user_name: Display name of the connected account
        is_active: Whether the credential participates in aggregation
        created_at: Creation timestamp (UTC)
        updated_at: Last update timestamp (UTC)
    """

    user_id: str
    provider: str
    access_token: Optional[str] = Field(default=None, repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    scope: str = ""
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None
    external_team_id: Optional[str] = None
    external_team_name: Optional[str] = None
    external_user_name: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CredentialUpsert(BaseModel):
    """Fields written when a connect flow completes."""

    user_id: str
    provider: str
    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    scope: str = ""
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None
    external_team_id: Optional[str] = None
    external_team_name: Optional[str] = None
    external_user_name: Optional[str] = None


class CredentialStore(Protocol):
    """Persistence interface for provider credentials."""

    async def get(self, user_id: str, provider: str) -> Optional[Credential]:
        """Get the credential for a pair, active or not."""
        ...

    async def list_for_user(self, user_id: str) -> list[Credential]:
        """List every credential of a user, active or not."""
        ...

    async def list_active(self, user_id: str) -> list[Credential]:
        """List the active credentials of a user."""
        ...

    async def upsert(self, data: CredentialUpsert) -> Credential:
        """Insert or update the credential for (data.user_id, data.provider) and activate it."""
        ...

    async def update_tokens(
        self,
        user_id: str,
        provider: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
    ) -> Credential:
        """Replace the tokens of an existing credential after a refresh."""
        ...

    async def revoke(self, user_id: str, provider: str) -> bool:
        """Deactivate a credential and clear its tokens; returns False if none existed."""
        ...


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None)


class SqlCredentialStore:
    """Credential store backed by the integration_credentials table.

    Tokens are Fernet-encrypted before they are written and decrypted when
    rows are mapped back to Credential objects.

    Example:
        >>> store = SqlCredentialStore(database, CredentialEncryption(key))
        >>> await store.upsert(CredentialUpsert(user_id="u1", provider="slack", access_token="t"))
        >>> [c.provider for c in await store.list_active("u1")]
        ['slack']
    """

    def __init__(self, database: Database, encryptor: CredentialEncryption) -> None:
        """Initialize the store.

        Args:
            database: Database providing sessions
            encryptor: Token encryptor
        """
        self._database = database
        self._encryptor = encryptor

    async def get(self, user_id: str, provider: str) -> Optional[Credential]:
        async with self._database.session() as session:
            model = await self._find(session, user_id, provider)
            return self._to_domain(model) if model else None

    async def list_for_user(self, user_id: str) -> list[Credential]:
        async with self._database.session() as session:
            result = await session.execute(
                select(CredentialModel)
                .where(CredentialModel.user_id == user_id)
                .order_by(CredentialModel.provider)
            )
            return [self._to_domain(model) for model in result.scalars().all()]

    async def list_active(self, user_id: str) -> list[Credential]:
        async with self._database.session() as session:
            result = await session.execute(
                select(CredentialModel)
                .where(CredentialModel.user_id == user_id, CredentialModel.is_active.is_(True))
                .order_by(CredentialModel.provider)
            )
            return [self._to_domain(model) for model in result.scalars().all()]

    async def upsert(self, data: CredentialUpsert) -> Credential:
        """Insert or update the credential for a (user, provider) pair.

        Two connect flows completing at the same time both target the same
        row: the loser of the insert race hits the unique constraint and
        retries as an update.

        Args:
            data: Fields from the completed connect flow

        Returns:
            The stored, active credential
        """
        try:
            return await self._upsert_once(data)
        except IntegrityError:
            logger.info(
                "credential_upsert_conflict_retry",
                user_id=data.user_id,
                provider=data.provider,
            )
            return await self._upsert_once(data)

    async def update_tokens(
        self,
        user_id: str,
        provider: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
    ) -> Credential:
        """Replace tokens after a refresh grant.

        Raises:
            LookupError: If no credential exists for the pair
        """
        async with self._database.session() as session:
            model = await self._find(session, user_id, provider)
            if model is None:
                raise LookupError(f"No {provider} credential for user {user_id}")
            model.access_token_encrypted = self._encryptor.encrypt(access_token)
            if refresh_token:
                model.refresh_token_encrypted = self._encryptor.encrypt(refresh_token)
            model.expires_at = _to_naive_utc(expires_at)
            model.updated_at = datetime.utcnow()
            await session.flush()
            return self._to_domain(model)

    async def revoke(self, user_id: str, provider: str) -> bool:
        async with self._database.session() as session:
            model = await self._find(session, user_id, provider)
            if model is None:
                return False
            model.is_active = False
            model.access_token_encrypted = None
            model.refresh_token_encrypted = None
            model.updated_at = datetime.utcnow()
            await session.flush()

        logger.info("credential_revoked", user_id=user_id, provider=provider)
        return True

    async def _upsert_once(self, data: CredentialUpsert) -> Credential:
        async with self._database.session() as session:
            model = await self._find(session, data.user_id, data.provider)
            if model is None:
                model = CredentialModel(user_id=data.user_id, provider=data.provider)
                session.add(model)

            model.access_token_encrypted = self._encryptor.encrypt(data.access_token)
            model.refresh_token_encrypted = self._encryptor.encrypt_optional(data.refresh_token)
            model.scope = data.scope
            model.token_type = data.token_type
            model.expires_at = _to_naive_utc(data.expires_at)
            model.external_team_id = data.external_team_id
            model.external_team_name = data.external_team_name
            model.external_user_name = data.external_user_name
            model.is_active = True
            model.updated_at = datetime.utcnow()

            await session.flush()
            return self._to_domain(model)

    @staticmethod
    async def _find(
        session: AsyncSession, user_id: str, provider: str
    ) -> Optional[CredentialModel]:
        result = await session.execute(
            select(CredentialModel).where(
                CredentialModel.user_id == user_id,
                CredentialModel.provider == provider,
            )
        )
        return result.scalar_one_or_none()

    def _to_domain(self, model: CredentialModel) -> Credential:
        return Credential(
            user_id=model.user_id,
            provider=model.provider,
            access_token=self._encryptor.decrypt_optional(model.access_token_encrypted),
            refresh_token=self._encryptor.decrypt_optional(model.refresh_token_encrypted),
            scope=model.scope or "",
            token_type=model.token_type or "Bearer",
            expires_at=as_utc(model.expires_at),
            external_team_id=model.external_team_id,
            external_team_name=model.external_team_name,
            external_user_name=model.external_user_name,
            is_active=model.is_active,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
