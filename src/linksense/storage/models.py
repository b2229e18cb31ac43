"""SQLAlchemy ORM models for persistence."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, LargeBinary, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from linksense.storage.base_model import Base


def _utcnow() -> datetime:
    return datetime.utcnow()


class CredentialModel(Base):
    """ORM model for provider credentials.

    One row per (user_id, provider). Reconnecting updates the row in place;
    disconnecting deactivates it and clears the encrypted tokens.

    Attributes:
        id: Unique credential identifier (UUID)
        user_id: Owning user identifier
        provider: Provider identifier (e.g., "slack")
        access_token_encrypted: Encrypted access token (cleared on disconnect)
        refresh_token_encrypted: Encrypted refresh token (optional)
        scope: Granted scope string as returned by the provider
        token_type: Token type (usually "Bearer")
        expires_at: Access token expiration (UTC, optional)
        external_team_id: Provider-side team/workspace/org identifier
        external_team_name: Provider-side team/workspace/org name
        external_user_name: Display name of the connected account
        is_active: Whether the credential participates in aggregation
        created_at: Creation timestamp (UTC)
        updated_at: Last update timestamp (UTC)
    """

    __tablename__ = "integration_credentials"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)

    # Encrypted tokens (stored as binary)
    access_token_encrypted: Mapped[bytes] = mapped_column(LargeBinary, nullable=True)
    refresh_token_encrypted: Mapped[bytes] = mapped_column(LargeBinary, nullable=True)

    # Token metadata
    scope: Mapped[str] = mapped_column(Text, nullable=False, default="")
    token_type: Mapped[str] = mapped_column(String(50), nullable=False, default="Bearer")
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)

    # Provider-side identity
    external_team_id: Mapped[str] = mapped_column(String(255), nullable=True)
    external_team_name: Mapped[str] = mapped_column(String(255), nullable=True)
    external_user_name: Mapped[str] = mapped_column(String(255), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_credential_user_provider"),
        Index("idx_credential_user_active", "user_id", "is_active"),
    )
