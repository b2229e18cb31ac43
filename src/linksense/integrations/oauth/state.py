"""Tamper-evident OAuth state values.

The state sent to the provider is a Fernet token wrapping the user, the
provider, the issue time and a random nonce. The same nonce is set in an
HTTP-only cookie when the flow starts; at callback both must agree, so a
state replayed from another browser is rejected even before it expires.
"""

import hmac
import json
import secrets
import time
from typing import Callable, Optional

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from linksense.errors import StateMismatchError

STATE_MODE = "integration"


class OAuthState(BaseModel):
    """Payload carried inside the signed state value.

    Attributes:
        user_id: User who started the flow
        provider: Provider the flow was started for
        timestamp: Issue time in epoch milliseconds
        mode: Flow mode; always "integration" for connect flows
        nonce: Random value bound to the browser via cookie
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    provider: str
    timestamp: int
    mode: str = STATE_MODE
    nonce: str


class StateSigner:
    """Issues and verifies signed, expiring OAuth state values.

    Example:
        >>> signer = StateSigner(Fernet.generate_key(), ttl_seconds=600)
        >>> token, payload = signer.issue("user-1", "slack")
        >>> signer.verify(token, provider="slack", nonce=payload.nonce).user_id
        'user-1'
    """

    def __init__(
        self,
        key: bytes,
        ttl_seconds: int = 600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the signer.

        Args:
            key: Fernet key used to sign and encrypt state
            ttl_seconds: Maximum age of an accepted state
            clock: Source of the current time in epoch seconds
        """
        self._fernet = Fernet(key)
        self._ttl = ttl_seconds
        self._clock = clock

    def issue(self, user_id: str, provider: str) -> tuple[str, OAuthState]:
        """Create a state value for a new connect flow.

        Returns:
            Tuple of (opaque state token, payload including the cookie nonce)
        """
        now = self._clock()
        payload = OAuthState(
            user_id=user_id,
            provider=provider,
            timestamp=int(now * 1000),
            nonce=secrets.token_urlsafe(16),
        )
        data = json.dumps(payload.model_dump(by_alias=True)).encode()
        token = self._fernet.encrypt_at_time(data, int(now)).decode()
        return token, payload

    def verify(self, token: Optional[str], provider: str, nonce: Optional[str]) -> OAuthState:
        """Validate a state value received at callback.

        Args:
            token: State query parameter from the provider redirect
            provider: Provider whose callback received the state
            nonce: Nonce from the flow cookie

        Returns:
            The decoded payload

        Raises:
            StateMismatchError: If the state is missing, tampered, expired,
                issued for another provider, or does not match the cookie nonce
        """
        if not token:
            raise StateMismatchError("Missing OAuth state")

        try:
            data = self._fernet.decrypt_at_time(
                token.encode(), ttl=self._ttl, current_time=int(self._clock())
            )
            payload = OAuthState.model_validate(json.loads(data))
        except InvalidToken as e:
            raise StateMismatchError("OAuth state is invalid or expired") from e
        except (ValueError, ValidationError) as e:
            raise StateMismatchError("OAuth state payload is malformed") from e

        if payload.mode != STATE_MODE:
            raise StateMismatchError("OAuth state was not issued for an integration flow")
        if payload.provider != provider:
            raise StateMismatchError("OAuth state was issued for a different provider")
        if not nonce or not hmac.compare_digest(payload.nonce, nonce):
            raise StateMismatchError("OAuth state does not match this browser session")
        return payload
