"""Exception hierarchy for the integration core.

Every error carries a machine-readable code and an HTTP status code so the
API layer can render it without knowing where it was raised.
"""

from typing import Iterable, Optional


class LinkSenseError(Exception):
    """Base exception for all integration errors.

    Attributes:
        code: Machine-readable error code
        message: Human-readable error message
        status_code: HTTP status code for API responses
    """

    def __init__(self, message: str, code: str, status_code: int) -> None:
        """Initialize error.

        Args:
            message: Human-readable error description
            code: Machine-readable error code
            status_code: HTTP status code (400, 500, etc.)
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class ConfigurationError(LinkSenseError):
    """Raised when a provider's OAuth client configuration is missing."""

    def __init__(self, provider: str, missing: Iterable[str]) -> None:
        missing_fields = ", ".join(missing)
        super().__init__(
            message=f"{provider} OAuth configuration is missing: {missing_fields}",
            code="config_error",
            status_code=400,
        )
        self.provider = provider


class UnsupportedProviderError(LinkSenseError):
    """Raised when an unknown provider identifier is requested.

    The message enumerates the supported identifiers so callers can correct
    the request.
    """

    def __init__(self, provider: str, supported: Iterable[str]) -> None:
        self.supported = list(supported)
        super().__init__(
            message=(
                f"Unsupported integration '{provider}'. "
                f"Supported integrations: {', '.join(self.supported)}"
            ),
            code="unsupported_integration",
            status_code=400,
        )
        self.provider = provider


class StateMismatchError(LinkSenseError):
    """Raised when the OAuth state is missing, tampered, expired or not ours."""

    def __init__(self, message: str = "Invalid OAuth state") -> None:
        super().__init__(message=message, code="invalid_state", status_code=400)


class TokenExchangeError(LinkSenseError):
    """Raised when the authorization code cannot be exchanged for a token."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(
            message=f"Token exchange with {provider} failed: {reason}",
            code="token_exchange_failed",
            status_code=502,
        )
        self.provider = provider
        self.reason = reason


class IdentityLookupError(LinkSenseError):
    """Raised when the provider's user-info call fails for a provider that requires it."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(
            message=f"User info lookup with {provider} failed: {reason}",
            code="user_info_failed",
            status_code=502,
        )
        self.provider = provider
        self.reason = reason


class ProviderFetchError(LinkSenseError):
    """Raised when a provider data call fails.

    Attributes:
        provider: Provider identifier
        reason: Short description of the failure
    """

    def __init__(
        self,
        provider: str,
        reason: str,
        status_code: int = 502,
        code: str = "provider_fetch_failed",
    ) -> None:
        super().__init__(
            message=f"{provider}: {reason}",
            code=code,
            status_code=status_code,
        )
        self.provider = provider
        self.reason = reason


class ProviderAuthError(ProviderFetchError):
    """Raised when a provider rejects the stored access token (401/403)."""

    def __init__(self, provider: str, reason: str = "access token rejected") -> None:
        super().__init__(
            provider=provider,
            reason=reason,
            status_code=401,
            code="provider_auth_failed",
        )


class NormalizationError(LinkSenseError):
    """Raised when a raw provider record cannot be mapped to a unified entity."""

    def __init__(self, provider: str, reason: str, record_id: Optional[str] = None) -> None:
        super().__init__(
            message=f"Cannot normalize {provider} record {record_id or '?'}: {reason}",
            code="normalization_failed",
            status_code=422,
        )
        self.provider = provider
        self.record_id = record_id


class UnauthorizedError(LinkSenseError):
    """Raised when the caller is not authenticated."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message=message, code="unauthorized", status_code=401)


class UnsupportedDataTypeError(LinkSenseError):
    """Raised when a provider is asked for an entity kind it does not expose."""

    def __init__(self, provider: str, kind: str) -> None:
        super().__init__(
            message=f"{provider} does not provide {kind}",
            code="unsupported_data_type",
            status_code=400,
        )
        self.provider = provider
        self.kind = kind
