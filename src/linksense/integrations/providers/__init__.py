"""Provider adapters for the seven integrated platforms."""

from linksense.integrations.providers.base import (
    Container,
    OAuthTokens,
    Organization,
    ProviderAdapter,
    ProviderIdentity,
    ProviderSpec,
    RateLimitInfo,
    ScanPolicy,
)
from linksense.integrations.providers.registry import (
    create_adapter,
    get_adapter_class,
    get_spec,
    providers_supporting,
)

__all__ = [
    "Container",
    "OAuthTokens",
    "Organization",
    "ProviderAdapter",
    "ProviderIdentity",
    "ProviderSpec",
    "RateLimitInfo",
    "ScanPolicy",
    "create_adapter",
    "get_adapter_class",
    "get_spec",
    "providers_supporting",
]
