"""OAuth connect flows and signed state handling."""

from linksense.integrations.oauth.manager import (
    AuthorizationRequest,
    ConnectState,
    OAuthIntegrationManager,
)
from linksense.integrations.oauth.state import OAuthState, StateSigner

__all__ = [
    "AuthorizationRequest",
    "ConnectState",
    "OAuthIntegrationManager",
    "OAuthState",
    "StateSigner",
]
