"""Integration implementations."""

from .base import (
    BaseIntegration,
    IntegrationError,
    ConfigurationError,
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    UnsupportedCapabilityError,
)
from .capabilities import (
    ConflictCheckable,
    ConnectHook,
    DeleteCapable,
    DisconnectHook,
    OAuthCapable,
    ResourceDiscoverable,
    SyncMetadataProvider,
    require_capability,
    supports,
)
from .credentials import InstallationTokenManager, TokenState
from .registry import IntegrationRegistry
from .github import GitHubIntegration
from .shopify import ShopifyIntegration
from .wordpress import WordPressIntegration

__all__ = [
    "BaseIntegration",
    "IntegrationError",
    "ConfigurationError",
    "AuthenticationError",
    "NotFoundError",
    "RateLimitError",
    "UnsupportedCapabilityError",
    "ConflictCheckable",
    "ConnectHook",
    "DeleteCapable",
    "DisconnectHook",
    "OAuthCapable",
    "ResourceDiscoverable",
    "SyncMetadataProvider",
    "require_capability",
    "supports",
    "InstallationTokenManager",
    "TokenState",
    "IntegrationRegistry",
    "GitHubIntegration",
    "ShopifyIntegration",
    "WordPressIntegration",
]
