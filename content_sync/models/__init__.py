"""Data models for the content sync engine."""

from .integration import (
    CleanupOutcome,
    ConnectDefaults,
    DefaultLink,
    ExternalResource,
    GitHubConfig,
    IntegrationConnection,
    IntegrationType,
    OAuthConfig,
    OAuthCredentials,
    OAuthState,
    ProviderConfig,
    RefreshedCredential,
    ShopifyConfig,
    ValidationResult,
    WordPressConfig,
)
from .sync import (
    ConflictCheck,
    ConflictDetails,
    ConflictType,
    ContentVersion,
    DeleteOptions,
    DeleteOutcome,
    PullOptions,
    PullOutcome,
    PushOptions,
    PushOutcome,
    ResourceListing,
    SyncDocument,
    SyncMetadata,
    SyncResult,
    SyncStatus,
)

__all__ = [
    "CleanupOutcome",
    "ConnectDefaults",
    "DefaultLink",
    "ExternalResource",
    "GitHubConfig",
    "IntegrationConnection",
    "IntegrationType",
    "OAuthConfig",
    "OAuthCredentials",
    "OAuthState",
    "ProviderConfig",
    "RefreshedCredential",
    "ShopifyConfig",
    "ValidationResult",
    "WordPressConfig",
    "ConflictCheck",
    "ConflictDetails",
    "ConflictType",
    "ContentVersion",
    "DeleteOptions",
    "DeleteOutcome",
    "PullOptions",
    "PullOutcome",
    "PushOptions",
    "PushOutcome",
    "ResourceListing",
    "SyncDocument",
    "SyncMetadata",
    "SyncResult",
    "SyncStatus",
]
