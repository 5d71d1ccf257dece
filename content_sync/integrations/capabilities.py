"""Optional integration capabilities.

Adapters opt into extra operations by inheriting from these classes; callers
check for them with :func:`supports` instead of probing for methods.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type, TypeVar

from content_sync.models import (
    CleanupOutcome,
    ConflictCheck,
    ConnectDefaults,
    DeleteOptions,
    DeleteOutcome,
    IntegrationConnection,
    OAuthConfig,
    OAuthCredentials,
    ResourceListing,
    SyncDocument,
    SyncMetadata,
)

from .base import UnsupportedCapabilityError

C = TypeVar("C")


class DeleteCapable(ABC):
    @abstractmethod
    async def delete(self, options: DeleteOptions) -> DeleteOutcome:
        """Remove an item; an item that is already gone counts as success."""


class ResourceDiscoverable(ABC):
    @abstractmethod
    async def fetch_resources(self, connection: IntegrationConnection) -> ResourceListing:
        """List selectable containers (repositories, blogs, collections)."""


class ConflictCheckable(ABC):
    @abstractmethod
    async def check_conflicts(
        self, document: SyncDocument, connection: IntegrationConnection
    ) -> ConflictCheck:
        """Compare a local document with its remote counterpart."""


class SyncMetadataProvider(ABC):
    @abstractmethod
    async def get_sync_metadata(
        self, document_id: str, connection: IntegrationConnection
    ) -> Optional[SyncMetadata]:
        pass


class ConnectHook(ABC):
    @abstractmethod
    async def on_connect(self, connection: IntegrationConnection) -> ConnectDefaults:
        """Suggest default sync targets for a new connection."""


class DisconnectHook(ABC):
    @abstractmethod
    async def on_disconnect(self, connection: IntegrationConnection) -> CleanupOutcome:
        """Clean up remote state; never raises."""


class OAuthCapable(ABC):
    """Adapters that connect through an OAuth or app-installation flow."""

    @abstractmethod
    def get_oauth_config(self) -> OAuthConfig:
        pass

    @abstractmethod
    def get_oauth_credentials(self) -> Optional[OAuthCredentials]:
        """Client credentials from settings, or None when not configured."""

    @abstractmethod
    def build_authorization_url(
        self,
        credentials: OAuthCredentials,
        state: str,
        redirect_uri: str,
        params: Optional[Dict[str, str]] = None,
    ) -> str:
        pass

    @abstractmethod
    async def handle_oauth_callback(
        self,
        query_params: Dict[str, str],
        credentials: Optional[OAuthCredentials] = None,
    ) -> Dict[str, Any]:
        """Turn callback parameters into a provider config dict."""


def supports(adapter: Any, capability: Type[Any]) -> bool:
    """Whether the adapter implements the capability."""
    return isinstance(adapter, capability)


def require_capability(adapter: Any, capability: Type[C]) -> C:
    """Return the adapter typed as the capability, or raise."""
    if not isinstance(adapter, capability):
        raise UnsupportedCapabilityError(
            f"{type(adapter).__name__} does not support {capability.__name__}"
        )
    return adapter
