"""Synchronization service coordinating adapters for linked connections."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from pydantic import BaseModel, Field

from content_sync.integrations.base import BaseIntegration
from content_sync.integrations.capabilities import (
    ConflictCheckable,
    DeleteCapable,
    ResourceDiscoverable,
    require_capability,
)
from content_sync.integrations.registry import IntegrationRegistry
from content_sync.models import (
    ConflictCheck,
    DeleteOptions,
    ExternalResource,
    IntegrationConnection,
    IntegrationType,
    PullOptions,
    PushOptions,
    RefreshedCredential,
    SyncDocument,
    SyncResult,
)

logger = logging.getLogger(__name__)

# Called with the updated connection whenever an adapter refreshed a credential
ConfigPersister = Callable[[IntegrationConnection, RefreshedCredential], Awaitable[None]]


class PullSummary(BaseModel):
    """Aggregate of a pull."""
    imported: int = 0
    failed: int = 0
    results: List[SyncResult] = Field(default_factory=list)


class SyncService:
    """Runs sync operations and persists refreshed credentials.

    Operations on the same connection are serialized, so a token refreshed by
    one operation is persisted before the next one starts.
    """

    def __init__(
        self,
        persist_credential: Optional[ConfigPersister] = None,
        adapters: Optional[Dict[IntegrationType, BaseIntegration]] = None,
    ):
        self.persist_credential = persist_credential
        self.adapters = adapters or {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _connection_lock(self, connection_id: str):
        """Hold the connection's lock; it is dropped once no operation uses it."""
        lock = self._locks.get(connection_id)
        if lock is None:
            lock = self._locks[connection_id] = asyncio.Lock()
        self._lock_users[connection_id] = self._lock_users.get(connection_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[connection_id] -= 1
            if not self._lock_users[connection_id]:
                del self._lock_users[connection_id]
                del self._locks[connection_id]

    def adapter_for(self, connection: IntegrationConnection) -> BaseIntegration:
        adapter = self.adapters.get(connection.integration_type)
        if adapter is None:
            adapter = IntegrationRegistry.get(connection.integration_type)
        return adapter

    async def _persist(
        self, connection: IntegrationConnection, credential: Optional[RefreshedCredential]
    ) -> IntegrationConnection:
        if credential is None:
            return connection

        updated = connection.with_refreshed_credential(credential)
        if self.persist_credential is None:
            logger.warning(f"Credential for connection {connection.id} refreshed but no persister is configured")
            return updated

        try:
            await self.persist_credential(updated, credential)
        except Exception as e:
            logger.error(f"Failed to persist refreshed credential for connection {connection.id}: {e}")
            raise
        logger.info(f"Persisted refreshed credential for connection {connection.id}")
        return updated

    async def push_document(
        self,
        connection: IntegrationConnection,
        document: SyncDocument,
        link_config: Optional[Dict[str, Any]] = None,
        commit_message: Optional[str] = None,
    ) -> SyncResult:
        """Push one document through the connection."""
        adapter = self.adapter_for(connection)
        async with self._connection_lock(connection.id):
            outcome = await adapter.push(PushOptions(
                document=document,
                connection=connection.with_config_overrides(link_config),
                commit_message=commit_message,
            ))
            await self._persist(connection, outcome.refreshed_credential)

        result = outcome.result
        if result.success:
            logger.info(f"Pushed document {document.id} to {result.external_id} ({connection.integration_type.value})")
        else:
            logger.warning(f"Push of document {document.id} failed: {result.error}")
        return result

    async def pull_connection(
        self,
        connection: IntegrationConnection,
        link_config: Optional[Dict[str, Any]] = None,
    ) -> PullSummary:
        """Pull every item in scope; failed items are counted, not raised."""
        adapter = self.adapter_for(connection)
        async with self._connection_lock(connection.id):
            outcome = await adapter.pull(PullOptions(
                connection=connection.with_config_overrides(link_config),
            ))
            await self._persist(connection, outcome.refreshed_credential)

        imported = sum(1 for result in outcome.results if result.success)
        summary = PullSummary(
            imported=imported,
            failed=len(outcome.results) - imported,
            results=outcome.results,
        )
        logger.info(
            f"Pulled connection {connection.id}: {summary.imported} imported, {summary.failed} failed"
        )
        return summary

    async def delete_document(
        self,
        connection: IntegrationConnection,
        document_id: str,
        external_id: str,
        link_config: Optional[Dict[str, Any]] = None,
        commit_message: Optional[str] = None,
    ) -> SyncResult:
        """Delete the remote copy of a document.

        Raises:
            UnsupportedCapabilityError: If the adapter cannot delete.
        """
        adapter = require_capability(self.adapter_for(connection), DeleteCapable)
        async with self._connection_lock(connection.id):
            outcome = await adapter.delete(DeleteOptions(
                document_id=document_id,
                external_id=external_id,
                connection=connection.with_config_overrides(link_config),
                commit_message=commit_message,
            ))
            await self._persist(connection, outcome.refreshed_credential)
        return outcome.result

    async def fetch_resources(self, connection: IntegrationConnection) -> List[ExternalResource]:
        """List selectable containers for the connection."""
        adapter = require_capability(self.adapter_for(connection), ResourceDiscoverable)
        async with self._connection_lock(connection.id):
            listing = await adapter.fetch_resources(connection)
            await self._persist(connection, listing.refreshed_credential)
        return listing.resources

    async def check_conflicts(
        self,
        connection: IntegrationConnection,
        document: SyncDocument,
        link_config: Optional[Dict[str, Any]] = None,
    ) -> ConflictCheck:
        adapter = require_capability(self.adapter_for(connection), ConflictCheckable)
        async with self._connection_lock(connection.id):
            check = await adapter.check_conflicts(document, connection.with_config_overrides(link_config))
            await self._persist(connection, check.refreshed_credential)
        return check
