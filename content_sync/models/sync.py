"""Sync document, option and result models."""

from datetime import datetime
from typing import Optional, Dict, Any, List, Union
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

from .integration import IntegrationConnection, ExternalResource, RefreshedCredential


class SyncStatus(str, Enum):
    """Sync state of a linked document."""
    SYNCED = "synced"
    PENDING = "pending"
    CONFLICT = "conflict"
    ERROR = "error"


class ConflictType(str, Enum):
    """Kinds of divergence between local and remote content."""
    CONTENT = "content"
    DELETED = "deleted"
    RENAMED = "renamed"


class SyncDocument(BaseModel):
    """Document handed to an adapter for pushing."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    slug: str
    content: Dict[str, Any]  # structured body ({"type": "doc", ...})
    folder_path: Optional[str] = None
    custom_fields: Dict[str, Union[bool, str, int, float]] = Field(default_factory=dict)
    external_id: Optional[str] = None
    last_synced_hash: Optional[str] = None


class PushOptions(BaseModel):
    """Options for a push operation."""
    document: SyncDocument
    connection: IntegrationConnection
    commit_message: Optional[str] = None


class PullOptions(BaseModel):
    """Options for a pull operation."""
    connection: IntegrationConnection


class DeleteOptions(BaseModel):
    """Options for a delete operation."""
    document_id: str
    external_id: str
    connection: IntegrationConnection
    commit_message: Optional[str] = None


class ContentVersion(BaseModel):
    """One side of a conflict."""
    content: Optional[str] = None
    hash: Optional[str] = None
    updated_at: Optional[datetime] = None


class ConflictDetails(BaseModel):
    """Details about a conflict that needs resolution."""
    local_version: ContentVersion
    remote_version: ContentVersion
    conflict_type: ConflictType


class ConflictCheck(BaseModel):
    """Result of a conflict check."""
    has_conflict: bool
    details: Optional[ConflictDetails] = None
    refreshed_credential: Optional[RefreshedCredential] = None


class SyncResult(BaseModel):
    """Per-item outcome of a push, pull or delete."""
    success: bool
    document_id: str
    external_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    conflict_detected: bool = False
    conflict_details: Optional[ConflictDetails] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def failure(
        cls,
        document_id: str,
        error: str,
        external_id: Optional[str] = None,
        conflict_details: Optional[ConflictDetails] = None,
    ) -> "SyncResult":
        """Build an error result."""
        return cls(
            success=False,
            document_id=document_id,
            external_id=external_id,
            error=error,
            conflict_detected=conflict_details is not None,
            conflict_details=conflict_details,
        )


class SyncMetadata(BaseModel):
    """Sync bookkeeping for a linked document."""
    document_id: str
    connection_id: str
    external_id: str
    last_synced_at: Optional[datetime] = None
    last_synced_hash: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.PENDING
    sync_error: Optional[str] = None


class PushOutcome(BaseModel):
    """Push result plus any credential refreshed along the way."""
    result: SyncResult
    refreshed_credential: Optional[RefreshedCredential] = None


class PullOutcome(BaseModel):
    """Pull results plus any credential refreshed along the way."""
    results: List[SyncResult] = Field(default_factory=list)
    refreshed_credential: Optional[RefreshedCredential] = None


class DeleteOutcome(BaseModel):
    """Delete result plus any credential refreshed along the way."""
    result: SyncResult
    refreshed_credential: Optional[RefreshedCredential] = None


class ResourceListing(BaseModel):
    """Discovered resources plus any credential refreshed along the way."""
    resources: List[ExternalResource] = Field(default_factory=list)
    refreshed_credential: Optional[RefreshedCredential] = None
