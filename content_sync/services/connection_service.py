"""Connection setup and teardown."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from content_sync.core.config import Settings, get_settings
from content_sync.integrations.base import (
    AuthenticationError,
    BaseIntegration,
    ConfigurationError,
)
from content_sync.integrations.capabilities import (
    ConnectHook,
    DisconnectHook,
    OAuthCapable,
    require_capability,
    supports,
)
from content_sync.integrations.registry import IntegrationRegistry
from content_sync.models import (
    CleanupOutcome,
    DefaultLink,
    IntegrationConnection,
    IntegrationType,
    OAuthState,
    ValidationResult,
)
from content_sync.utils.crypto import (
    InvalidStateError,
    decode_oauth_state,
    encode_oauth_state,
    generate_state_nonce,
)

logger = logging.getLogger(__name__)


class ConnectionResult(BaseModel):
    """A newly established connection, ready for the caller to store."""
    connection: IntegrationConnection
    validation: ValidationResult
    default_links: List[DefaultLink] = Field(default_factory=list)
    state: Optional[OAuthState] = None


class ConnectionService:
    """Establishes connections through OAuth or credential forms."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        adapters: Optional[Dict[IntegrationType, BaseIntegration]] = None,
    ):
        self.settings = settings or get_settings()
        self.adapters = adapters or {}

    def adapter_for(self, integration_type: IntegrationType) -> BaseIntegration:
        adapter = self.adapters.get(IntegrationType(integration_type))
        if adapter is None:
            adapter = IntegrationRegistry.get(integration_type)
        return adapter

    def start_authorization(
        self,
        integration_type: IntegrationType,
        organization_id: str,
        user_id: str,
        redirect_url: str,
        params: Optional[Dict[str, str]] = None,
    ) -> str:
        """Build the provider URL the user is sent to."""
        integration_type = IntegrationType(integration_type)
        adapter = require_capability(self.adapter_for(integration_type), OAuthCapable)
        credentials = adapter.get_oauth_credentials()
        if credentials is None:
            raise ConfigurationError(f"OAuth credentials for {integration_type.value} not configured")

        state = OAuthState(
            integration_type=integration_type,
            organization_id=organization_id,
            user_id=user_id,
            redirect_url=redirect_url,
            nonce=generate_state_nonce(),
        )
        token = encode_oauth_state(state, self.settings)
        return adapter.build_authorization_url(credentials, token, redirect_url, params)

    async def complete_authorization(
        self,
        integration_type: IntegrationType,
        query_params: Dict[str, str],
        connection_id: Optional[str] = None,
    ) -> ConnectionResult:
        """Verify the returned state and turn the callback into a connection."""
        integration_type = IntegrationType(integration_type)
        adapter = require_capability(self.adapter_for(integration_type), OAuthCapable)

        token = query_params.get("state")
        if not token:
            raise AuthenticationError("Missing state parameter")
        try:
            state = decode_oauth_state(token, self.settings)
        except InvalidStateError as e:
            raise AuthenticationError(str(e)) from e
        if state.integration_type != integration_type:
            raise AuthenticationError(
                f"State was issued for {state.integration_type.value}, not {integration_type.value}"
            )

        config = await adapter.handle_oauth_callback(query_params, adapter.get_oauth_credentials())
        connection = IntegrationConnection(
            id=connection_id or str(uuid.uuid4()),
            integration_type=integration_type,
            config=config,
            metadata={
                "organization_id": state.organization_id,
                "user_id": state.user_id,
            },
        )
        result = await self._establish(adapter, connection)
        result.state = state
        return result

    async def connect_with_credentials(
        self,
        integration_type: IntegrationType,
        config: Dict[str, Any],
        connection_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConnectionResult:
        """Connect a provider configured by a credential form (e.g. WordPress).

        Raises:
            AuthenticationError: If the credentials do not validate.
        """
        integration_type = IntegrationType(integration_type)
        adapter = self.adapter_for(integration_type)
        connection = IntegrationConnection(
            id=connection_id or str(uuid.uuid4()),
            integration_type=integration_type,
            config=config,
            metadata=metadata or {},
        )
        result = await self._establish(adapter, connection)
        if not result.validation.valid:
            raise AuthenticationError(result.validation.error or "Connection validation failed")
        return result

    async def _establish(self, adapter: BaseIntegration, connection: IntegrationConnection) -> ConnectionResult:
        validation = await adapter.validate_connection(connection)
        links: List[DefaultLink] = []
        if validation.valid and supports(adapter, ConnectHook):
            defaults = await adapter.on_connect(connection)
            links = defaults.links

        logger.info(
            f"Established {connection.integration_type.value} connection {connection.id} "
            f"(valid={validation.valid}, default links={len(links)})"
        )
        return ConnectionResult(connection=connection, validation=validation, default_links=links)

    async def disconnect(self, connection: IntegrationConnection) -> CleanupOutcome:
        """Run remote cleanup; the caller deletes the stored connection either way."""
        adapter = self.adapter_for(connection.integration_type)
        if not supports(adapter, DisconnectHook):
            return CleanupOutcome(attempted=False, succeeded=True)

        outcome = await adapter.on_disconnect(connection)
        if not outcome.succeeded:
            logger.warning(f"Remote cleanup for connection {connection.id} failed: {outcome.error}")
        return outcome
