"""Base integration class and utilities."""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, Type
import logging
import httpx

from content_sync.core.config import Settings, get_settings
from content_sync.models import (
    IntegrationConnection,
    IntegrationType,
    ProviderConfig,
    PullOptions,
    PullOutcome,
    PushOptions,
    PushOutcome,
    ValidationResult,
)


logger = logging.getLogger(__name__)


class IntegrationError(Exception):
    """Base integration error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(IntegrationError):
    """Connection or application is not configured for the operation."""
    pass


class AuthenticationError(IntegrationError):
    """Authentication failed."""
    pass


class NotFoundError(IntegrationError):
    """Remote resource does not exist."""
    pass


class RateLimitError(IntegrationError):
    """Rate limit exceeded."""
    pass


class UnsupportedCapabilityError(IntegrationError):
    """Adapter does not implement the requested capability."""
    pass


class BaseIntegration(ABC):
    """Base class for all integrations.

    Adapters are stateless: every operation receives the connection it works
    on and opens its own HTTP client, so one instance can serve concurrent
    operations for any number of connections.
    """

    integration_type: IntegrationType
    config_class: Type[ProviderConfig] = ProviderConfig

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.transport = transport

    def http_client(self) -> httpx.AsyncClient:
        """Create an HTTP client for one operation (use with ``async with``)."""
        return httpx.AsyncClient(timeout=self.settings.http_timeout, transport=self.transport)

    def config_for(self, connection: IntegrationConnection):
        """Return the connection's config, refusing another provider's."""
        if not isinstance(connection.config, self.config_class):
            raise ConfigurationError(
                f"{type(self).__name__} cannot use a '{connection.config.provider}' connection config"
            )
        return connection.config

    # Abstract methods that must be implemented

    @abstractmethod
    async def validate_connection(self, connection: IntegrationConnection) -> ValidationResult:
        """Check that a connection is usable."""
        pass

    @abstractmethod
    async def push(self, options: PushOptions) -> PushOutcome:
        """Create or update one document on the platform."""
        pass

    @abstractmethod
    async def pull(self, options: PullOptions) -> PullOutcome:
        """Read every item in scope, one result per item."""
        pass

    # Common utility methods

    async def make_api_request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        auth: Optional[httpx.Auth] = None,
    ) -> httpx.Response:
        """Make an API request, mapping failures onto integration errors."""
        request_kwargs: Dict[str, Any] = {
            "headers": headers,
            "params": params,
            "json": json,
        }
        if auth is not None:
            request_kwargs["auth"] = auth

        try:
            response = await client.request(method, url, **request_kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            if status == 429:
                raise RateLimitError(f"Rate limit exceeded: {detail}", status)
            elif status in (401, 403):
                raise AuthenticationError(f"Authentication failed: {detail}", status)
            elif status == 404:
                raise NotFoundError(f"Not found: {method} {url}", status)
            else:
                raise IntegrationError(f"API request failed ({status}): {detail}", status)
        except httpx.HTTPError as e:
            logger.error(f"API request failed: {method} {url}: {e}")
            raise IntegrationError(f"API request failed: {str(e)}")

    def read_json(self, response: httpx.Response, expected: type = dict, key: Optional[str] = None) -> Any:
        """Decode a response body that must be JSON of the ``expected`` type.

        With ``key`` the body must be an object and its ``key`` member is
        checked and returned instead.

        Raises:
            IntegrationError: If the body is not JSON or has another shape
                (a maintenance or firewall page served with a 2xx status).
        """
        source = f"{response.request.method} {response.request.url}"
        try:
            body = response.json()
        except ValueError as e:
            raise IntegrationError(f"Invalid JSON in response to {source}: {e}", response.status_code)

        if key is not None:
            body = body.get(key) if isinstance(body, dict) else None
        if not isinstance(body, expected):
            field = f" field '{key}'" if key else ""
            raise IntegrationError(
                f"Unexpected response{field} from {source}: expected a JSON {expected.__name__}",
                response.status_code,
            )
        return body


def _error_detail(response: httpx.Response) -> str:
    """Pull a readable message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("message", "errors", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return response.text or response.reason_phrase
