"""WordPress integration implementation."""

import base64
from typing import Dict, Any, List, Optional
import logging
from bs4 import BeautifulSoup
import httpx

from content_sync.core.config import INTEGRATION_CONFIGS
from content_sync.integrations.base import (
    BaseIntegration,
    AuthenticationError,
    IntegrationError,
    NotFoundError,
)
from content_sync.integrations.capabilities import ConnectHook, DeleteCapable, ResourceDiscoverable
from content_sync.integrations.registry import IntegrationRegistry
from content_sync.models import (
    ConnectDefaults,
    DefaultLink,
    DeleteOptions,
    DeleteOutcome,
    ExternalResource,
    IntegrationConnection,
    IntegrationType,
    PullOptions,
    PullOutcome,
    PushOptions,
    PushOutcome,
    ResourceListing,
    SyncResult,
    ValidationResult,
    WordPressConfig,
)
from content_sync.serialization import deserialize_from_html, serialize_to_html

logger = logging.getLogger(__name__)

RESOURCE_TYPES = ("pages", "posts")


@IntegrationRegistry.register(IntegrationType.WORDPRESS)
class WordPressIntegration(BaseIntegration, DeleteCapable, ResourceDiscoverable, ConnectHook):
    """WordPress integration supporting REST API with Application Passwords."""

    config_class = WordPressConfig

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.config = INTEGRATION_CONFIGS["wordpress"]
        self.api_version = self.config["api_version"]
        self.page_limit = self.config["page_limit"]

    def site_url(self, config: WordPressConfig) -> str:
        """Site URL with a scheme and without a trailing slash."""
        url = (config.site_url or "").strip().rstrip("/")
        if url and not url.startswith(("http://", "https://")):
            url = f"https://{url}"
        return url

    def _api_url(self, config: WordPressConfig, path: str) -> str:
        return f"{self.site_url(config)}/wp-json/{self.api_version}/{path}"

    def _headers(self, config: WordPressConfig) -> Dict[str, str]:
        auth_header = base64.b64encode(
            f"{config.username}:{config.application_password}".encode()
        ).decode()
        return {
            "Authorization": f"Basic {auth_header}",
            "Content-Type": "application/json",
        }

    def _missing_credentials(self, config: WordPressConfig) -> Optional[str]:
        if not config.site_url or not config.username or not config.application_password:
            return "WordPress site URL, username and application password are required"
        return None

    def _clean_html(self, html_content: str) -> str:
        """Clean HTML content to plain text."""
        if not html_content:
            return ""

        soup = BeautifulSoup(html_content, 'html.parser')
        return soup.get_text(strip=True)

    # Contract

    async def validate_connection(self, connection: IntegrationConnection) -> ValidationResult:
        """Check the application password against the current user endpoint."""
        config = self.config_for(connection)
        missing = self._missing_credentials(config)
        if missing:
            return ValidationResult(valid=False, error=missing)

        try:
            async with self.http_client() as client:
                await self.make_api_request(
                    client, "GET", self._api_url(config, "users/me"), headers=self._headers(config)
                )
        except AuthenticationError:
            return ValidationResult(
                valid=False,
                error="Invalid credentials. Please check your username and application password.",
            )
        except NotFoundError:
            return ValidationResult(
                valid=False, error=f"WordPress REST API not found at {self.site_url(config)}"
            )
        except IntegrationError as e:
            return ValidationResult(valid=False, error=f"Failed to connect to WordPress: {e}")

        return ValidationResult(valid=True)

    async def push(self, options: PushOptions) -> PushOutcome:
        """Create or update a page or post, matched by slug."""
        document = options.document
        config = self.config_for(options.connection)
        missing = self._missing_credentials(config)
        if missing:
            return PushOutcome(result=SyncResult.failure(document.id, missing))
        if config.resource_type not in RESOURCE_TYPES:
            return PushOutcome(result=SyncResult.failure(
                document.id, f"Unsupported WordPress resource type: {config.resource_type}"
            ))

        resource_type = config.resource_type
        payload = {
            "title": document.title,
            "content": serialize_to_html(document.content),
            "slug": document.slug,
            "status": "publish",
        }

        try:
            async with self.http_client() as client:
                existing = await self._find_by_slug(client, config, resource_type, document.slug)
                if existing:
                    url = self._api_url(config, f"{resource_type}/{existing['id']}")
                else:
                    url = self._api_url(config, resource_type)
                response = await self.make_api_request(
                    client, "POST", url, headers=self._headers(config), json=payload
                )
            saved = self.read_json(response)
            if saved.get("id") is None:
                raise IntegrationError(f"WordPress returned no id for {resource_type} {document.slug}")
        except IntegrationError as e:
            logger.error(f"Failed to push document {document.id} to {self.site_url(config)}: {e}")
            return PushOutcome(result=SyncResult.failure(document.id, str(e), external_id=document.external_id))

        return PushOutcome(result=SyncResult(
            success=True,
            document_id=document.id,
            external_id=str(saved["id"]),
            message="Updated successfully" if existing else "Published successfully",
            metadata={
                "url": saved.get("link"),
                "slug": saved.get("slug", document.slug),
                "type": resource_type,
            },
        ))

    async def _find_by_slug(
        self, client: httpx.AsyncClient, config: WordPressConfig, resource_type: str, slug: str
    ) -> Optional[Dict[str, Any]]:
        try:
            response = await self.make_api_request(
                client, "GET", self._api_url(config, resource_type),
                headers=self._headers(config),
                params={"slug": slug, "status": "any,publish,draft"},
            )
        except NotFoundError:
            return None
        for item in self.read_json(response, list):
            if isinstance(item, dict) and item.get("slug") == slug:
                return item
        return None

    async def pull(self, options: PullOptions) -> PullOutcome:
        """Read every page and post."""
        config = self.config_for(options.connection)
        missing = self._missing_credentials(config)
        if missing:
            return PullOutcome(results=[SyncResult.failure("", missing)])

        results: List[SyncResult] = []
        async with self.http_client() as client:
            for resource_type in RESOURCE_TYPES:
                try:
                    response = await self.make_api_request(
                        client, "GET", self._api_url(config, resource_type),
                        headers=self._headers(config), params={"per_page": self.page_limit},
                    )
                    items = self.read_json(response, list)
                except IntegrationError as e:
                    logger.warning(f"Failed to fetch {resource_type} from {self.site_url(config)}: {e}")
                    results.append(SyncResult.failure("", f"Failed to fetch {resource_type}: {e}"))
                    continue

                for item in items:
                    results.append(self._item_result(item, resource_type))

        return PullOutcome(results=results)

    def _item_result(self, item: Dict[str, Any], resource_type: str) -> SyncResult:
        item_id = None
        try:
            item_id = item.get("id")
            slug = item["slug"]
            title = self._clean_html((item.get("title") or {}).get("rendered", "")) or slug
            content = deserialize_from_html((item.get("content") or {}).get("rendered", ""))
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            logger.warning(f"Failed to read WordPress {resource_type} item {item_id}: {e}")
            return SyncResult.failure("", f"Failed to read item {item_id}: {e}",
                                      external_id=str(item_id) if item_id else None)

        return SyncResult(
            success=True,
            document_id="",
            external_id=str(item_id),
            message=f"Pulled {slug}",
            metadata={
                "title": title,
                "slug": slug,
                "content": content,
                "folder_path": None,
                "type": resource_type,
                "url": item.get("link"),
                "modified": item.get("modified"),
            },
        )

    # Capabilities

    async def delete(self, options: DeleteOptions) -> DeleteOutcome:
        """Delete a page or post permanently; one that is already gone counts as success."""
        config = self.config_for(options.connection)
        missing = self._missing_credentials(config)
        if missing:
            return DeleteOutcome(result=SyncResult.failure(options.document_id, missing))

        url = self._api_url(config, f"{config.resource_type}/{options.external_id}")
        message = "Deleted successfully"
        try:
            async with self.http_client() as client:
                await self.make_api_request(
                    client, "DELETE", url, headers=self._headers(config), params={"force": "true"}
                )
        except NotFoundError:
            message = "Item does not exist, deletion skipped"
        except IntegrationError as e:
            if e.status_code != 410:
                logger.error(f"Failed to delete {options.external_id} from {self.site_url(config)}: {e}")
                return DeleteOutcome(result=SyncResult.failure(
                    options.document_id, str(e), external_id=options.external_id
                ))
            message = "Item already deleted"

        return DeleteOutcome(result=SyncResult(
            success=True,
            document_id=options.document_id,
            external_id=options.external_id,
            message=message,
        ))

    async def fetch_resources(self, connection: IntegrationConnection) -> ResourceListing:
        config = self.config_for(connection)
        site = self.site_url(config)
        return ResourceListing(resources=[
            ExternalResource(
                id="pages-container",
                name="Pages",
                full_name=f"{site} Pages",
                metadata={"type": "pages"},
            ),
            ExternalResource(
                id="posts-container",
                name="Posts",
                full_name=f"{site} Posts",
                metadata={"type": "posts"},
            ),
        ])

    async def on_connect(self, connection: IntegrationConnection) -> ConnectDefaults:
        """Link both the pages and posts collections by default."""
        self.config_for(connection)
        return ConnectDefaults(links=[
            DefaultLink(name="Pages", config={"resource_type": "pages"}),
            DefaultLink(name="Posts", config={"resource_type": "posts"}),
        ])
