"""Shopify integration implementation."""

import hmac
import hashlib
import logging
import re
import urllib.parse
from typing import Dict, Any, List, Optional

import httpx

from content_sync.core.config import INTEGRATION_CONFIGS
from content_sync.integrations.base import (
    BaseIntegration,
    ConfigurationError,
    AuthenticationError,
    IntegrationError,
    NotFoundError,
)
from content_sync.integrations.capabilities import (
    DeleteCapable,
    OAuthCapable,
    ResourceDiscoverable,
)
from content_sync.integrations.registry import IntegrationRegistry
from content_sync.models import (
    DeleteOptions,
    DeleteOutcome,
    ExternalResource,
    IntegrationConnection,
    IntegrationType,
    OAuthConfig,
    OAuthCredentials,
    PullOptions,
    PullOutcome,
    PushOptions,
    PushOutcome,
    ResourceListing,
    ShopifyConfig,
    SyncDocument,
    SyncResult,
    ValidationResult,
)
from content_sync.serialization import deserialize_from_html, serialize_to_html

logger = logging.getLogger(__name__)

SHOP_DOMAIN_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9\-]*\.myshopify\.com$")


def clean_shop_domain(shop: str) -> str:
    """Normalize user input like ``https://My-Shop/`` to ``my-shop.myshopify.com``."""
    domain = shop.strip().lower()
    domain = re.sub(r"^https?://", "", domain)
    domain = domain.strip("/")
    if not domain.endswith(".myshopify.com"):
        domain = f"{domain}.myshopify.com"
    return domain


def verify_callback_hmac(query_params: Dict[str, str], client_secret: str) -> bool:
    """Verify the HMAC-SHA256 signature Shopify adds to OAuth callbacks."""
    signature = query_params.get("hmac", "")
    message = "&".join(
        f"{key}={value}"
        for key, value in sorted(query_params.items())
        if key not in ("hmac", "signature")
    )
    expected_signature = hmac.new(
        client_secret.encode(),
        message.encode(),
        hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(signature, expected_signature)


@IntegrationRegistry.register(IntegrationType.SHOPIFY)
class ShopifyIntegration(BaseIntegration, DeleteCapable, ResourceDiscoverable, OAuthCapable):
    """Shopify online store pages and blog articles via the Admin REST API."""

    config_class = ShopifyConfig

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.config = INTEGRATION_CONFIGS["shopify"]
        self.api_version = self.settings.shopify_api_version
        self.page_limit = self.config["page_limit"]

    def _base_url(self, config: ShopifyConfig) -> str:
        return f"https://{config.shop}/admin/api/{self.api_version}"

    def _headers(self, config: ShopifyConfig) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": config.access_token or "",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _missing_credentials(self, config: ShopifyConfig) -> Optional[str]:
        if not config.shop or not config.access_token:
            return "Shopify shop and access token are required"
        return None

    async def _find_by_handle(
        self,
        client: httpx.AsyncClient,
        config: ShopifyConfig,
        url: str,
        key: str,
        handle: str,
    ) -> Optional[Dict[str, Any]]:
        """Item with exactly this handle, or None."""
        try:
            response = await self.make_api_request(
                client, "GET", url, headers=self._headers(config), params={"handle": handle}
            )
        except NotFoundError:
            return None
        for item in self.read_json(response, list, key):
            if isinstance(item, dict) and item.get("handle") == handle and item.get("id") is not None:
                return item
        return None

    def _saved_item(self, response: httpx.Response, key: str) -> Dict[str, Any]:
        saved = self.read_json(response, dict, key)
        if saved.get("id") is None:
            raise IntegrationError(f"Shopify returned no {key} id")
        return saved

    # Contract

    async def validate_connection(self, connection: IntegrationConnection) -> ValidationResult:
        """Check the credentials against the shop endpoint."""
        config = self.config_for(connection)
        missing = self._missing_credentials(config)
        if missing:
            return ValidationResult(valid=False, error=missing)

        try:
            async with self.http_client() as client:
                await self.make_api_request(
                    client, "GET", f"{self._base_url(config)}/shop.json", headers=self._headers(config)
                )
        except AuthenticationError as e:
            if e.status_code == 401:
                return ValidationResult(valid=False, error="Invalid access token or shop URL")
            return ValidationResult(valid=False, error="Access token is missing required permissions")
        except NotFoundError:
            return ValidationResult(valid=False, error=f"Shop {config.shop} not found")
        except IntegrationError as e:
            return ValidationResult(valid=False, error=f"Failed to connect to Shopify: {e}")

        return ValidationResult(valid=True)

    async def push(self, options: PushOptions) -> PushOutcome:
        """Create or update a page, or an article in the configured blog."""
        document = options.document
        config = self.config_for(options.connection)
        missing = self._missing_credentials(config)
        if missing:
            return PushOutcome(result=SyncResult.failure(document.id, missing))

        if config.resource_type == "blog" and not config.resource_id:
            return PushOutcome(result=SyncResult.failure(document.id, "Blog ID is required to publish articles"))

        try:
            async with self.http_client() as client:
                if config.resource_type == "blog":
                    result = await self._push_article(client, config, document)
                else:
                    result = await self._push_page(client, config, document)
        except IntegrationError as e:
            logger.error(f"Failed to push document {document.id} to {config.shop}: {e}")
            result = SyncResult.failure(document.id, str(e), external_id=document.external_id)

        return PushOutcome(result=result)

    async def _push_page(
        self, client: httpx.AsyncClient, config: ShopifyConfig, document: SyncDocument
    ) -> SyncResult:
        base_url = self._base_url(config)
        existing = await self._find_by_handle(client, config, f"{base_url}/pages.json", "pages", document.slug)

        page: Dict[str, Any] = {
            "title": document.title,
            "body_html": serialize_to_html(document.content),
            "handle": document.slug,
        }
        if existing:
            page["id"] = existing["id"]
            response = await self.make_api_request(
                client, "PUT", f"{base_url}/pages/{existing['id']}.json",
                headers=self._headers(config), json={"page": page},
            )
        else:
            response = await self.make_api_request(
                client, "POST", f"{base_url}/pages.json",
                headers=self._headers(config), json={"page": page},
            )

        saved = self._saved_item(response, "page")
        handle = saved.get("handle", document.slug)
        return SyncResult(
            success=True,
            document_id=document.id,
            external_id=str(saved["id"]),
            message="Updated successfully" if existing else "Published successfully",
            metadata={
                "shop": config.shop,
                "handle": handle,
                "url": f"https://{config.shop}/pages/{handle}",
            },
        )

    async def _push_article(
        self, client: httpx.AsyncClient, config: ShopifyConfig, document: SyncDocument
    ) -> SyncResult:
        base_url = self._base_url(config)
        blog_id = config.resource_id

        try:
            response = await self.make_api_request(
                client, "GET", f"{base_url}/blogs/{blog_id}.json", headers=self._headers(config)
            )
        except NotFoundError:
            return SyncResult.failure(document.id, f"Blog {blog_id} not found")
        blog_handle = self.read_json(response, dict, "blog").get("handle")

        articles_url = f"{base_url}/blogs/{blog_id}/articles.json"
        existing = await self._find_by_handle(client, config, articles_url, "articles", document.slug)

        article: Dict[str, Any] = {
            "title": document.title,
            "body_html": serialize_to_html(document.content),
            "handle": document.slug,
        }
        if existing:
            article["id"] = existing["id"]
            response = await self.make_api_request(
                client, "PUT", f"{base_url}/blogs/{blog_id}/articles/{existing['id']}.json",
                headers=self._headers(config), json={"article": article},
            )
        else:
            response = await self.make_api_request(
                client, "POST", articles_url, headers=self._headers(config), json={"article": article},
            )

        saved = self._saved_item(response, "article")
        handle = saved.get("handle", document.slug)
        return SyncResult(
            success=True,
            document_id=document.id,
            external_id=str(saved["id"]),
            message="Updated successfully" if existing else "Published successfully",
            metadata={
                "shop": config.shop,
                "handle": handle,
                "blog_id": blog_id,
                "url": f"https://{config.shop}/blogs/{blog_handle}/{handle}",
            },
        )

    async def pull(self, options: PullOptions) -> PullOutcome:
        """Read all pages, then the articles of every blog."""
        config = self.config_for(options.connection)
        missing = self._missing_credentials(config)
        if missing:
            return PullOutcome(results=[SyncResult.failure("", missing)])

        base_url = self._base_url(config)
        params = {"limit": self.page_limit}
        results: List[SyncResult] = []

        async with self.http_client() as client:
            try:
                response = await self.make_api_request(
                    client, "GET", f"{base_url}/pages.json", headers=self._headers(config), params=params
                )
                for page in self.read_json(response, list, "pages"):
                    results.append(self._item_result(config, page, "pages"))
            except IntegrationError as e:
                logger.warning(f"Failed to fetch pages from {config.shop}: {e}")
                results.append(SyncResult.failure("", f"Failed to fetch pages: {e}"))

            try:
                response = await self.make_api_request(
                    client, "GET", f"{base_url}/blogs.json", headers=self._headers(config)
                )
                blogs = self.read_json(response, list, "blogs")
            except IntegrationError as e:
                logger.warning(f"Failed to fetch blogs from {config.shop}: {e}")
                results.append(SyncResult.failure("", f"Failed to fetch blogs: {e}"))
                blogs = []

            for blog in blogs:
                blog_id = blog.get("id") if isinstance(blog, dict) else None
                if blog_id is None:
                    logger.warning(f"Skipping malformed blog entry from {config.shop}: {blog!r}")
                    results.append(SyncResult.failure("", f"Malformed blog entry: {blog!r}"))
                    continue
                try:
                    response = await self.make_api_request(
                        client, "GET", f"{base_url}/blogs/{blog_id}/articles.json",
                        headers=self._headers(config), params=params,
                    )
                    articles = self.read_json(response, list, "articles")
                except IntegrationError as e:
                    logger.warning(f"Failed to fetch articles of blog {blog_id}: {e}")
                    results.append(SyncResult.failure("", f"Failed to fetch articles of blog {blog_id}: {e}"))
                    continue
                for article in articles:
                    results.append(self._item_result(config, article, "blog", blog))

        return PullOutcome(results=results)

    def _item_result(
        self,
        config: ShopifyConfig,
        item: Dict[str, Any],
        resource_type: str,
        blog: Optional[Dict[str, Any]] = None,
    ) -> SyncResult:
        item_id = None
        try:
            item_id = item.get("id")
            handle = item["handle"]
            metadata = {
                "title": item.get("title") or handle,
                "slug": handle,
                "content": deserialize_from_html(item.get("body_html") or ""),
                "folder_path": None,
                "resource_type": resource_type,
                "updated_at": item.get("updated_at"),
            }
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            logger.warning(f"Failed to read Shopify {resource_type} item {item_id}: {e}")
            return SyncResult.failure("", f"Failed to read item {item_id}: {e}",
                                      external_id=str(item_id) if item_id else None)

        if blog is not None:
            metadata["blog_id"] = str(blog["id"])
            metadata["url"] = f"https://{config.shop}/blogs/{blog.get('handle')}/{handle}"
        else:
            metadata["url"] = f"https://{config.shop}/pages/{handle}"

        return SyncResult(
            success=True,
            document_id="",
            external_id=str(item_id),
            message=f"Pulled {handle}",
            metadata=metadata,
        )

    # Capabilities

    async def delete(self, options: DeleteOptions) -> DeleteOutcome:
        """Delete a page or article; one that is already gone counts as success."""
        config = self.config_for(options.connection)
        missing = self._missing_credentials(config)
        if missing:
            return DeleteOutcome(result=SyncResult.failure(options.document_id, missing))

        base_url = self._base_url(config)
        if config.resource_type == "blog":
            if not config.resource_id:
                return DeleteOutcome(result=SyncResult.failure(
                    options.document_id, "Blog ID is required to delete articles", external_id=options.external_id
                ))
            url = f"{base_url}/blogs/{config.resource_id}/articles/{options.external_id}.json"
        else:
            url = f"{base_url}/pages/{options.external_id}.json"

        try:
            async with self.http_client() as client:
                await self.make_api_request(client, "DELETE", url, headers=self._headers(config))
            message = "Deleted successfully"
        except NotFoundError:
            message = "Item does not exist, deletion skipped"
        except IntegrationError as e:
            logger.error(f"Failed to delete {options.external_id} from {config.shop}: {e}")
            return DeleteOutcome(result=SyncResult.failure(options.document_id, str(e), external_id=options.external_id))

        return DeleteOutcome(result=SyncResult(
            success=True,
            document_id=options.document_id,
            external_id=options.external_id,
            message=message,
        ))

    async def fetch_resources(self, connection: IntegrationConnection) -> ResourceListing:
        """The pages collection plus one resource per blog."""
        config = self.config_for(connection)
        missing = self._missing_credentials(config)
        if missing:
            raise ConfigurationError(missing)

        async with self.http_client() as client:
            response = await self.make_api_request(
                client, "GET", f"{self._base_url(config)}/blogs.json", headers=self._headers(config)
            )

        resources = [
            ExternalResource(
                id="pages",
                name="Shopify Pages",
                full_name=f"{config.shop} Pages",
                metadata={"type": "pages"},
            )
        ]
        for blog in self.read_json(response, list, "blogs"):
            resources.append(ExternalResource(
                id=str(blog["id"]),
                name=blog.get("title") or blog.get("handle") or str(blog["id"]),
                full_name=f"{config.shop}/blogs/{blog.get('handle')}",
                metadata={"type": "blog", "handle": blog.get("handle")},
            ))
        return ResourceListing(resources=resources)

    # OAuth flow

    def get_oauth_config(self) -> OAuthConfig:
        return OAuthConfig(
            auth_url=self.config["auth_url"],
            token_url=self.config["token_url"],
            scopes=self.config["scopes"],
        )

    def get_oauth_credentials(self) -> Optional[OAuthCredentials]:
        if not self.settings.shopify_client_id or not self.settings.shopify_client_secret:
            return None
        return OAuthCredentials(
            client_id=self.settings.shopify_client_id,
            client_secret=self.settings.shopify_client_secret,
        )

    def build_authorization_url(
        self,
        credentials: OAuthCredentials,
        state: str,
        redirect_uri: str,
        params: Optional[Dict[str, str]] = None,
    ) -> str:
        """Shop specific authorization URL; ``params`` must carry ``shop``."""
        shop = (params or {}).get("shop")
        if not shop:
            raise ConfigurationError("Shop domain is required to connect Shopify")
        shop = clean_shop_domain(shop)
        if not SHOP_DOMAIN_PATTERN.fullmatch(shop):
            raise ConfigurationError(f"Invalid shop domain: {shop}")

        query = {
            "client_id": credentials.client_id,
            "scope": ",".join(self.config["scopes"]),
            "redirect_uri": redirect_uri,
            "state": state,
        }
        return f"{self.config['auth_url'].format(shop=shop)}?{urllib.parse.urlencode(query)}"

    async def handle_oauth_callback(
        self,
        query_params: Dict[str, str],
        credentials: Optional[OAuthCredentials] = None,
    ) -> Dict[str, Any]:
        """Verify the callback and exchange the code for an access token."""
        credentials = credentials or self.get_oauth_credentials()
        if credentials is None:
            raise ConfigurationError("Shopify OAuth credentials not configured")

        shop = query_params.get("shop")
        code = query_params.get("code")
        if not shop or not code:
            raise AuthenticationError("Missing shop or code in callback")
        if not SHOP_DOMAIN_PATTERN.fullmatch(shop):
            raise AuthenticationError(f"Invalid shop domain: {shop}")
        if "hmac" in query_params and not verify_callback_hmac(query_params, credentials.client_secret):
            raise AuthenticationError("Invalid callback signature")

        async with self.http_client() as client:
            response = await self.make_api_request(
                client, "POST", self.config["token_url"].format(shop=shop),
                headers={"Accept": "application/json"},
                json={
                    "client_id": credentials.client_id,
                    "client_secret": credentials.client_secret,
                    "code": code,
                },
            )

        token_data = self.read_json(response)
        if "access_token" not in token_data:
            raise AuthenticationError("Token exchange returned no access token")

        logger.info(f"Shopify connected for {shop}")
        return {
            "shop": shop,
            "access_token": token_data["access_token"],
            "scopes": [scope.strip() for scope in token_data.get("scope", "").split(",") if scope.strip()],
            "resource_type": "pages",
        }
