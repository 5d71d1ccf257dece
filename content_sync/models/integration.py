"""Integration connection models."""

from datetime import datetime, timezone
from typing import Annotated, Optional, Dict, Any, List, Literal, Union
from pydantic import BaseModel, Field, model_validator
from enum import Enum


class IntegrationType(str, Enum):
    """Types of integrations."""
    GITHUB = "github"
    SHOPIFY = "shopify"
    WORDPRESS = "wordpress"


class RefreshedCredential(BaseModel):
    """A credential minted during an operation that the caller must persist."""
    access_token: str
    expires_at: datetime


class ProviderConfig(BaseModel):
    """Provider specific connection configuration."""
    provider: str

    def apply_credential(self, credential: RefreshedCredential) -> "ProviderConfig":
        """Return a copy of this config carrying the refreshed credential."""
        raise ValueError(f"{self.provider} connections do not use refreshable credentials")


class GitHubConfig(ProviderConfig):
    """GitHub App installation and target repository."""
    provider: Literal["github"] = "github"

    installation_id: Optional[int] = None
    installation_access_token: Optional[str] = None
    installation_token_expires_at: Optional[datetime] = None

    owner: Optional[str] = None
    repo: Optional[str] = None
    branch: str = "main"
    base_path: Optional[str] = None

    metadata: Dict[str, Any] = Field(default_factory=dict)

    def apply_credential(self, credential: RefreshedCredential) -> "GitHubConfig":
        return self.model_copy(update={
            "installation_access_token": credential.access_token,
            "installation_token_expires_at": credential.expires_at,
        })


class ShopifyConfig(ProviderConfig):
    """Shopify shop credentials and target collection."""
    provider: Literal["shopify"] = "shopify"

    shop: Optional[str] = None  # myshop.myshopify.com
    access_token: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)
    resource_type: str = "pages"  # "pages" or "blog"
    resource_id: Optional[str] = None  # blog id for "blog"


class WordPressConfig(ProviderConfig):
    """WordPress site credentials (application password)."""
    provider: Literal["wordpress"] = "wordpress"

    site_url: Optional[str] = None
    username: Optional[str] = None
    application_password: Optional[str] = None
    resource_type: str = "pages"  # "pages" or "posts"


ConnectionConfig = Annotated[
    Union[GitHubConfig, ShopifyConfig, WordPressConfig],
    Field(discriminator="provider"),
]


class IntegrationConnection(BaseModel):
    """A configured connection to an external platform.

    The ``config`` is tagged with the connection's ``integration_type`` when
    loaded, so every adapter receives its own typed configuration.
    """
    id: str
    integration_type: IntegrationType
    config: ConnectionConfig
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _tag_config(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        config = data.get("config")
        integration_type = data.get("integration_type")
        if isinstance(config, dict) and integration_type is not None:
            provider = IntegrationType(integration_type).value
            tagged = config.get("provider")
            if tagged is not None and tagged != provider:
                raise ValueError(
                    f"Config for provider '{tagged}' cannot be used with a {provider} connection"
                )
            data = {**data, "config": {**config, "provider": provider}}
        return data

    @model_validator(mode="after")
    def _check_provider(self) -> "IntegrationConnection":
        if self.config.provider != self.integration_type.value:
            raise ValueError(
                f"Config for provider '{self.config.provider}' cannot be used "
                f"with a {self.integration_type.value} connection"
            )
        return self

    def with_config_overrides(self, overrides: Optional[Dict[str, Any]]) -> "IntegrationConnection":
        """Merge link level settings (resource type, base path...) over the config."""
        if not overrides:
            return self
        merged = {**self.config.model_dump(), **overrides, "provider": self.config.provider}
        return self.model_copy(update={"config": type(self.config).model_validate(merged)})

    def with_refreshed_credential(self, credential: RefreshedCredential) -> "IntegrationConnection":
        """Return a copy of the connection with a refreshed credential applied."""
        return self.model_copy(update={"config": self.config.apply_credential(credential)})


class ValidationResult(BaseModel):
    """Outcome of validating a connection."""
    valid: bool
    error: Optional[str] = None


class ExternalResource(BaseModel):
    """A selectable external container (repository, blog, page collection)."""
    id: str
    name: str
    full_name: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class OAuthConfig(BaseModel):
    """OAuth 2.0 configuration for an integration."""
    auth_url: str
    token_url: str
    scopes: List[str] = Field(default_factory=list)
    auth_params: Dict[str, str] = Field(default_factory=dict)


class OAuthCredentials(BaseModel):
    """OAuth client credentials."""
    client_id: str
    client_secret: str


class OAuthState(BaseModel):
    """State carried through an authorization round trip."""
    integration_type: IntegrationType
    organization_id: str
    user_id: str
    redirect_url: str
    nonce: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DefaultLink(BaseModel):
    """Sync target suggested right after a connection is established."""
    name: str
    config: Dict[str, Any] = Field(default_factory=dict)


class ConnectDefaults(BaseModel):
    """Defaults returned by an adapter's connect hook."""
    links: List[DefaultLink] = Field(default_factory=list)


class CleanupOutcome(BaseModel):
    """Result of remote cleanup when a connection is removed."""
    attempted: bool
    succeeded: bool
    error: Optional[str] = None
