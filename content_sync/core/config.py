"""Configuration settings for the content sync engine."""

from typing import Optional, Dict, Any
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    # Service Configuration
    service_name: str = "content-sync"
    environment: str = "development"
    debug: bool = False

    # HTTP
    http_timeout: float = 30.0

    # Security
    encryption_key: str = "change-me"
    oauth_state_salt: str = "content-sync-oauth-state"
    oauth_state_max_age: int = 600  # seconds

    # GitHub App
    github_app_client_id: Optional[str] = None
    github_app_private_key: Optional[str] = None
    github_app_slug: Optional[str] = None
    github_client_secret: Optional[str] = None
    github_api_base_url: str = "https://api.github.com"

    # Shopify
    shopify_client_id: Optional[str] = None
    shopify_client_secret: Optional[str] = None
    shopify_api_version: str = "2024-01"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Integration specific configurations
INTEGRATION_CONFIGS: Dict[str, Dict[str, Any]] = {
    "github": {
        "name": "GitHub",
        "type": "github_app",
        "auth_url": "https://github.com/login/oauth/authorize",
        "token_url": "https://github.com/login/oauth/access_token",
        "install_url": "https://github.com/apps/{slug}/installations/new",
        "management_url": "https://github.com/settings/installations/{installation_id}",
        "scopes": ["repo"],
        "auth_params": {"allow_signup": "false"},
        "supported_extensions": ["md", "mdx", "txt"],
        "token_permissions": {"contents": "write", "metadata": "read"},
    },
    "shopify": {
        "name": "Shopify",
        "type": "oauth2",
        # Authorization and token URLs depend on the shop
        "auth_url": "https://{shop}/admin/oauth/authorize",
        "token_url": "https://{shop}/admin/oauth/access_token",
        "scopes": ["write_content", "read_content", "write_themes", "read_themes"],
        "page_limit": 250,
    },
    "wordpress": {
        "name": "WordPress",
        "type": "api_key",
        "api_version": "wp/v2",
        "page_limit": 100,
    },
}
