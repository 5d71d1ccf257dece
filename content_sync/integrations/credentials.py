"""GitHub App installation token lifecycle."""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional, Set, Tuple

import httpx
import jwt
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization

from content_sync.core.config import INTEGRATION_CONFIGS, Settings, get_settings
from content_sync.models import GitHubConfig, RefreshedCredential

from .base import AuthenticationError, ConfigurationError, IntegrationError

logger = logging.getLogger(__name__)

# Refresh installation tokens this long before they expire
REFRESH_BUFFER = timedelta(minutes=5)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    # stored expiries without an offset are UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class TokenState(str, Enum):
    """Where an installation token is in its lifecycle."""
    UNCONFIGURED = "unconfigured"
    VALID = "valid"
    NEAR_EXPIRY = "near_expiry"
    REFRESHING = "refreshing"


class InstallationTokenManager:
    """Mints and refreshes GitHub App installation tokens.

    The manager never mutates a connection. A freshly minted token is handed
    back as a :class:`RefreshedCredential` for the caller to persist.
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Clock = utcnow):
        self.settings = settings or get_settings()
        self.clock = clock
        self.api_base_url = self.settings.github_api_base_url.rstrip("/")
        # installation ids with a token request in flight
        self._refreshing: Set[int] = set()

    def needs_refresh(self, expires_at: Optional[datetime]) -> bool:
        """True when the token expires within the refresh buffer (or has no expiry)."""
        if expires_at is None:
            return True
        return _aware(expires_at) - self.clock() < REFRESH_BUFFER

    def token_state(self, config: GitHubConfig) -> TokenState:
        if config.installation_id in self._refreshing:
            return TokenState.REFRESHING
        if not config.installation_id or not config.installation_access_token:
            return TokenState.UNCONFIGURED
        if self.needs_refresh(config.installation_token_expires_at):
            return TokenState.NEAR_EXPIRY
        return TokenState.VALID

    def generate_app_jwt(self) -> str:
        """Generate JWT token for GitHub App authentication."""
        app_id = self.settings.github_app_client_id
        private_key = self.settings.github_app_private_key
        if not app_id or not private_key:
            raise ConfigurationError("GitHub App credentials not configured")

        now = int(self.clock().timestamp())
        payload = {
            "iat": now - 60,  # allow for clock drift
            "exp": now + (10 * 60),
            "iss": app_id,
        }

        try:
            private_key_obj = serialization.load_pem_private_key(
                private_key.encode(),
                password=None,
                backend=default_backend(),
            )
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid GitHub App private key: {e}") from e

        return jwt.encode(payload, private_key_obj, algorithm="RS256")

    def app_headers(self) -> dict:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.generate_app_jwt()}",
        }

    async def create_installation_token(
        self, client: httpx.AsyncClient, installation_id: int
    ) -> RefreshedCredential:
        """Exchange an app JWT for a new installation access token."""
        headers = self.app_headers()
        url = f"{self.api_base_url}/app/installations/{installation_id}/access_tokens"

        try:
            response = await client.post(
                url,
                headers=headers,
                json={"permissions": INTEGRATION_CONFIGS["github"]["token_permissions"]},
            )
        except httpx.HTTPError as e:
            raise IntegrationError(f"Failed to get installation token: {e}") from e

        if response.status_code != 201:
            raise AuthenticationError(
                f"Failed to get installation token: {response.text}", response.status_code
            )

        try:
            token_data = response.json()
            expires_at = datetime.fromisoformat(token_data["expires_at"].replace("Z", "+00:00"))
            return RefreshedCredential(access_token=token_data["token"], expires_at=_aware(expires_at))
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise AuthenticationError(f"Malformed installation token response: {e}") from e

    async def get_access_token(
        self, client: httpx.AsyncClient, config: GitHubConfig
    ) -> Tuple[str, Optional[RefreshedCredential]]:
        """Return a usable token, refreshing it first when it is near expiry.

        The second element is the new credential when a refresh happened.
        """
        if not config.installation_id:
            raise ConfigurationError("GitHub App installation not configured")

        if config.installation_access_token and not self.needs_refresh(
            config.installation_token_expires_at
        ):
            return config.installation_access_token, None

        logger.info(f"Refreshing installation token for installation {config.installation_id}")
        self._refreshing.add(config.installation_id)
        try:
            credential = await self.create_installation_token(client, config.installation_id)
        finally:
            self._refreshing.discard(config.installation_id)
        logger.info(
            f"Installation token refreshed for installation {config.installation_id}, "
            f"expires at {credential.expires_at.isoformat()}"
        )
        return credential.access_token, credential
