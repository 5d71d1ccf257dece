"""GitHub integration implementation."""

import asyncio
import base64
import hashlib
import logging
import posixpath
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
    ConflictCheckable,
    DeleteCapable,
    DisconnectHook,
    OAuthCapable,
    ResourceDiscoverable,
)
from content_sync.integrations.credentials import InstallationTokenManager
from content_sync.integrations.registry import IntegrationRegistry
from content_sync.models import (
    CleanupOutcome,
    ConflictCheck,
    ConflictDetails,
    ConflictType,
    ContentVersion,
    DeleteOptions,
    DeleteOutcome,
    ExternalResource,
    GitHubConfig,
    IntegrationConnection,
    IntegrationType,
    OAuthConfig,
    OAuthCredentials,
    PullOptions,
    PullOutcome,
    PushOptions,
    PushOutcome,
    ResourceListing,
    SyncDocument,
    SyncResult,
    ValidationResult,
)
from content_sync.serialization import deserialize_from_file, serialize_for_file

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = tuple(INTEGRATION_CONFIGS["github"]["supported_extensions"])
REPOSITORY_NOT_CONFIGURED = "GitHub repository not configured"


def _strip_slashes(path: Optional[str]) -> str:
    return (path or "").strip().strip("/")


def build_file_name(title: str) -> str:
    """File name for a document title.

    Titles without an extension get ``.md``; an extension other than
    md/mdx/txt is replaced by ``.md``.
    """
    name = title.strip().replace("/", "-") or "untitled"
    if "." not in name:
        return f"{name}.md"
    stem, extension = name.rsplit(".", 1)
    if extension.lower() not in SUPPORTED_EXTENSIONS:
        return f"{stem or 'untitled'}.md"
    return name


def build_file_path(config: GitHubConfig, document: SyncDocument) -> str:
    """Repository path: base path, then folder path, then file name."""
    parts = [
        _strip_slashes(config.base_path),
        _strip_slashes(document.folder_path),
        build_file_name(document.title),
    ]
    return "/".join(part for part in parts if part)


def relative_folder(base_path: Optional[str], path: str) -> Optional[str]:
    """Folder of ``path`` relative to the base path, or None at the root."""
    directory = posixpath.dirname(path)
    base = _strip_slashes(base_path)
    if base:
        if directory == base:
            return None
        if directory.startswith(base + "/"):
            directory = directory[len(base) + 1:]
    return directory or None


def git_blob_sha(data: bytes) -> str:
    """SHA GitHub reports for a file with these bytes."""
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


@IntegrationRegistry.register(IntegrationType.GITHUB)
class GitHubIntegration(
    BaseIntegration,
    DeleteCapable,
    ResourceDiscoverable,
    ConflictCheckable,
    DisconnectHook,
    OAuthCapable,
):
    """GitHub repository sync through a GitHub App installation."""

    config_class = GitHubConfig

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.config = INTEGRATION_CONFIGS["github"]
        self.api_base_url = self.settings.github_api_base_url.rstrip("/")
        self.tokens = InstallationTokenManager(self.settings)

    # Helpers

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _contents_url(self, config: GitHubConfig, path: str) -> str:
        url = f"{self.api_base_url}/repos/{config.owner}/{config.repo}/contents"
        if path:
            url = f"{url}/{urllib.parse.quote(path, safe='/')}"
        return url

    def _require_repository(self, connection: IntegrationConnection) -> GitHubConfig:
        config = self.config_for(connection)
        if not config.owner or not config.repo:
            raise ConfigurationError(REPOSITORY_NOT_CONFIGURED)
        return config

    async def _get_file_sha(
        self, client: httpx.AsyncClient, headers: Dict[str, str], config: GitHubConfig, path: str
    ) -> Optional[str]:
        """Blob SHA of an existing file, or None when it does not exist."""
        try:
            response = await self.make_api_request(
                client, "GET", self._contents_url(config, path),
                headers=headers, params={"ref": config.branch},
            )
        except NotFoundError:
            return None
        # a directory listing comes back as a JSON list
        data = self.read_json(response)
        return data.get("sha")

    async def _list_directory(
        self, client: httpx.AsyncClient, headers: Dict[str, str], config: GitHubConfig, path: str
    ) -> List[Dict[str, Any]]:
        response = await self.make_api_request(
            client, "GET", self._contents_url(config, path),
            headers=headers, params={"ref": config.branch},
        )
        return self.read_json(response, list)

    # Contract

    async def validate_connection(self, connection: IntegrationConnection) -> ValidationResult:
        """Structural check of the installation and repository settings."""
        config = self.config_for(connection)
        if not config.installation_id:
            return ValidationResult(valid=False, error="GitHub App installation not configured")
        if not config.installation_access_token:
            return ValidationResult(valid=False, error="Installation access token missing")
        if not config.owner or not config.repo:
            return ValidationResult(valid=False, error="Repository not selected")
        if not config.branch:
            return ValidationResult(valid=False, error="Branch not configured")
        return ValidationResult(valid=True)

    async def push(self, options: PushOptions) -> PushOutcome:
        """Create or update the document's file in the repository."""
        document = options.document
        config = self.config_for(options.connection)
        if not config.owner or not config.repo:
            return PushOutcome(result=SyncResult.failure(document.id, REPOSITORY_NOT_CONFIGURED))

        path = build_file_path(config, document)

        async with self.http_client() as client:
            try:
                token, refreshed = await self.tokens.get_access_token(client, config)
            except IntegrationError as e:
                logger.error(f"Token refresh failed before pushing document {document.id}: {e}")
                return PushOutcome(result=SyncResult.failure(document.id, f"Token refresh failed: {e}"))

            headers = self._headers(token)
            try:
                sha = await self._get_file_sha(client, headers, config, path)
                text = serialize_for_file(path, document.content, dict(document.custom_fields))

                body: Dict[str, Any] = {
                    "message": options.commit_message or (f"Update {path}" if sha else f"Create {path}"),
                    "content": base64.b64encode(text.encode("utf-8")).decode("ascii"),
                    "branch": config.branch,
                }
                if sha:
                    body["sha"] = sha

                response = await self.make_api_request(
                    client, "PUT", self._contents_url(config, path), headers=headers, json=body
                )
                data = self.read_json(response)
                content = data.get("content") or {}
                result = SyncResult(
                    success=True,
                    document_id=document.id,
                    external_id=path,
                    message="Updated successfully" if sha else "Created successfully",
                    metadata={
                        "path": path,
                        "sha": content.get("sha"),
                        "commit_sha": (data.get("commit") or {}).get("sha"),
                        "url": content.get("html_url"),
                    },
                )
            except IntegrationError as e:
                logger.error(f"Failed to push document {document.id} to {config.owner}/{config.repo}: {e}")
                result = SyncResult.failure(document.id, str(e), external_id=path)

        return PushOutcome(result=result, refreshed_credential=refreshed)

    async def pull(self, options: PullOptions) -> PullOutcome:
        """Read every md/mdx/txt file under the base path."""
        config = self.config_for(options.connection)
        if not config.owner or not config.repo:
            return PullOutcome(results=[SyncResult.failure("", REPOSITORY_NOT_CONFIGURED)])

        async with self.http_client() as client:
            try:
                token, refreshed = await self.tokens.get_access_token(client, config)
            except IntegrationError as e:
                logger.error(f"Token refresh failed before pulling {config.owner}/{config.repo}: {e}")
                return PullOutcome(results=[SyncResult.failure("", f"Token refresh failed: {e}")])

            headers = self._headers(token)
            root = _strip_slashes(config.base_path)
            try:
                entries = await self._list_directory(client, headers, config, root)
            except IntegrationError as e:
                logger.error(f"Failed to list {config.owner}/{config.repo}/{root}: {e}")
                return PullOutcome(
                    results=[SyncResult.failure("", f"Failed to list repository contents: {e}")],
                    refreshed_credential=refreshed,
                )

            results = await self._pull_directory(client, headers, config, entries)

        logger.info(f"Pulled {len(results)} files from {config.owner}/{config.repo}")
        return PullOutcome(results=results, refreshed_credential=refreshed)

    async def _pull_directory(
        self,
        client: httpx.AsyncClient,
        headers: Dict[str, str],
        config: GitHubConfig,
        entries: List[Dict[str, Any]],
    ) -> List[SyncResult]:
        entries = [entry for entry in entries if isinstance(entry, dict) and entry.get("path")]
        files = [
            entry for entry in entries
            if entry.get("type") == "file"
            and posixpath.splitext(entry.get("name", ""))[1].lstrip(".").lower() in SUPPORTED_EXTENSIONS
        ]
        directories = [entry for entry in entries if entry.get("type") == "dir"]

        results = list(await asyncio.gather(
            *(self._pull_file(client, headers, config, entry["path"]) for entry in files)
        ))

        for directory in directories:
            path = directory["path"]
            try:
                children = await self._list_directory(client, headers, config, path)
            except IntegrationError as e:
                logger.warning(f"Failed to list directory {path}: {e}")
                results.append(SyncResult.failure("", f"Failed to list {path}: {e}", external_id=path))
                continue
            results.extend(await self._pull_directory(client, headers, config, children))

        return results

    async def _pull_file(
        self, client: httpx.AsyncClient, headers: Dict[str, str], config: GitHubConfig, path: str
    ) -> SyncResult:
        try:
            response = await self.make_api_request(
                client, "GET", self._contents_url(config, path),
                headers=headers, params={"ref": config.branch},
            )
            data = self.read_json(response)
            text = base64.b64decode(data.get("content") or "").decode("utf-8")
            content, fields = deserialize_from_file(text, path)
        except (IntegrationError, ValueError) as e:
            logger.warning(f"Failed to pull {path}: {e}")
            return SyncResult.failure("", f"Failed to pull {path}: {e}", external_id=path)

        stem = posixpath.splitext(posixpath.basename(path))[0]
        title = str(fields.pop("title", None) or stem)
        slug = str(fields.pop("slug", None) or stem.lower())
        custom_fields = {
            key: value for key, value in fields.items()
            if isinstance(value, (str, int, float, bool))
        }

        return SyncResult(
            success=True,
            document_id="",
            external_id=path,
            message=f"Pulled {path}",
            metadata={
                "title": title,
                "slug": slug,
                "content": content,
                "folder_path": relative_folder(config.base_path, path),
                "custom_fields": custom_fields,
                "path": path,
                "sha": data.get("sha"),
            },
        )

    # Capabilities

    async def delete(self, options: DeleteOptions) -> DeleteOutcome:
        """Delete a file; a file that is already gone counts as success."""
        config = self.config_for(options.connection)
        if not config.owner or not config.repo:
            return DeleteOutcome(result=SyncResult.failure(options.document_id, REPOSITORY_NOT_CONFIGURED))

        path = options.external_id

        async with self.http_client() as client:
            try:
                token, refreshed = await self.tokens.get_access_token(client, config)
            except IntegrationError as e:
                logger.error(f"Token refresh failed before deleting {path}: {e}")
                return DeleteOutcome(
                    result=SyncResult.failure(options.document_id, f"Token refresh failed: {e}", external_id=path)
                )

            headers = self._headers(token)
            try:
                sha = await self._get_file_sha(client, headers, config, path)
                if sha is None:
                    result = SyncResult(
                        success=True,
                        document_id=options.document_id,
                        external_id=path,
                        message=f"File {path} does not exist, deletion skipped",
                    )
                else:
                    await self.make_api_request(
                        client, "DELETE", self._contents_url(config, path), headers=headers,
                        json={
                            "message": options.commit_message or f"Delete {path}",
                            "sha": sha,
                            "branch": config.branch,
                        },
                    )
                    result = SyncResult(
                        success=True,
                        document_id=options.document_id,
                        external_id=path,
                        message="Deleted successfully",
                    )
            except NotFoundError:
                result = SyncResult(
                    success=True,
                    document_id=options.document_id,
                    external_id=path,
                    message=f"File {path} does not exist, deletion skipped",
                )
            except IntegrationError as e:
                logger.error(f"Failed to delete {path}: {e}")
                result = SyncResult.failure(options.document_id, str(e), external_id=path)

        return DeleteOutcome(result=result, refreshed_credential=refreshed)

    async def fetch_resources(self, connection: IntegrationConnection) -> ResourceListing:
        """List repositories of the account that owns the installation."""
        config = self.config_for(connection)
        if not config.installation_id:
            raise ConfigurationError("GitHub App installation not configured")

        async with self.http_client() as client:
            installation = await self._get_installation(client, config.installation_id)
            account = installation.get("account") or {}
            login = account.get("login")
            if not login:
                raise IntegrationError("Installation has no owning account")

            token, refreshed = await self.tokens.get_access_token(client, config)
            scope = "orgs" if account.get("type") == "Organization" else "users"
            response = await self.make_api_request(
                client, "GET", f"{self.api_base_url}/{scope}/{login}/repos",
                headers=self._headers(token),
                params={"sort": "updated", "per_page": 100, "type": "all"},
            )

        resources = [
            ExternalResource(
                id=repo["full_name"],
                name=repo["name"],
                full_name=repo["full_name"],
                metadata={
                    "default_branch": repo.get("default_branch", "main"),
                    "private": repo.get("private", False),
                    "owner": (repo.get("owner") or {}).get("login", login),
                },
            )
            for repo in self.read_json(response, list)
        ]
        return ResourceListing(resources=resources, refreshed_credential=refreshed)

    async def check_conflicts(
        self, document: SyncDocument, connection: IntegrationConnection
    ) -> ConflictCheck:
        """Compare the stored file with the local rendering of the document."""
        config = self._require_repository(connection)
        path = document.external_id or build_file_path(config, document)
        local_text = serialize_for_file(path, document.content, dict(document.custom_fields))
        local_sha = git_blob_sha(local_text.encode("utf-8"))
        local_version = ContentVersion(content=local_text, hash=local_sha)

        async with self.http_client() as client:
            token, refreshed = await self.tokens.get_access_token(client, config)
            try:
                response = await self.make_api_request(
                    client, "GET", self._contents_url(config, path),
                    headers=self._headers(token), params={"ref": config.branch},
                )
            except NotFoundError:
                if document.external_id:
                    return ConflictCheck(
                        has_conflict=True,
                        details=ConflictDetails(
                            local_version=local_version,
                            remote_version=ContentVersion(),
                            conflict_type=ConflictType.DELETED,
                        ),
                        refreshed_credential=refreshed,
                    )
                return ConflictCheck(has_conflict=False, refreshed_credential=refreshed)

        data = self.read_json(response)
        remote_sha = data.get("sha")
        if remote_sha == local_sha or (
            document.last_synced_hash and remote_sha == document.last_synced_hash
        ):
            return ConflictCheck(has_conflict=False, refreshed_credential=refreshed)

        remote_text = base64.b64decode(data.get("content") or "").decode("utf-8", errors="replace")
        return ConflictCheck(
            has_conflict=True,
            details=ConflictDetails(
                local_version=local_version,
                remote_version=ContentVersion(content=remote_text, hash=remote_sha),
                conflict_type=ConflictType.CONTENT,
            ),
            refreshed_credential=refreshed,
        )

    async def on_disconnect(self, connection: IntegrationConnection) -> CleanupOutcome:
        """Uninstall the GitHub App from the account."""
        config = self.config_for(connection)
        if not config.installation_id:
            return CleanupOutcome(attempted=False, succeeded=True)

        try:
            async with self.http_client() as client:
                await self.make_api_request(
                    client, "DELETE",
                    f"{self.api_base_url}/app/installations/{config.installation_id}",
                    headers=self.tokens.app_headers(),
                )
        except NotFoundError:
            logger.info(f"Installation {config.installation_id} already removed")
        except IntegrationError as e:
            logger.warning(f"Failed to remove installation {config.installation_id}: {e}")
            return CleanupOutcome(attempted=True, succeeded=False, error=str(e))

        logger.info(f"Removed GitHub App installation {config.installation_id}")
        return CleanupOutcome(attempted=True, succeeded=True)

    # OAuth / installation flow

    def get_oauth_config(self) -> OAuthConfig:
        return OAuthConfig(
            auth_url=self.get_installation_url(),
            token_url=self.config["token_url"],
            scopes=self.config["scopes"],
            auth_params=self.config["auth_params"],
        )

    def get_oauth_credentials(self) -> Optional[OAuthCredentials]:
        if not self.settings.github_app_client_id or not self.settings.github_client_secret:
            return None
        return OAuthCredentials(
            client_id=self.settings.github_app_client_id,
            client_secret=self.settings.github_client_secret,
        )

    def get_installation_url(self) -> str:
        """Public installation page of the GitHub App."""
        if not self.settings.github_app_slug:
            raise ConfigurationError("GitHub App slug not configured")
        return self.config["install_url"].format(slug=self.settings.github_app_slug)

    def build_authorization_url(
        self,
        credentials: OAuthCredentials,
        state: str,
        redirect_uri: str,
        params: Optional[Dict[str, str]] = None,
    ) -> str:
        """Installation URL carrying the state.

        GitHub sends users back to the app's configured setup URL, so
        ``redirect_uri`` is not part of the URL.
        """
        query = {"state": state, **(params or {})}
        return f"{self.get_installation_url()}?{urllib.parse.urlencode(query)}"

    async def get_app_info(self) -> Dict[str, Any]:
        """Details of the authenticated GitHub App."""
        async with self.http_client() as client:
            response = await self.make_api_request(
                client, "GET", f"{self.api_base_url}/app", headers=self.tokens.app_headers()
            )
        return self.read_json(response)

    async def _get_installation(self, client: httpx.AsyncClient, installation_id: int) -> Dict[str, Any]:
        response = await self.make_api_request(
            client, "GET", f"{self.api_base_url}/app/installations/{installation_id}",
            headers=self.tokens.app_headers(),
        )
        return self.read_json(response)

    async def handle_oauth_callback(
        self,
        query_params: Dict[str, str],
        credentials: Optional[OAuthCredentials] = None,
    ) -> Dict[str, Any]:
        """Turn an installation callback into a GitHub connection config."""
        raw_id = query_params.get("installation_id")
        if not raw_id:
            raise AuthenticationError("Missing installation_id in callback")
        try:
            installation_id = int(raw_id)
        except (TypeError, ValueError):
            raise AuthenticationError(f"Invalid installation_id: {raw_id}")

        async with self.http_client() as client:
            credential = await self.tokens.create_installation_token(client, installation_id)
            installation = await self._get_installation(client, installation_id)

        account = installation.get("account") or {}
        logger.info(f"GitHub App installed for {account.get('login')} (installation {installation_id})")

        return {
            "installation_id": installation_id,
            "installation_access_token": credential.access_token,
            "installation_token_expires_at": credential.expires_at,
            "owner": account.get("login"),
            "branch": "main",
            "metadata": {
                "management_url": self.config["management_url"].format(installation_id=installation_id),
                "account_type": account.get("type"),
                "setup_action": query_params.get("setup_action"),
            },
        }
