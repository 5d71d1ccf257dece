"""Shared fixtures: settings, RSA keys and in-memory fakes of the platform APIs."""

import base64
import hashlib
import json
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from content_sync.core.config import Settings
from content_sync.integrations import (
    GitHubIntegration,
    ShopifyIntegration,
    WordPressIntegration,
)
from content_sync.models import IntegrationConnection, IntegrationType, SyncDocument


def _json_body(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content.decode()) if request.content else {}


def blob_sha(text: str) -> str:
    data = text.encode("utf-8")
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


class FakeGitHub:
    """Contents, installation and repository endpoints of the GitHub API."""

    def __init__(self, owner: str = "acme", repo: str = "docs"):
        self.owner = owner
        self.repo = repo
        self.files: Dict[str, str] = {}
        self.valid_tokens = {"ghs_current"}
        self.token_status = 201
        self.token_requests = 0
        self.token_request_bodies: List[Dict[str, Any]] = []
        self.app_jwts: List[str] = []
        self.failing_paths: set = set()
        self.installation = {"id": 42, "account": {"login": owner, "type": "Organization"}}
        self.installation_delete_status = 204
        self.deleted_installations: List[str] = []
        self.repos = [
            {"name": repo, "full_name": f"{owner}/{repo}", "default_branch": "main",
             "private": False, "owner": {"login": owner}},
            {"name": "site", "full_name": f"{owner}/site", "default_branch": "trunk",
             "private": True, "owner": {"login": owner}},
        ]
        self.repo_listing_paths: List[str] = []
        self.puts: List[Dict[str, Any]] = []
        self._counter = itertools.count(1)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def _file_json(self, path: str) -> Dict[str, Any]:
        text = self.files[path]
        return {
            "type": "file",
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "sha": blob_sha(text),
            "encoding": "base64",
            "content": base64.b64encode(text.encode("utf-8")).decode("ascii"),
        }

    def _listing(self, path: str) -> Optional[List[Dict[str, Any]]]:
        prefix = f"{path}/" if path else ""
        entries: Dict[str, Dict[str, Any]] = {}
        for file_path in self.files:
            if not file_path.startswith(prefix):
                continue
            rest = file_path[len(prefix):]
            name = rest.split("/", 1)[0]
            child = f"{prefix}{name}"
            if "/" in rest:
                entries[child] = {"type": "dir", "name": name, "path": child}
            else:
                entries[child] = {"type": "file", "name": name, "path": child, "sha": blob_sha(self.files[child])}
        if not entries and path:
            return None
        return list(entries.values())

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        auth = request.headers.get("Authorization", "")

        if path.startswith("/app/installations/") and path.endswith("/access_tokens"):
            self.token_requests += 1
            self.app_jwts.append(auth.split(" ", 1)[-1])
            self.token_request_bodies.append(_json_body(request))
            if self.token_status != 201:
                return httpx.Response(self.token_status, json={"message": "Bad credentials"})
            token = f"ghs_minted_{next(self._counter)}"
            self.valid_tokens.add(token)
            expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
            return httpx.Response(201, json={
                "token": token,
                "expires_at": expires_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "permissions": {"contents": "write", "metadata": "read"},
            })

        if path == "/app":
            self.app_jwts.append(auth.split(" ", 1)[-1])
            return httpx.Response(200, json={"slug": "content-sync-test", "name": "Content Sync"})

        if path.startswith("/app/installations/"):
            self.app_jwts.append(auth.split(" ", 1)[-1])
            installation_id = path.rsplit("/", 1)[-1]
            if request.method == "DELETE":
                self.deleted_installations.append(installation_id)
                if self.installation_delete_status == 204:
                    return httpx.Response(204)
                return httpx.Response(self.installation_delete_status, json={"message": "failed"})
            return httpx.Response(200, json=self.installation)

        if path.endswith("/repos") and (path.startswith("/orgs/") or path.startswith("/users/")):
            self.repo_listing_paths.append(path)
            return httpx.Response(200, json=self.repos)

        contents_prefix = f"/repos/{self.owner}/{self.repo}/contents"
        if not path.startswith(contents_prefix):
            return httpx.Response(404, json={"message": "Not Found"})

        if auth.split(" ", 1)[-1] not in self.valid_tokens:
            return httpx.Response(401, json={"message": "Bad credentials"})

        file_path = path[len(contents_prefix):].strip("/")
        if file_path in self.failing_paths:
            return httpx.Response(500, json={"message": "Server Error"})

        if request.method == "GET":
            if file_path in self.files:
                return httpx.Response(200, json=self._file_json(file_path))
            listing = self._listing(file_path)
            if listing is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=listing)

        if request.method == "PUT":
            body = _json_body(request)
            self.puts.append({"path": file_path, **body})
            existing = self.files.get(file_path)
            if existing is not None and body.get("sha") != blob_sha(existing):
                return httpx.Response(409, json={"message": "sha mismatch"})
            if existing is None and body.get("sha"):
                return httpx.Response(422, json={"message": "sha given for new file"})
            self.files[file_path] = base64.b64decode(body["content"]).decode("utf-8")
            return httpx.Response(200 if existing is not None else 201, json={
                "content": {
                    "path": file_path,
                    "sha": blob_sha(self.files[file_path]),
                    "html_url": f"https://github.com/{self.owner}/{self.repo}/blob/main/{file_path}",
                },
                "commit": {"sha": f"commit{next(self._counter)}"},
            })

        if request.method == "DELETE":
            body = _json_body(request)
            existing = self.files.get(file_path)
            if existing is None:
                return httpx.Response(404, json={"message": "Not Found"})
            if body.get("sha") != blob_sha(existing):
                return httpx.Response(409, json={"message": "sha mismatch"})
            del self.files[file_path]
            return httpx.Response(200, json={"commit": {"sha": f"commit{next(self._counter)}"}})

        return httpx.Response(405)


class FakeShopify:
    """Admin REST API of one shop."""

    def __init__(self, shop: str = "acme.myshopify.com", token: str = "shpat_valid"):
        self.shop = shop
        self.token = token
        self.pages: Dict[int, Dict[str, Any]] = {}
        self.blogs: Dict[int, Dict[str, Any]] = {7: {"id": 7, "handle": "news", "title": "News"}}
        self.articles: Dict[int, Dict[int, Dict[str, Any]]] = {7: {}}
        self.failing_blogs: set = set()
        self.fail_pages = False
        # (method, path) -> httpx.Response kwargs served instead of the real handler
        self.canned: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.token_exchanges: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []
        self._ids = itertools.count(1000)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def add_page(self, handle: str, body_html: str = "<p>Hello</p>", title: Optional[str] = None) -> Dict[str, Any]:
        page = {"id": next(self._ids), "handle": handle, "title": title or handle.title(), "body_html": body_html}
        self.pages[page["id"]] = page
        return page

    def add_article(self, blog_id: int, handle: str, body_html: str = "<p>Post</p>") -> Dict[str, Any]:
        article = {"id": next(self._ids), "handle": handle, "title": handle.title(), "body_html": body_html}
        self.articles.setdefault(blog_id, {})[article["id"]] = article
        return article

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/admin/oauth/access_token":
            self.token_exchanges.append(_json_body(request))
            return httpx.Response(200, json={"access_token": "shpat_new", "scope": "write_content,read_content"})

        if request.url.host != self.shop:
            return httpx.Response(404)
        if request.headers.get("X-Shopify-Access-Token") != self.token:
            return httpx.Response(401, json={"errors": "[API] Invalid API key or access token"})
        canned = self.canned.get((request.method, path))
        if canned is not None:
            return httpx.Response(**canned)

        prefix = "/admin/api/2024-01/"
        if not path.startswith(prefix):
            return httpx.Response(404)
        parts = path[len(prefix):].removesuffix(".json").split("/")
        method = request.method
        body = _json_body(request)

        if parts == ["shop"]:
            return httpx.Response(200, json={"shop": {"domain": self.shop}})

        if parts[0] == "pages":
            if len(parts) == 1:
                if method == "GET":
                    if self.fail_pages:
                        return httpx.Response(500, json={"errors": "boom"})
                    # the handle filter is ignored so exact matching is up to the client
                    return httpx.Response(200, json={"pages": list(self.pages.values())})
                page = {"id": next(self._ids), **body["page"]}
                self.pages[page["id"]] = page
                return httpx.Response(201, json={"page": page})
            page_id = int(parts[1])
            if page_id not in self.pages:
                return httpx.Response(404, json={"errors": "Not Found"})
            if method == "PUT":
                self.pages[page_id].update(body["page"])
                return httpx.Response(200, json={"page": self.pages[page_id]})
            if method == "DELETE":
                del self.pages[page_id]
                return httpx.Response(200, json={})

        if parts[0] == "blogs":
            if len(parts) == 1:
                return httpx.Response(200, json={"blogs": list(self.blogs.values())})
            blog_id = int(parts[1])
            if blog_id not in self.blogs:
                return httpx.Response(404, json={"errors": "Not Found"})
            if len(parts) == 2:
                return httpx.Response(200, json={"blog": self.blogs[blog_id]})
            articles = self.articles.setdefault(blog_id, {})
            if len(parts) == 3:
                if method == "GET":
                    if blog_id in self.failing_blogs:
                        return httpx.Response(500, json={"errors": "boom"})
                    return httpx.Response(200, json={"articles": list(articles.values())})
                article = {"id": next(self._ids), **body["article"]}
                articles[article["id"]] = article
                return httpx.Response(201, json={"article": article})
            article_id = int(parts[3])
            if article_id not in articles:
                return httpx.Response(404, json={"errors": "Not Found"})
            if method == "PUT":
                articles[article_id].update(body["article"])
                return httpx.Response(200, json={"article": articles[article_id]})
            if method == "DELETE":
                del articles[article_id]
                return httpx.Response(200, json={})

        return httpx.Response(404)


class FakeWordPress:
    """wp/v2 REST API of one site."""

    def __init__(self, username: str = "editor", password: str = "abcd efgh ijkl"):
        self.credentials = base64.b64encode(f"{username}:{password}".encode()).decode()
        self.items: Dict[str, Dict[int, Dict[str, Any]]] = {"pages": {}, "posts": {}}
        self.gone: set = set()
        self.failing_collections: set = set()
        self.canned: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.delete_params: List[Dict[str, Any]] = []
        self._ids = itertools.count(1)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def add(self, collection: str, slug: str, title: str = "Title", content: str = "<p>Body</p>") -> Dict[str, Any]:
        item_id = next(self._ids)
        item = {
            "id": item_id,
            "slug": slug,
            "title": {"rendered": title},
            "content": {"rendered": content},
            "link": f"https://blog.example.com/{slug}/",
            "status": "publish",
        }
        self.items[collection][item_id] = item
        return item

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization") != f"Basic {self.credentials}":
            return httpx.Response(401, json={"code": "rest_not_logged_in", "message": "Not logged in"})

        prefix = "/wp-json/wp/v2/"
        path = request.url.path
        canned = self.canned.get((request.method, path))
        if canned is not None:
            return httpx.Response(**canned)
        if not path.startswith(prefix):
            return httpx.Response(404, json={"code": "rest_no_route"})
        parts = path[len(prefix):].strip("/").split("/")
        params = request.url.params

        if parts == ["users", "me"]:
            return httpx.Response(200, json={"id": 1, "name": "Editor"})

        collection = parts[0]
        if collection not in self.items:
            return httpx.Response(404, json={"code": "rest_no_route"})
        items = self.items[collection]

        if len(parts) == 1:
            if request.method == "GET":
                if collection in self.failing_collections:
                    return httpx.Response(500, json={"code": "internal_error", "message": "boom"})
                found = list(items.values())
                if "slug" in params:
                    found = [item for item in found if item["slug"] == params["slug"]]
                return httpx.Response(200, json=found)
            body = _json_body(request)
            item = self.add(collection, body["slug"], body["title"], body["content"])
            return httpx.Response(201, json=item)

        item_id = int(parts[1])
        if request.method == "DELETE":
            self.delete_params.append(dict(params))
            if item_id in self.gone:
                return httpx.Response(410, json={"code": "rest_already_trashed"})
            if item_id not in items:
                return httpx.Response(404, json={"code": "rest_post_invalid_id"})
            del items[item_id]
            return httpx.Response(200, json={"deleted": True})
        if item_id not in items:
            return httpx.Response(404, json={"code": "rest_post_invalid_id"})
        body = _json_body(request)
        items[item_id]["title"] = {"rendered": body["title"]}
        items[item_id]["content"] = {"rendered": body["content"]}
        return httpx.Response(200, json=items[item_id])


@pytest.fixture(scope="session")
def rsa_private_key():
    """RSA key for signing GitHub App JWTs."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def settings(private_key_pem) -> Settings:
    return Settings(
        environment="test",
        encryption_key="test-encryption-key",
        github_app_client_id="Iv1.testclient",
        github_app_private_key=private_key_pem,
        github_app_slug="content-sync-test",
        github_client_secret="github-secret",
        shopify_client_id="shopify-client",
        shopify_client_secret="shopify-secret",
        log_format="text",
    )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def fake_shopify() -> FakeShopify:
    return FakeShopify()


@pytest.fixture
def fake_wordpress() -> FakeWordPress:
    return FakeWordPress()


@pytest.fixture
def github(settings, fake_github) -> GitHubIntegration:
    return GitHubIntegration(settings=settings, transport=fake_github.transport())


@pytest.fixture
def shopify(settings, fake_shopify) -> ShopifyIntegration:
    return ShopifyIntegration(settings=settings, transport=fake_shopify.transport())


@pytest.fixture
def wordpress(settings, fake_wordpress) -> WordPressIntegration:
    return WordPressIntegration(settings=settings, transport=fake_wordpress.transport())


def github_connection(expires_in: timedelta = timedelta(hours=1), **overrides) -> IntegrationConnection:
    config = {
        "installation_id": 42,
        "installation_access_token": "ghs_current",
        "installation_token_expires_at": datetime.now(timezone.utc) + expires_in,
        "owner": "acme",
        "repo": "docs",
        "branch": "main",
        **overrides,
    }
    return IntegrationConnection(id="conn-github", integration_type=IntegrationType.GITHUB, config=config)


@pytest.fixture
def github_conn() -> IntegrationConnection:
    return github_connection()


@pytest.fixture
def shopify_conn() -> IntegrationConnection:
    return IntegrationConnection(
        id="conn-shopify",
        integration_type=IntegrationType.SHOPIFY,
        config={"shop": "acme.myshopify.com", "access_token": "shpat_valid"},
    )


@pytest.fixture
def wordpress_conn() -> IntegrationConnection:
    return IntegrationConnection(
        id="conn-wordpress",
        integration_type=IntegrationType.WORDPRESS,
        config={
            "site_url": "blog.example.com",
            "username": "editor",
            "application_password": "abcd efgh ijkl",
        },
    )


def make_document(title: str = "Getting Started", slug: str = "getting-started", **kwargs) -> SyncDocument:
    content = kwargs.pop("content", {
        "type": "doc",
        "content": [
            {"type": "heading", "attrs": {"level": 1}, "content": [{"type": "text", "text": title}]},
            {"type": "paragraph", "content": [{"type": "text", "text": "Welcome aboard."}]},
        ],
    })
    return SyncDocument(id=kwargs.pop("id", "doc-1"), title=title, slug=slug, content=content, **kwargs)
