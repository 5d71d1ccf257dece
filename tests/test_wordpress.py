"""Tests for the WordPress integration."""

import pytest

from conftest import make_document
from content_sync.models import DeleteOptions, PullOptions, PushOptions


class TestWordPressValidation:
    """Application password checks."""

    @pytest.mark.asyncio
    async def test_valid(self, wordpress, wordpress_conn):
        result = await wordpress.validate_connection(wordpress_conn)
        assert result.valid is True

    @pytest.mark.asyncio
    async def test_invalid_password(self, wordpress, wordpress_conn):
        connection = wordpress_conn.with_config_overrides({"application_password": "wrong"})
        result = await wordpress.validate_connection(connection)
        assert result.valid is False
        assert result.error == "Invalid credentials. Please check your username and application password."

    @pytest.mark.asyncio
    async def test_missing_credentials(self, wordpress, wordpress_conn):
        connection = wordpress_conn.with_config_overrides({"username": None})
        result = await wordpress.validate_connection(connection)
        assert result.valid is False

    def test_site_url_gets_scheme(self, wordpress, wordpress_conn):
        assert wordpress.site_url(wordpress_conn.config) == "https://blog.example.com"


class TestWordPressPush:
    """Publishing pages and posts."""

    @pytest.mark.asyncio
    async def test_push_twice_updates_by_slug(self, wordpress, wordpress_conn, fake_wordpress):
        document = make_document()

        first = await wordpress.push(PushOptions(document=document, connection=wordpress_conn))
        second = await wordpress.push(PushOptions(document=document, connection=wordpress_conn))

        assert first.result.message == "Published successfully"
        assert second.result.message == "Updated successfully"
        assert first.result.external_id == second.result.external_id
        assert len(fake_wordpress.items["pages"]) == 1

        page = next(iter(fake_wordpress.items["pages"].values()))
        assert page["content"] == {"rendered": "<h1>Getting Started</h1><p>Welcome aboard.</p>"}
        assert second.result.metadata["type"] == "pages"

    @pytest.mark.asyncio
    async def test_push_post(self, wordpress, wordpress_conn, fake_wordpress):
        connection = wordpress_conn.with_config_overrides({"resource_type": "posts"})

        outcome = await wordpress.push(PushOptions(document=make_document(), connection=connection))

        assert outcome.result.success is True
        assert len(fake_wordpress.items["posts"]) == 1
        assert fake_wordpress.items["pages"] == {}

    @pytest.mark.asyncio
    async def test_unsupported_resource_type(self, wordpress, wordpress_conn):
        connection = wordpress_conn.with_config_overrides({"resource_type": "media"})
        outcome = await wordpress.push(PushOptions(document=make_document(), connection=connection))
        assert outcome.result.success is False

    @pytest.mark.asyncio
    async def test_push_with_html_response_is_a_failure(self, wordpress, wordpress_conn, fake_wordpress):
        fake_wordpress.canned[("POST", "/wp-json/wp/v2/pages")] = {
            "status_code": 201, "text": "<html><body>Request blocked</body></html>",
        }

        outcome = await wordpress.push(PushOptions(document=make_document(), connection=wordpress_conn))

        assert outcome.result.success is False
        assert "Invalid JSON" in outcome.result.error


class TestWordPressPull:
    """Reading pages and posts."""

    @pytest.mark.asyncio
    async def test_pull_pages_and_posts(self, wordpress, wordpress_conn, fake_wordpress):
        page = fake_wordpress.add("pages", "about", "About &amp; Us", "<p>Hi <em>there</em></p>")
        post = fake_wordpress.add("posts", "hello", "Hello")

        outcome = await wordpress.pull(PullOptions(connection=wordpress_conn))
        results = {result.external_id: result for result in outcome.results}

        assert set(results) == {str(page["id"]), str(post["id"])}
        about = results[str(page["id"])].metadata
        assert about["title"] == "About & Us"
        assert about["type"] == "pages"
        assert about["content"]["content"] == [{
            "type": "paragraph",
            "content": [
                {"type": "text", "text": "Hi "},
                {"type": "text", "text": "there", "marks": [{"type": "italic"}]},
            ],
        }]
        assert results[str(post["id"])].metadata["type"] == "posts"

    @pytest.mark.asyncio
    async def test_pull_isolates_failures(self, wordpress, wordpress_conn, fake_wordpress):
        fake_wordpress.failing_collections.add("pages")
        fake_wordpress.add("posts", "hello")
        fake_wordpress.items["posts"][99] = {"id": 99, "title": {"rendered": "No slug"}}

        outcome = await wordpress.pull(PullOptions(connection=wordpress_conn))

        assert len(outcome.results) == 3
        assert [result.success for result in outcome.results] == [False, True, False]
        assert outcome.results[2].external_id == "99"

    @pytest.mark.asyncio
    async def test_malformed_item_fails_alone(self, wordpress, wordpress_conn, fake_wordpress):
        first = fake_wordpress.add("pages", "about")
        second = fake_wordpress.add("pages", "contact")
        fake_wordpress.canned[("GET", "/wp-json/wp/v2/pages")] = {
            "status_code": 200, "json": [first, None, second],
        }

        outcome = await wordpress.pull(PullOptions(connection=wordpress_conn))

        assert [result.success for result in outcome.results] == [True, False, True]
        assert outcome.results[2].metadata["slug"] == "contact"

    @pytest.mark.asyncio
    async def test_non_json_pages_do_not_stop_posts(self, wordpress, wordpress_conn, fake_wordpress):
        fake_wordpress.add("posts", "hello")
        fake_wordpress.canned[("GET", "/wp-json/wp/v2/pages")] = {
            "status_code": 200, "text": "<html>Maintenance</html>",
        }

        outcome = await wordpress.pull(PullOptions(connection=wordpress_conn))

        assert [result.success for result in outcome.results] == [False, True]
        assert "Invalid JSON" in outcome.results[0].error


class TestWordPressDelete:
    """Permanent deletion."""

    @pytest.mark.asyncio
    async def test_delete_twice(self, wordpress, wordpress_conn, fake_wordpress):
        page = fake_wordpress.add("pages", "about")
        options = DeleteOptions(document_id="doc-1", external_id=str(page["id"]), connection=wordpress_conn)

        first = await wordpress.delete(options)
        second = await wordpress.delete(options)

        assert first.result.message == "Deleted successfully"
        assert second.result.success is True
        assert second.result.message == "Item does not exist, deletion skipped"
        assert fake_wordpress.delete_params == [{"force": "true"}, {"force": "true"}]

    @pytest.mark.asyncio
    async def test_already_trashed(self, wordpress, wordpress_conn, fake_wordpress):
        fake_wordpress.gone.add(5)
        outcome = await wordpress.delete(
            DeleteOptions(document_id="doc-1", external_id="5", connection=wordpress_conn)
        )
        assert outcome.result.success is True
        assert outcome.result.message == "Item already deleted"


class TestWordPressDefaults:
    """Resources and default links."""

    @pytest.mark.asyncio
    async def test_fetch_resources(self, wordpress, wordpress_conn):
        listing = await wordpress.fetch_resources(wordpress_conn)
        assert [resource.id for resource in listing.resources] == ["pages-container", "posts-container"]
        assert listing.resources[0].full_name == "https://blog.example.com Pages"

    @pytest.mark.asyncio
    async def test_on_connect_links(self, wordpress, wordpress_conn):
        defaults = await wordpress.on_connect(wordpress_conn)
        assert [(link.name, link.config) for link in defaults.links] == [
            ("Pages", {"resource_type": "pages"}),
            ("Posts", {"resource_type": "posts"}),
        ]
