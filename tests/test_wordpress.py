"""Tests for the WordPress REST stores against a mocked session."""

from unittest.mock import MagicMock

import pytest
import requests

from taxonomy_migration.exceptions import StoreError, TermCreationFailed, TermExists
from taxonomy_migration.stores.wordpress import (
    WordPressClient,
    WordPressEntityStore,
    WordPressTermStore,
)


# ── Fixtures ──────────────────────────────────────────────────────────────


def _response(status_code=200, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    response.headers = headers or {}
    response.reason = "Error"
    return response


TAXONOMY_INFO = _response(200, {"slug": "product_tag", "rest_base": "product_tag"})


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return WordPressClient("https://shop.example.com/", timeout=5, session=session)


# ── Tests: WordPressClient ───────────────────────────────────────────────


class TestWordPressClient:

    def test_url(self, client):
        assert client.url("posts/1") == "https://shop.example.com/wp-json/wp/v2/posts/1"

    def test_every_request_has_timeout(self, client, session):
        session.request.return_value = _response(200, {"id": 1})

        client.get_json("posts/1")

        assert session.request.call_args.kwargs["timeout"] == 5

    def test_not_found_is_none(self, client, session):
        session.request.return_value = _response(404, {"code": "rest_post_invalid_id"})
        assert client.get_json("posts/999") is None

    def test_connection_error_is_store_error(self, client, session):
        session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(StoreError):
            client.get_json("posts/1")

    def test_server_error_is_store_error(self, client, session):
        session.request.return_value = _response(500, {"message": "Internal error"})
        with pytest.raises(StoreError) as exc:
            client.get_json("posts/1")
        assert exc.value.details["status_code"] == 500

    def test_get_all_follows_pages(self, client, session):
        session.request.side_effect = [
            _response(200, [{"id": 1}], {"X-WP-TotalPages": "2"}),
            _response(200, [{"id": 2}], {"X-WP-TotalPages": "2"}),
        ]
        assert [item["id"] for item in client.get_all("tags")] == [1, 2]


# ── Tests: WordPressTermStore ────────────────────────────────────────────


class TestWordPressTermStore:

    def test_find_term_keeps_exact_match(self, client, session):
        session.request.side_effect = [
            TAXONOMY_INFO,
            _response(200, [
                {"id": 5, "name": "Beta &amp; Co"},
                {"id": 6, "name": "Beta"},
            ], {"X-WP-TotalPages": "1"}),
        ]
        term = WordPressTermStore(client).find_term("Beta", "product_tag")
        assert term.id == 6

    def test_unknown_taxonomy(self, client, session):
        session.request.return_value = _response(404)
        assert WordPressTermStore(client).taxonomy_exists("nope") is False

    def test_create_term(self, client, session):
        session.request.side_effect = [
            TAXONOMY_INFO,
            _response(201, {"id": 9, "name": "Beta", "slug": "beta", "description": "x"}),
        ]
        term = WordPressTermStore(client).create_term("Beta", "product_tag", "x")

        assert term.id == 9
        assert session.request.call_args.kwargs["json"] == {"name": "Beta", "description": "x"}

    def test_duplicate_maps_to_term_exists(self, client, session):
        session.request.side_effect = [
            TAXONOMY_INFO,
            _response(400, {
                "code": "term_exists",
                "message": "A term with the name provided already exists.",
                "data": {"status": 400, "term_id": 9},
            }),
        ]
        with pytest.raises(TermExists) as exc:
            WordPressTermStore(client).create_term("Beta", "product_tag")
        assert exc.value.term_id == 9

    def test_other_rejection_maps_to_creation_failed(self, client, session):
        session.request.side_effect = [
            TAXONOMY_INFO,
            _response(403, {"code": "rest_cannot_create", "message": "Sorry"}),
        ]
        with pytest.raises(TermCreationFailed):
            WordPressTermStore(client).create_term("Beta", "product_tag")


# ── Tests: WordPressEntityStore ──────────────────────────────────────────


class TestWordPressEntityStore:

    def test_append_merges_existing_terms(self, client, session):
        session.request.side_effect = [
            _response(200, {"slug": "product", "rest_base": "products"}),
            _response(200, {"id": 10, "type": "product", "product_tag": [3]}),
            TAXONOMY_INFO,
            _response(200, {"id": 10, "product_tag": [3, 4]}),
        ]
        store = WordPressEntityStore(client, ["product"], WordPressTermStore(client))

        assert store.set_entity_terms(10, [4], "product_tag", append=True) == [3, 4]

        method, url = session.request.call_args.args
        assert method == "POST"
        assert url.endswith("/wp-json/wp/v2/products/10")
        assert session.request.call_args.kwargs["json"] == {"product_tag": [3, 4]}

    def test_get_entity_reads_raw_title(self, client, session):
        session.request.side_effect = [
            _response(200, {"rest_base": "products"}),
            _response(200, {"id": 20, "type": "product", "title": {"raw": "Beta", "rendered": "Beta"}}),
        ]
        store = WordPressEntityStore(client, ["product"], WordPressTermStore(client))

        entity = store.get_entity(20)

        assert entity.title == "Beta"
        assert entity.post_type == "product"

    def test_missing_post(self, client, session):
        session.request.side_effect = [
            _response(200, {"rest_base": "products"}),
            _response(404),
        ]
        store = WordPressEntityStore(client, ["product"], WordPressTermStore(client))

        assert store.get_entity(999) is None
