"""
Unit tests for the backend REST client.
"""

import json

import httpx
import pytest

from shared.errors import ExternalServiceError
from service_feed.app.adapters.backend_client import BackendClient, MutationParams


def make_client(handler):
    return BackendClient(
        "http://backend.test/",
        "anon-key",
        transport=httpx.MockTransport(handler),
    )


class TestBackendClient:
    """Test cases for BackendClient."""

    @pytest.mark.asyncio
    async def test_fetch_entity_filters_by_id(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[{"id": "u1", "username": "alice"}])

        row = await make_client(handler).fetch_profile("u1")

        assert row == {"id": "u1", "username": "alice"}
        request = seen[0]
        assert request.url.path == "/rest/v1/profiles"
        assert request.url.params["id"] == "eq.u1"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"

    @pytest.mark.asyncio
    async def test_fetch_entity_missing_row(self):
        client = make_client(lambda request: httpx.Response(200, json=[]))
        assert await client.fetch_entity("profiles", "ghost") is None

    @pytest.mark.asyncio
    async def test_fetch_batch_uses_in_filter(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[{"id": "u1"}, {"id": "u2"}])

        rows = await make_client(handler).fetch_profiles(["u1", "u2"])

        assert len(rows) == 2
        assert seen[0].url.params["id"] == "in.(u1,u2)"

    @pytest.mark.asyncio
    async def test_fetch_batch_empty_ids_skips_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await make_client(handler).fetch_entities_batch("profiles", []) == []

    @pytest.mark.asyncio
    async def test_fetch_posts_orders_newest_first(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        assert await make_client(handler).fetch_posts(5) == []
        params = seen[0].url.params
        assert params["order"] == "created_at.desc"
        assert params["limit"] == "5"
        assert "author:profiles" in params["select"]
        assert "saved_posts(user_id)" in params["select"]
        assert "offset" not in params

    @pytest.mark.asyncio
    async def test_fetch_posts_passes_offset(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        await make_client(handler).fetch_posts(10, offset=20)

        params = seen[0].url.params
        assert params["limit"] == "10"
        assert params["offset"] == "20"

    @pytest.mark.asyncio
    async def test_insert_mutation(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201)

        await make_client(handler).apply_mutation(MutationParams(
            table="reactions",
            operation="insert",
            values={"target_id": "post-1", "user_id": "u1", "reaction_type": "like"},
        ))

        request = seen[0]
        assert request.method == "POST"
        assert request.headers["Prefer"] == "return=minimal"
        assert json.loads(request.content)["reaction_type"] == "like"

    @pytest.mark.asyncio
    async def test_delete_mutation(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        await make_client(handler).apply_mutation(MutationParams(
            table="reactions",
            operation="delete",
            match={"target_id": "post-1", "user_id": "u1"},
        ))

        request = seen[0]
        assert request.method == "DELETE"
        assert request.url.params["target_id"] == "eq.post-1"
        assert request.url.params["user_id"] == "eq.u1"

    @pytest.mark.asyncio
    async def test_error_status_raises_with_message(self):
        client = make_client(lambda request: httpx.Response(429, json={"message": "rate limit exceeded"}))

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.apply_mutation(MutationParams(table="reactions", operation="insert", values={}))

        assert exc_info.value.details["status_code"] == 429
        assert "rate limit exceeded" in exc_info.value.message
        assert exc_info.value.service == "backend"

    @pytest.mark.asyncio
    async def test_error_without_json_body(self):
        client = make_client(lambda request: httpx.Response(500, text="oops"))

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.fetch_posts()

        assert "Unexpected status 500" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error_is_mapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(ExternalServiceError) as exc_info:
            await make_client(handler).fetch_posts()

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_mutation_params_validation(self):
        with pytest.raises(ValueError):
            MutationParams(table="reactions", operation="update")
        with pytest.raises(ValueError):
            MutationParams(table="reactions", operation="delete")
