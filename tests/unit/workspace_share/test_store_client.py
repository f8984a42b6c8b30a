"""Unit tests for StoreClient.

Uses httpx.MockTransport to verify PostgREST requests without a real Supabase.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from workspace_share.db.errors import (
    StoreAuthError,
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
)
from workspace_share.db.store_client import StoreClient, StoreFilter


def _client(handler) -> StoreClient:
    return StoreClient(
        base_url="https://test.supabase.co/",
        service_role_key="svc-key",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_select_builds_filters_and_headers():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["headers"] = request.headers
        return httpx.Response(200, json=[{"id": "a"}])

    rows = await _client(handler).select(
        "workspace_shares",
        filters={"workspace_id": "ws_1", "is_active": ("is", True), "expires_at": ("is", None)},
        order="created_at.desc",
        limit=5,
    )

    assert rows == [{"id": "a"}]
    url = seen["url"]
    assert url.path == "/rest/v1/workspace_shares"
    assert url.params["workspace_id"] == "eq.ws_1"
    assert url.params["is_active"] == "is.true"
    assert url.params["expires_at"] == "is.null"
    assert url.params["order"] == "created_at.desc"
    assert url.params["limit"] == "5"
    assert seen["headers"]["apikey"] == "svc-key"
    assert seen["headers"]["authorization"] == "Bearer svc-key"


@pytest.mark.asyncio
async def test_in_filter_and_or_clause():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = request.url.params
        return httpx.Response(200, json=[])

    await _client(handler).select(
        "users",
        filters={"id": ("in", ["u1", "u2"]), "or": "(expires_at.is.null,expires_at.gt.X)"},
    )
    assert seen["params"]["id"] == 'in.("u1","u2")'
    assert seen["params"]["or"] == "(expires_at.is.null,expires_at.gt.X)"


@pytest.mark.asyncio
async def test_filter_sequence():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = request.url.params
        return httpx.Response(200, json=[])

    await _client(handler).select("share_links", [StoreFilter("access_count", "gte", 3)])
    assert seen["params"]["access_count"] == "gte.3"


@pytest.mark.asyncio
async def test_select_one_empty():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    assert await _client(handler).select_one("users", {"id": "x"}) is None


@pytest.mark.asyncio
async def test_insert_asks_for_representation():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["headers"] = request.headers
        return httpx.Response(201, json=[{"id": "s1"}])

    rows = await _client(handler).insert("workspace_shares", {"id": "s1"})
    assert rows == [{"id": "s1"}]
    assert seen["body"] == {"id": "s1"}
    assert seen["headers"]["prefer"] == "return=representation"
    assert seen["headers"]["content-profile"] == "public"


@pytest.mark.asyncio
async def test_update_requires_filters():
    async def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(ValueError):
        await _client(handler).update("workspace_shares", {}, {"is_active": False})


@pytest.mark.asyncio
async def test_rpc_scalar_result():
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=7)

    result = await _client(handler).rpc("increment_share_link_access", {"p_link_id": "l1"})
    assert result == 7
    assert seen["path"] == "/rest/v1/rpc/increment_share_link_access"
    assert seen["body"] == {"p_link_id": "l1"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,payload,expected",
    [
        (401, {"message": "bad key"}, StoreAuthError),
        (403, {"message": "rls"}, StoreAuthError),
        (404, {"message": "missing"}, StoreNotFoundError),
        (409, {"message": "dup", "code": "23505"}, StoreConflictError),
        (400, {"message": "dup", "code": "23505"}, StoreConflictError),
        (500, {"message": "boom"}, StoreError),
    ],
)
async def test_error_mapping(status, payload, expected):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=payload)

    with pytest.raises(expected) as exc_info:
        await _client(handler).select("users")
    assert exc_info.value.status_code == status
    assert exc_info.value.message == payload["message"]


@pytest.mark.asyncio
async def test_transport_error_becomes_store_error():
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(StoreError) as exc_info:
        await _client(handler).select("users")
    assert exc_info.value.status_code == 503
    assert "svc-key" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_timeout_becomes_store_error():
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(StoreError) as exc_info:
        await _client(handler).select("users")
    assert exc_info.value.status_code == 504


def test_requires_credentials():
    with pytest.raises(ValueError):
        StoreClient(base_url="", service_role_key="k")
    with pytest.raises(ValueError):
        StoreClient(base_url="https://x", service_role_key="")
