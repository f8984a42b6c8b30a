"""Async PostgREST client used by every share-store repository.

Requests authenticate with the service-role key. Each call maps to one
HTTP request and therefore one SQL statement, which is the unit of
atomicity repositories can rely on (conditional updates, RPC functions).

Filters are given either as a mapping::

    {"workspace_id": "ws_1", "is_active": ("is", True), "or": "(a.is.null,a.gt.1)"}

where a bare value means ``eq`` and the ``or`` key passes a raw PostgREST
disjunction through, or as a sequence of ``StoreFilter``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import httpx

from .errors import (
    StoreAuthError,
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
)

Filters = Sequence["StoreFilter"] | Mapping[str, Any] | None

UNIQUE_VIOLATION = "23505"

_WRITE_METHODS = frozenset({"POST", "PATCH", "DELETE"})


@dataclass(frozen=True, slots=True)
class StoreFilter:
    column: str
    op: str
    value: Any


def _scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _operand(op: str, value: Any) -> str:
    if op == "in":
        if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("in operator requires an iterable of values")
        members = (json.dumps(v) if isinstance(v, str) else _scalar(v) for v in value)
        return "(" + ",".join(members) + ")"
    if value is None and op != "is":
        raise ValueError(f"{op} does not support None; use op='is' with value=None")
    return _scalar(value)


def _as_filters(filters: Filters) -> list[StoreFilter]:
    if not filters:
        return []
    if not isinstance(filters, Mapping):
        return list(filters)
    result = []
    for column, spec in filters.items():
        if column == "or":
            result.append(StoreFilter("or", "", spec))
        elif isinstance(spec, tuple) and len(spec) == 2:
            result.append(StoreFilter(column, str(spec[0]), spec[1]))
        else:
            result.append(StoreFilter(column, "eq", spec))
    return result


def _query_params(filters: Filters) -> list[tuple[str, str]]:
    # A list of pairs so repeated columns survive (e.g. two range bounds).
    params = []
    for f in _as_filters(filters):
        if f.column == "or" and not f.op:
            params.append(("or", str(f.value)))
        else:
            params.append((f.column, f"{f.op}.{_operand(f.op, f.value)}"))
    return params


def _error_class(status_code: int, pg_code: str | None) -> type[StoreError]:
    if status_code in (401, 403):
        return StoreAuthError
    if status_code == 404:
        return StoreNotFoundError
    if status_code == 409 or pg_code == UNIQUE_VIOLATION:
        return StoreConflictError
    return StoreError


def _error_from_response(resp: httpx.Response) -> StoreError:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        body = {}
    pg_code = body.get("code")
    return _error_class(resp.status_code, pg_code)(
        status_code=resp.status_code,
        message=body.get("message") or resp.text,
        code=pg_code,
        details=body.get("details"),
        hint=body.get("hint"),
    )


class StoreClient:
    def __init__(
        self,
        *,
        base_url: str,
        service_role_key: str,
        schema: str = "public",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self.rest_url = base_url.rstrip("/") + "/rest/v1"
        self._key = service_role_key
        self._schema = schema or "public"
        self._timeout = float(timeout_seconds)
        self._owns_client = http_client is None
        self._http = http_client if http_client is not None else httpx.AsyncClient()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _headers(self, method: str, *, return_rows: bool) -> dict[str, str]:
        # Carries the service key; keep out of logs and exception text.
        headers = {
            "apikey": self._key,
            "Authorization": "Bearer " + self._key,
            "Accept-Profile": self._schema,
        }
        if method in _WRITE_METHODS:
            headers["Content-Profile"] = self._schema
        if return_rows:
            headers["Prefer"] = "return=representation"
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: list[tuple[str, str]] | None = None,
        body: Any = None,
        return_rows: bool = False,
    ) -> Any:
        try:
            resp = await self._http.request(
                method,
                f"{self.rest_url}/{path}",
                params=params,
                json=body,
                headers=self._headers(method, return_rows=return_rows),
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise StoreError(status_code=504, message=f"store request timed out: {method} {path}") from exc
        except httpx.TransportError as exc:
            raise StoreError(status_code=503, message=f"store unreachable: {type(exc).__name__}") from exc

        if resp.is_error:
            raise _error_from_response(resp)
        return resp.json() if resp.content else None

    @staticmethod
    def _rows(payload: Any, operation: str) -> list[dict[str, Any]]:
        if not isinstance(payload, list):
            raise StoreError(status_code=500, message=f"expected list response from {operation}")
        return payload

    async def select(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        params = _query_params(filters) + [("select", columns)]
        if limit is not None:
            params.append(("limit", str(int(limit))))
        if order:
            params.append(("order", order))
        return self._rows(await self._send("GET", table, params=params), "select")

    async def select_one(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: str = "*",
        order: str | None = None,
    ) -> dict[str, Any] | None:
        rows = await self.select(table, filters, columns=columns, limit=1, order=order)
        return rows[0] if rows else None

    async def insert(
        self,
        table: str,
        data: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        payload = await self._send("POST", table, body=data, return_rows=True)
        return self._rows(payload, "insert")

    async def update(
        self,
        table: str,
        filters: Filters,
        data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        """PATCH the rows matching ``filters``; returns only rows it changed."""
        if not filters:
            raise ValueError("update requires at least one filter")
        payload = await self._send(
            "PATCH", table, params=_query_params(filters), body=data, return_rows=True,
        )
        return self._rows(payload, "update")

    async def rpc(self, function_name: str, params: Mapping[str, Any] | None = None) -> Any:
        return await self._send("POST", f"rpc/{function_name}", body=dict(params or {}))
