"""HTTP middleware for request correlation and metrics.

``RequestIdMiddleware`` must be the outermost layer so that every other
middleware, the auth guard included, logs with the request ID already set.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger, request_id_ctx
from .metrics import HTTP_REQUEST_DURATION_SECONDS, HTTP_REQUESTS_TOTAL

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_REQUEST_ID_RE = re.compile(r"[A-Za-z0-9-]{8,128}")

# Sub-resources of /workspaces/{id} whose next segment is an identifier.
_WORKSPACE_CHILDREN = {
    "shares": "{user_id}",
    "share-records": "{share_id}",
    "share-links": "{link_id}",
}


def _normalize_path(path: str) -> str:
    """Replace tokens and identifiers in ``path`` with route placeholders."""
    parts = path.split("/")
    if len(parts) < 3 or parts[0] != "":
        return path
    head = parts[1]
    if head == "shared":
        parts[2] = "{token}"
    elif head == "workspaces":
        parts[2] = "{id}"
        if len(parts) >= 5 and parts[3] in _WORKSPACE_CHILDREN:
            parts[4] = _WORKSPACE_CHILDREN[parts[3]]
    return "/".join(parts)


def _resolve_request_id(request: Request) -> str:
    candidate = request.headers.get(REQUEST_ID_HEADER, "")
    if _REQUEST_ID_RE.fullmatch(candidate):
        return candidate
    return uuid.uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request ID for the duration of the request and echo it back.

    A caller-supplied ``X-Request-ID`` is honoured only when it is 8-128
    characters of letters, digits and dashes; anything else is replaced.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _resolve_request_id(request)
        ctx_token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(ctx_token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count and time every request, then log ``request_completed``."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        route = _normalize_path(request.url.path)
        started = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            elapsed = time.perf_counter() - started
            HTTP_REQUESTS_TOTAL.labels(request.method, route, status).inc()
            HTTP_REQUEST_DURATION_SECONDS.labels(request.method, route).observe(elapsed)
            logger.info(
                "request_completed",
                method=request.method,
                path=route,
                status=int(status),
                duration_ms=round(elapsed * 1000, 2),
            )
