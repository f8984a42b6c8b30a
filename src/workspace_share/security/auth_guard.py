"""Optional bearer authentication.

``AuthGuardMiddleware`` verifies an ``Authorization: Bearer`` header when
one is sent and leaves the result on ``request.state.auth_identity``. A
request without credentials still reaches its route as anonymous, since
``/shared/{token}`` serves links that do not require login. A credential
that fails verification is answered with 401 straight away.

Routes that need a principal declare ``Depends(get_auth_identity)``.
"""

from __future__ import annotations

from fastapi import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from ..observability.logging import get_logger
from .token_verify import (
    AuthIdentity,
    TokenVerificationError,
    TokenVerifier,
    extract_bearer_token,
)

logger = get_logger(__name__)

# Operational endpoints never look at credentials.
DEFAULT_EXEMPT_PREFIXES: tuple[str, ...] = ('/health', '/metrics', '/docs', '/openapi.json')

_CHALLENGE = {'WWW-Authenticate': 'Bearer'}


def _unauthenticated_body(detail: str, code: str | None = None) -> dict[str, str]:
    body = {'error': 'unauthenticated', 'detail': detail}
    if code is not None:
        body['code'] = code
    return body


class AuthGuardMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        token_verifier: TokenVerifier,
        exempt_prefixes: tuple[str, ...] = DEFAULT_EXEMPT_PREFIXES,
    ) -> None:
        super().__init__(app)
        self._verifier = token_verifier
        self._exempt_prefixes = exempt_prefixes

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.auth_identity = None
        path = request.url.path
        token = None if path.startswith(self._exempt_prefixes) else extract_bearer_token(request)
        if not token:
            return await call_next(request)

        try:
            identity = self._verifier.verify(token)
        except TokenVerificationError as exc:
            logger.info('auth_rejected', code=exc.code, path=path)
            return JSONResponse(
                _unauthenticated_body(exc.detail or 'Invalid bearer token', exc.code),
                status_code=401,
                headers=_CHALLENGE,
            )

        request.state.auth_identity = identity
        return await call_next(request)


def get_optional_identity(request: Request) -> AuthIdentity | None:
    """Dependency: the caller's identity, or None for anonymous requests."""
    return getattr(request.state, 'auth_identity', None)


def get_auth_identity(request: Request) -> AuthIdentity:
    """Dependency: the caller's identity; 401 for anonymous requests."""
    identity = get_optional_identity(request)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail=_unauthenticated_body('Authentication required'),
            headers=_CHALLENGE,
        )
    return identity
