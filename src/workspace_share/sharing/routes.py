"""HTTP surface of the share engine.

Implements:

  GET    /users/search?q=&limit=                       → recipient search
  POST   /workspaces/{workspace_id}/shares             → grant direct share
  GET    /workspaces/{workspace_id}/shares             → list shares (owner)
  DELETE /workspaces/{workspace_id}/shares/{user_id}   → revoke by recipient
  DELETE /workspaces/{workspace_id}/share-records/{share_id}
                                                       → revoke by share id
  GET    /shared-with-me                               → caller's shared workspaces
  POST   /workspaces/{workspace_id}/share-link         → issue share link
  GET    /workspaces/{workspace_id}/share-links        → list links (owner)
  DELETE /workspaces/{workspace_id}/share-links/{link_id}
                                                       → revoke link (owner)
  GET    /workspaces/{workspace_id}/activity           → activity trail (owner)
  GET    /workspaces/{workspace_id}                    → workspace view (view)
  GET    /shared/{token}                               → link access

Auth contract:
  - Every route except ``/shared/{token}`` requires a principal (401).
  - Workspace-scoped routes are guarded by ``require_workspace_access``;
    resolution errors become 500 before the handler runs.
  - Engine errors (``ShareError``) render as ``{"error", "detail"}`` with
    their own status; anything else is logged and answered with 500.

This module provides:
  ``create_share_router``: FastAPI router factory with injected engine.
  ``register_error_handlers``: 400 ``validation_error`` for malformed input.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt

from ..errors import ShareError, ShareValidationError
from ..observability.logging import get_logger, redact_token
from ..security.auth_guard import get_auth_identity, get_optional_identity
from ..security.token_verify import AuthIdentity
from ..security.workspace_authz import require_workspace_access
from .access import AccessResolver
from .activity import DEFAULT_ACTIVITY_LIMIT, ActivityRecorder
from .links import LinkShareManager
from .model import AccessLevel
from .shares import ShareManager
from .users import DEFAULT_SEARCH_LIMIT, UserSearch

logger = get_logger(__name__)


# ── Request schemas ──────────────────────────────────────────────────


class CreateShareRequest(BaseModel):
    """Request body for granting a direct share."""

    model_config = ConfigDict(populate_by_name=True)

    share_with_user_id: str = Field(..., alias='shareWithUserId', min_length=1)
    expires_at: datetime | None = Field(default=None, alias='expiresAt')


class CreateLinkRequest(BaseModel):
    """Request body for issuing a share link."""

    model_config = ConfigDict(populate_by_name=True)

    requires_login: StrictBool = Field(default=True, alias='requiresLogin')
    # Booleans and numeric strings are rejected, not coerced.
    expires_in: StrictInt | StrictFloat | None = Field(
        default=None,
        alias='expiresIn',
        description='Link lifetime in hours; omitted means never expires',
    )


# ── Shared helpers ───────────────────────────────────────────────────


def _client_meta(request: Request) -> dict[str, str | None]:
    forwarded = request.headers.get('x-forwarded-for', '')
    ip = forwarded.split(',')[0].strip() if forwarded else None
    if not ip and request.client is not None:
        ip = request.client.host
    return {'ip_address': ip, 'user_agent': request.headers.get('user-agent')}


def _error_response(exc: Exception, event: str, **fields: object) -> JSONResponse:
    """Render an engine error, or log and mask anything unexpected.

    Must be called from inside an ``except`` block.
    """
    if isinstance(exc, ShareError):
        if exc.status_code >= 500:
            logger.error(event, code=exc.code, detail=exc.message, **fields)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    logger.exception(event, **fields)
    return JSONResponse(
        status_code=500,
        content={'error': 'internal_error', 'detail': 'Internal server error'},
    )


def _not_found(code: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={'error': code, 'detail': detail})


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        {
            'field': '.'.join(str(part) for part in err.get('loc', ())[1:]),
            'message': err.get('msg', ''),
        }
        for err in exc.errors()
    ]
    logger.info('request_rejected', path=request.url.path, fields=[f['field'] for f in fields])
    error = ShareValidationError('Malformed request', errors=fields)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    """Answer malformed bodies, paths and queries with a 400 ``validation_error``."""
    app.add_exception_handler(RequestValidationError, _request_validation_error)


# ── Route factory ────────────────────────────────────────────────────


def create_share_router(
    *,
    resolver: AccessResolver,
    shares: ShareManager,
    links: LinkShareManager,
    activity: ActivityRecorder,
    users: UserSearch,
    public_base_url: str = '',
) -> APIRouter:
    """Create the share router with injected engine components.

    Args:
        resolver: Access resolver backing the authorization dependency.
        shares: Direct-share manager.
        links: Link-share manager.
        activity: Activity recorder (listing only; writes happen in the
            managers).
        users: Recipient search.
        public_base_url: Base for full share-link URLs; the request's base
            URL is used when empty.

    Returns:
        FastAPI router with the share lifecycle routes.
    """
    router = APIRouter(tags=['sharing'])

    require_owner = require_workspace_access(resolver, AccessLevel.OWNER)
    require_view = require_workspace_access(resolver, AccessLevel.VIEW)

    def _link_url(request: Request, token: str) -> str:
        base = public_base_url.rstrip('/') or str(request.base_url).rstrip('/')
        return f'{base}/shared/{token}'

    # ── Users ─────────────────────────────────────────────────────────

    @router.get('/users/search')
    async def search_users(
        q: str = '',
        limit: int = DEFAULT_SEARCH_LIMIT,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Find recipients by username substring (caller excluded)."""
        try:
            found = await users.search_users(q, identity.user_id, limit)
        except Exception as exc:
            return _error_response(exc, 'search_users_failed', user_id=identity.user_id)
        return {'users': [u.to_dict() for u in found]}

    # ── Direct shares ─────────────────────────────────────────────────

    @router.post('/workspaces/{workspace_id}/shares', status_code=201)
    async def create_share(
        workspace_id: str,
        body: CreateShareRequest,
        request: Request,
        identity: AuthIdentity = Depends(get_auth_identity),
        _level: AccessLevel = Depends(require_owner),
    ):
        """Grant ``view`` to ``shareWithUserId``.

        Error responses:
          - 400: self-share, expiry not in the future.
          - 403: caller does not own the workspace.
          - 404: recipient missing or inactive.
          - 409: already shared with this user.
        """
        try:
            share = await shares.create_share(
                workspace_id,
                identity.user_id,
                body.share_with_user_id,
                body.expires_at,
                **_client_meta(request),
            )
        except Exception as exc:
            return _error_response(exc, 'create_share_failed', workspace_id=workspace_id)
        return share.to_dict()

    @router.get('/workspaces/{workspace_id}/shares')
    async def list_shares(
        workspace_id: str,
        identity: AuthIdentity = Depends(get_auth_identity),
        _level: AccessLevel = Depends(require_owner),
    ):
        """Active shares on the workspace, newest first."""
        try:
            found = await shares.list_shares(workspace_id, identity.user_id)
        except Exception as exc:
            return _error_response(exc, 'list_shares_failed', workspace_id=workspace_id)
        return {'shares': [s.to_dict() for s in found]}

    @router.delete('/workspaces/{workspace_id}/shares/{user_id}', status_code=204)
    async def revoke_share_by_recipient(
        workspace_id: str,
        user_id: str,
        request: Request,
        identity: AuthIdentity = Depends(get_auth_identity),
        _level: AccessLevel = Depends(require_owner),
    ):
        """Revoke the active share held by ``user_id``; 404 if none."""
        try:
            revoked = await shares.revoke_by_recipient(
                workspace_id, identity.user_id, user_id, **_client_meta(request),
            )
        except Exception as exc:
            return _error_response(exc, 'revoke_share_failed', workspace_id=workspace_id)
        if not revoked:
            return _not_found('share_not_found', 'Share not found')
        return Response(status_code=204)

    @router.delete('/workspaces/{workspace_id}/share-records/{share_id}', status_code=204)
    async def revoke_share_by_id(
        workspace_id: str,
        share_id: str,
        request: Request,
        identity: AuthIdentity = Depends(get_auth_identity),
        _level: AccessLevel = Depends(require_owner),
    ):
        """Revoke the share record ``share_id``; 404 if not active."""
        try:
            revoked = await shares.revoke_by_share_id(
                workspace_id, identity.user_id, share_id, **_client_meta(request),
            )
        except Exception as exc:
            return _error_response(exc, 'revoke_share_failed', workspace_id=workspace_id)
        if not revoked:
            return _not_found('share_not_found', 'Share not found')
        return Response(status_code=204)

    @router.get('/shared-with-me')
    async def shared_with_me(
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Workspaces shared with the caller, most recently used first."""
        try:
            found = await shares.list_shared_with_me(identity.user_id)
        except Exception as exc:
            return _error_response(exc, 'shared_with_me_failed', user_id=identity.user_id)
        return {'workspaces': [w.to_dict() for w in found]}

    # ── Links ─────────────────────────────────────────────────────────

    @router.post('/workspaces/{workspace_id}/share-link', status_code=201)
    async def create_share_link(
        workspace_id: str,
        request: Request,
        body: CreateLinkRequest | None = None,
        identity: AuthIdentity = Depends(get_auth_identity),
        _level: AccessLevel = Depends(require_owner),
    ):
        """Issue a share link. The token appears in this response only."""
        body = body or CreateLinkRequest()
        try:
            link = await links.create_link(
                workspace_id,
                identity.user_id,
                requires_login=body.requires_login,
                expires_in_hours=body.expires_in,
                **_client_meta(request),
            )
        except Exception as exc:
            return _error_response(exc, 'create_share_link_failed', workspace_id=workspace_id)
        return {**link.to_dict(), 'link': _link_url(request, link.token or '')}

    @router.get('/workspaces/{workspace_id}/share-links')
    async def list_share_links(
        workspace_id: str,
        include_inactive: bool = Query(default=False, alias='includeInactive'),
        identity: AuthIdentity = Depends(get_auth_identity),
        _level: AccessLevel = Depends(require_owner),
    ):
        """Links on the workspace, newest first (no tokens)."""
        try:
            found = await links.list_links(
                workspace_id, identity.user_id, include_inactive=include_inactive,
            )
        except Exception as exc:
            return _error_response(exc, 'list_share_links_failed', workspace_id=workspace_id)
        return {'links': [l.to_dict() for l in found]}

    @router.delete('/workspaces/{workspace_id}/share-links/{link_id}', status_code=204)
    async def revoke_share_link(
        workspace_id: str,
        link_id: str,
        request: Request,
        identity: AuthIdentity = Depends(get_auth_identity),
        _level: AccessLevel = Depends(require_owner),
    ):
        """Deactivate a link; 404 if unknown or already inactive."""
        try:
            revoked = await links.revoke_link(
                workspace_id, identity.user_id, link_id, **_client_meta(request),
            )
        except Exception as exc:
            return _error_response(exc, 'revoke_share_link_failed', workspace_id=workspace_id)
        if not revoked:
            return _not_found('share_link_not_found', 'Share link not found')
        return Response(status_code=204)

    @router.get('/shared/{token}')
    async def access_shared(
        token: str,
        request: Request,
        identity: AuthIdentity | None = Depends(get_optional_identity),
    ):
        """Open a workspace through a share link.

        Error responses:
          - 401: link requires login (body carries ``requiresLogin: true``).
          - 404: token unknown, revoked or expired; workspace deleted.
        """
        try:
            view = await links.access_via_link(
                token,
                identity.user_id if identity else None,
                **_client_meta(request),
            )
        except Exception as exc:
            return _error_response(exc, 'access_shared_failed', token_prefix=redact_token(token))
        return {'workspace': view.to_dict()}

    # ── Activity / view ───────────────────────────────────────────────

    @router.get('/workspaces/{workspace_id}/activity')
    async def list_activity(
        workspace_id: str,
        limit: int = DEFAULT_ACTIVITY_LIMIT,
        identity: AuthIdentity = Depends(get_auth_identity),
        _level: AccessLevel = Depends(require_owner),
    ):
        """Share activity on the workspace, newest first."""
        try:
            records = await activity.list_activity(workspace_id, identity.user_id, limit=limit)
        except Exception as exc:
            return _error_response(exc, 'list_activity_failed', workspace_id=workspace_id)
        return {'activity': [r.to_dict() for r in records]}

    @router.get('/workspaces/{workspace_id}')
    async def get_workspace(
        workspace_id: str,
        request: Request,
        identity: AuthIdentity = Depends(get_auth_identity),
        level: AccessLevel = Depends(require_view),
    ):
        """Workspace content; read-only with share provenance for viewers."""
        try:
            view = await shares.view_workspace(
                workspace_id, identity.user_id, level, **_client_meta(request),
            )
        except Exception as exc:
            return _error_response(exc, 'get_workspace_failed', workspace_id=workspace_id)
        return {'workspace': view.to_dict()}

    return router
