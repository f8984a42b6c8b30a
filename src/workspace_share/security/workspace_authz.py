"""Workspace authorization dependency.

Composes the principal (``get_auth_identity``) with the access resolver
into a FastAPI dependency guarding workspace-scoped routes:

  - no principal                → 401
  - level below required        → 403 (``access_denied`` / ``not_owner``)
  - resolver error or timeout   → 500, handler never runs

An error during resolution is never indistinguishable from a grant: the
dependency either returns a level that satisfies ``required`` or raises.
On success the level is also stored on ``request.state.access_level``.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Depends, HTTPException, Request

from ..errors import ShareError
from ..observability.logging import get_logger
from ..sharing.access import AccessResolver
from ..sharing.model import AccessLevel
from .auth_guard import get_auth_identity
from .token_verify import AuthIdentity

logger = get_logger(__name__)


def require_workspace_access(
    resolver: AccessResolver,
    required: AccessLevel,
) -> Callable[..., Awaitable[AccessLevel]]:
    """Build a dependency enforcing ``required`` on the ``workspace_id`` path param."""

    async def dependency(
        workspace_id: str,
        request: Request,
        identity: AuthIdentity = Depends(get_auth_identity),
    ) -> AccessLevel:
        try:
            level = await resolver.require(workspace_id, identity.user_id, required)
        except ShareError as exc:
            if exc.status_code >= 500:
                logger.error(
                    'access_resolution_failed',
                    workspace_id=workspace_id,
                    user_id=identity.user_id,
                    code=exc.code,
                )
            raise HTTPException(status_code=exc.status_code, detail=exc.to_dict()) from exc
        except Exception as exc:
            logger.exception(
                'access_resolution_failed',
                workspace_id=workspace_id,
                user_id=identity.user_id,
            )
            raise HTTPException(
                status_code=500,
                detail={'error': 'internal_error', 'detail': 'Internal server error'},
            ) from exc

        request.state.access_level = level
        return level

    return dependency
