"""Access resolution: who may see which workspace.

Implements the per-request permission decision:

  1. Ownership row for (workspace, user)  → ``owner`` (authoritative,
     never cached; ownership does not expire).
  2. Active direct share for (workspace, user)  → candidate ``view``.
  3. Candidate share past ``expires_at``  → lazily deactivate, ``none``.
  4. Otherwise touch ``last_accessed_at`` and return ``view``.

Failure semantics:
  Store failures and deadline overruns propagate (``ShareInternalError`` /
  ``StoreTimeoutError``); the resolver never returns a granted level on
  error.  The lazy deactivation and the ``last_accessed_at`` touch are
  best-effort writes issued after the decision is made: their failure is
  logged and counted but never changes the decision.

Concurrency:
  A resolve that read a share as active just before a concurrent revoke
  commits grants access for that one request.  Deactivation is idempotent,
  so two resolvers expiring the same row concurrently both see ``none``.

This module provides:
  1. ``AccessResolver``: the resolver.
  2. ``verify_owner``: re-validates a claimed owner against the store.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Awaitable

from ..errors import AccessDeniedError, NotOwnerError
from ..observability.logging import get_logger
from ..observability.metrics import ACCESS_DECISIONS_TOTAL, BEST_EFFORT_FAILURES_TOTAL
from .deadline import bounded
from .model import AccessLevel, Share, utcnow

if TYPE_CHECKING:
    from ..protocols import ContentStore, ShareRepository

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


async def verify_owner(
    content: ContentStore,
    workspace_id: str,
    owner_id: str,
) -> None:
    """Raise ``NotOwnerError`` unless ``owner_id`` owns the live workspace.

    Missing and foreign workspaces are indistinguishable to the caller.
    """
    actual = await content.get_owner_user_id(workspace_id)
    if actual is None or actual != owner_id:
        raise NotOwnerError()


async def best_effort(
    awaitable: Awaitable[object],
    timeout: float | None,
    *,
    operation: str,
    **log_fields: object,
) -> bool:
    """Run a telemetry or cleanup write whose failure must not surface."""
    try:
        await bounded(awaitable, timeout, operation=operation)
    except asyncio.CancelledError:
        raise
    except Exception:
        BEST_EFFORT_FAILURES_TOTAL.labels(operation=operation).inc()
        logger.warning('best_effort_write_failed', operation=operation, exc_info=True, **log_fields)
        return False
    return True


class AccessResolver:
    """Resolves the effective ``AccessLevel`` of a user on a workspace."""

    def __init__(
        self,
        content: ContentStore,
        shares: ShareRepository,
        *,
        default_timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._content = content
        self._shares = shares
        self._default_timeout = default_timeout

    async def _decide(self, workspace_id: str, user_id: str) -> tuple[AccessLevel, Share | None]:
        owner_id = await self._content.get_owner_user_id(workspace_id)
        if owner_id is None:
            return AccessLevel.NONE, None
        if owner_id == user_id:
            return AccessLevel.OWNER, None
        share = await self._shares.get_active(workspace_id, user_id)
        if share is None:
            return AccessLevel.NONE, None
        return AccessLevel.VIEW, share

    async def resolve(
        self,
        workspace_id: str,
        user_id: str | None,
        *,
        timeout: float | None = None,
    ) -> AccessLevel:
        """Return ``OWNER``, ``VIEW`` or ``NONE`` for ``user_id``.

        Raises:
            StoreTimeoutError: The deadline passed before a decision.
            ShareInternalError: The store failed before a decision.
        """
        if not user_id:
            ACCESS_DECISIONS_TOTAL.labels(level=AccessLevel.NONE.value).inc()
            return AccessLevel.NONE

        timeout = self._default_timeout if timeout is None else timeout
        try:
            level, share = await bounded(
                self._decide(workspace_id, user_id),
                timeout,
                operation='access.resolve',
            )
        except Exception:
            ACCESS_DECISIONS_TOTAL.labels(level='error').inc()
            raise

        if share is not None:
            now = utcnow()
            if share.is_expired(now):
                level = AccessLevel.NONE
                logger.info(
                    'share_expired',
                    workspace_id=workspace_id,
                    share_id=share.id,
                    expired_at=share.expires_at.isoformat() if share.expires_at else None,
                )
                await best_effort(
                    self._shares.deactivate(share.id),
                    timeout,
                    operation='share_lazy_expire',
                    share_id=share.id,
                )
            else:
                await best_effort(
                    self._shares.touch(share.id, now),
                    timeout,
                    operation='share_touch',
                    share_id=share.id,
                )

        ACCESS_DECISIONS_TOTAL.labels(level=level.value).inc()
        logger.debug('access_resolved', workspace_id=workspace_id, user_id=user_id, level=level.value)
        return level

    async def require(
        self,
        workspace_id: str,
        user_id: str | None,
        required: AccessLevel,
        *,
        timeout: float | None = None,
    ) -> AccessLevel:
        """Resolve and check against ``required``; returns the effective level.

        Raises:
            AccessDeniedError / NotOwnerError: Level is insufficient.
        """
        level = await self.resolve(workspace_id, user_id, timeout=timeout)
        if not level.satisfies(required):
            if required is AccessLevel.OWNER and level.granted:
                raise NotOwnerError('Workspace ownership required')
            raise AccessDeniedError()
        return level
