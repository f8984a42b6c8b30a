"""Best-effort audit trail for share operations.

Records share grants, revocations, link creation/revocation and views to
the ``share_activity`` table.

Policy:
  ``record`` never raises.  Storage failures (and timeouts) are logged
  and counted, then swallowed, so an audit problem can never turn a
  successful share, revoke or view into a user-visible failure.

Security invariant:
  Plaintext tokens and credentials never reach the activity table.
  Metadata is sanitized recursively before the write.

This module provides:
  1. ``ActivityRecorder``: the recorder.
  2. ``sanitize_metadata``: recursive sensitive-key redaction.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from ..observability.logging import get_logger
from ..observability.metrics import BEST_EFFORT_FAILURES_TOTAL, SHARE_EVENTS_TOTAL
from .access import DEFAULT_TIMEOUT_SECONDS, verify_owner
from .deadline import bounded
from .model import ActivityAction, ShareActivity, ShareType, new_id, utcnow

if TYPE_CHECKING:
    from ..protocols import ActivityRepository, ContentStore

logger = get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────────────

DEFAULT_ACTIVITY_LIMIT = 50
MAX_ACTIVITY_LIMIT = 200
MAX_USER_AGENT_LENGTH = 512

_SENSITIVE_KEYS = frozenset({
    'authorization',
    'token',
    'share_token',
    'sharetoken',
    'token_hash',
    'password',
    'secret',
    'apikey',
    'api_key',
})


def sanitize_metadata(payload: dict[str, Any]) -> dict[str, Any]:
    """Copy ``payload`` with sensitive keys redacted at any depth."""
    sanitized: dict[str, Any] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            sanitized[key] = '[REDACTED]'
        elif isinstance(value, dict):
            sanitized[key] = sanitize_metadata(value)
        else:
            sanitized[key] = value
    return sanitized


class ActivityRecorder:
    """Append-only, never-throwing activity writer."""

    def __init__(
        self,
        repo: ActivityRepository,
        content: ContentStore | None = None,
        *,
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._repo = repo
        self._content = content
        self._timeout = timeout

    async def record(
        self,
        workspace_id: str,
        user_id: str | None,
        share_type: ShareType,
        action: ActivityAction,
        metadata: dict[str, Any] | None = None,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ShareActivity | None:
        """Write one activity record; returns it, or None if the write failed."""
        SHARE_EVENTS_TOTAL.labels(action=action.value).inc()
        record = ShareActivity(
            id=new_id('act'),
            workspace_id=workspace_id,
            user_id=user_id,
            share_type=share_type,
            action=action,
            created_at=utcnow(),
            ip_address=ip_address,
            user_agent=user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
            metadata=sanitize_metadata(metadata or {}),
        )
        try:
            await bounded(
                self._repo.append(record),
                self._timeout,
                operation='activity.append',
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            BEST_EFFORT_FAILURES_TOTAL.labels(operation='activity_record').inc()
            logger.exception(
                'activity_write_failed',
                workspace_id=workspace_id,
                action=action.value,
                share_type=share_type.value,
            )
            return None
        return record

    async def list_activity(
        self,
        workspace_id: str,
        owner_id: str,
        *,
        limit: int = DEFAULT_ACTIVITY_LIMIT,
        timeout: float | None = None,
    ) -> list[ShareActivity]:
        """Newest-first activity for a workspace, owner only.

        Unlike ``record`` this propagates store errors.
        """
        if self._content is None:
            raise RuntimeError('ActivityRecorder was built without a content store')
        content = self._content
        limit = max(1, min(int(limit), MAX_ACTIVITY_LIMIT))

        async def _run() -> list[ShareActivity]:
            await verify_owner(content, workspace_id, owner_id)
            return await self._repo.list_for_workspace(workspace_id, limit=limit)

        return await bounded(
            _run(),
            self._timeout if timeout is None else timeout,
            operation='activity.list',
        )
