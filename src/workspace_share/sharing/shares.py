"""Direct user-to-user shares.

Implements the direct-share lifecycle:

  create_share         owner grants ``view`` to one recipient
  revoke_by_recipient  owner revokes the active share held by a user
  revoke_by_share_id   owner revokes a specific share record
  list_shares          owner lists active shares on a workspace
  list_shared_with_me  recipient lists workspaces shared with them
  view_workspace       owner or direct-share viewer opens a workspace

Invariants:
  - At most one active share per (workspace, recipient).  The engine
    checks first for a friendly error, and the store's partial unique index
    closes the check-then-insert race: a conflicting insert is translated
    into ``AlreadySharedError``, never an internal error.
  - The claimed owner is re-validated against the store on every mutation.
  - Rows are never deleted; revocation flips ``is_active``.

Activity records are written after the state change and are best-effort.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable

from ..db.errors import StoreConflictError
from ..errors import (
    AccessDeniedError,
    AlreadySharedError,
    InvalidExpiryError,
    RecipientNotFoundError,
    SelfShareError,
    WorkspaceNotFoundError,
)
from ..observability.logging import get_logger
from .access import DEFAULT_TIMEOUT_SECONDS, verify_owner
from .deadline import bounded
from .model import (
    PERMISSION_VIEW,
    AccessLevel,
    ActivityAction,
    Share,
    SharedWorkspace,
    ShareType,
    WorkspaceView,
    ensure_aware,
    new_id,
    utcnow,
)

if TYPE_CHECKING:
    from ..protocols import ContentStore, ShareRepository, UserDirectory
    from .activity import ActivityRecorder

logger = get_logger(__name__)


class ShareManager:
    """Creates, revokes and lists direct shares."""

    def __init__(
        self,
        content: ContentStore,
        users: UserDirectory,
        shares: ShareRepository,
        activity: ActivityRecorder,
        *,
        default_timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._content = content
        self._users = users
        self._shares = shares
        self._activity = activity
        self._default_timeout = default_timeout

    def _timeout(self, timeout: float | None) -> float | None:
        return self._default_timeout if timeout is None else timeout

    # ── Create ────────────────────────────────────────────────────────

    async def create_share(
        self,
        workspace_id: str,
        owner_id: str,
        target_user_id: str,
        expires_at: datetime | None = None,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
    ) -> Share:
        """Grant ``view`` on ``workspace_id`` to ``target_user_id``.

        Raises:
            NotOwnerError: ``owner_id`` does not own the workspace.
            SelfShareError: Target is the owner.
            RecipientNotFoundError: Target is missing or inactive.
            InvalidExpiryError: ``expires_at`` is not in the future.
            AlreadySharedError: An active share already exists.
        """
        share = await bounded(
            self._create(workspace_id, owner_id, target_user_id, ensure_aware(expires_at)),
            self._timeout(timeout),
            operation='shares.create',
        )
        logger.info(
            'share_granted',
            workspace_id=workspace_id,
            share_id=share.id,
            recipient_id=target_user_id,
            expires_at=share.expires_at.isoformat() if share.expires_at else None,
        )
        await self._activity.record(
            workspace_id,
            owner_id,
            ShareType.DIRECT,
            ActivityAction.SHARE_GRANTED,
            {'shareId': share.id, 'sharedWithUserId': target_user_id},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return share

    async def _create(
        self,
        workspace_id: str,
        owner_id: str,
        target_user_id: str,
        expires_at: datetime | None,
    ) -> Share:
        await verify_owner(self._content, workspace_id, owner_id)

        if target_user_id == owner_id:
            raise SelfShareError()

        recipient = await self._users.find_active_user(target_user_id)
        if recipient is None:
            raise RecipientNotFoundError()

        now = utcnow()
        if expires_at is not None and expires_at <= now:
            raise InvalidExpiryError()

        if await self._shares.get_active(workspace_id, target_user_id) is not None:
            raise AlreadySharedError()

        share = Share(
            id=new_id('share'),
            workspace_id=workspace_id,
            owner_id=owner_id,
            shared_with_user_id=target_user_id,
            permission_level=PERMISSION_VIEW,
            created_at=now,
            expires_at=expires_at,
            is_active=True,
        )
        try:
            created = await self._shares.insert(share)
        except StoreConflictError as exc:
            # A concurrent create won the race between our check and insert.
            raise AlreadySharedError() from exc
        created.shared_with_username = recipient.username
        return created

    # ── Revoke ────────────────────────────────────────────────────────

    async def revoke_by_recipient(
        self,
        workspace_id: str,
        owner_id: str,
        recipient_id: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
    ) -> bool:
        """Revoke the active share held by ``recipient_id``.

        Returns False when there is nothing active to revoke.
        """
        return await self._revoke(
            workspace_id,
            owner_id,
            lambda: self._shares.get_active(workspace_id, recipient_id),
            ip_address=ip_address,
            user_agent=user_agent,
            timeout=timeout,
        )

    async def revoke_by_share_id(
        self,
        workspace_id: str,
        owner_id: str,
        share_id: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
    ) -> bool:
        """Revoke the share record ``share_id`` if it is still active."""
        return await self._revoke(
            workspace_id,
            owner_id,
            lambda: self._shares.get_active_by_id(workspace_id, share_id),
            ip_address=ip_address,
            user_agent=user_agent,
            timeout=timeout,
        )

    async def _revoke(
        self,
        workspace_id: str,
        owner_id: str,
        lookup: Callable[[], Awaitable[Share | None]],
        *,
        ip_address: str | None,
        user_agent: str | None,
        timeout: float | None,
    ) -> bool:
        async def _run() -> Share | None:
            await verify_owner(self._content, workspace_id, owner_id)
            share = await lookup()
            if share is None:
                return None
            # A concurrent revoke may flip the row first; only one caller wins.
            if not await self._shares.deactivate(share.id):
                return None
            return share

        share = await bounded(_run(), self._timeout(timeout), operation='shares.revoke')
        if share is None:
            return False

        logger.info(
            'share_revoked',
            workspace_id=workspace_id,
            share_id=share.id,
            recipient_id=share.shared_with_user_id,
        )
        await self._activity.record(
            workspace_id,
            owner_id,
            ShareType.DIRECT,
            ActivityAction.SHARE_REVOKED,
            {'shareId': share.id, 'sharedWithUserId': share.shared_with_user_id},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return True

    # ── List ──────────────────────────────────────────────────────────

    async def list_shares(
        self,
        workspace_id: str,
        owner_id: str,
        *,
        timeout: float | None = None,
    ) -> list[Share]:
        """Active shares on a workspace, newest first, with recipient usernames."""

        async def _run() -> list[Share]:
            await verify_owner(self._content, workspace_id, owner_id)
            return await self._shares.list_active_for_workspace(workspace_id)

        return await bounded(_run(), self._timeout(timeout), operation='shares.list')

    async def list_shared_with_me(
        self,
        user_id: str,
        *,
        timeout: float | None = None,
    ) -> list[SharedWorkspace]:
        """Live workspaces where ``user_id`` holds an active, unexpired share.

        Ordered most-recently-used first, ties broken by newest grant.
        """
        return await bounded(
            self._shares.list_active_for_recipient(user_id, utcnow()),
            self._timeout(timeout),
            operation='shares.list_shared_with_me',
        )

    # ── View ──────────────────────────────────────────────────────────

    async def view_workspace(
        self,
        workspace_id: str,
        viewer_id: str,
        level: AccessLevel,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
    ) -> WorkspaceView:
        """Workspace content for a caller already resolved to ``level``.

        Owners get an editable view; direct-share viewers get a read-only
        view with share provenance and a ``viewed`` activity record.
        """
        if not level.granted:
            raise AccessDeniedError()

        async def _run() -> tuple[dict, str | None]:
            workspace = await self._content.get_workspace(workspace_id)
            if workspace is None:
                raise WorkspaceNotFoundError()
            if level is AccessLevel.OWNER:
                return workspace, None
            owner_id = await self._content.get_owner_user_id(workspace_id)
            owner = await self._users.find_active_user(owner_id) if owner_id else None
            return workspace, owner.username if owner else None

        workspace, owner_username = await bounded(
            _run(), self._timeout(timeout), operation='shares.view',
        )
        if level is AccessLevel.OWNER:
            return WorkspaceView(workspace=workspace, is_read_only=False)

        await self._activity.record(
            workspace_id,
            viewer_id,
            ShareType.DIRECT,
            ActivityAction.VIEWED,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return WorkspaceView(
            workspace=workspace,
            is_read_only=True,
            share_type='direct',
            owner_username=owner_username,
        )
