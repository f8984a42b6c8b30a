"""Token-based share links.

Implements the link-share lifecycle:

  create_link      owner issues a link (token returned exactly once)
  validate_link    token → active, unexpired link (lazy expiration)
  access_via_link  token (+ optional principal) → read-only workspace view
  revoke_link      owner deactivates a link
  list_links       owner lists links (tokens never included)

Token handling:
  Tokens are 256-bit random values rendered as 64 hex chars.  Only the
  SHA-256 hash is stored; validation hashes the presented token and looks
  the hash up, so neither storage nor query timing can reveal anything
  about valid token prefixes.  Tokens are redacted to an 8-char prefix in
  every log line.

Best-effort writes:
  The lazy deactivation of an expired link and the access-count increment
  never fail the request that triggered them.  The view decision is made
  before either write runs.
"""

from __future__ import annotations

import math
from datetime import timedelta
from typing import TYPE_CHECKING

from ..db.errors import StoreConflictError
from ..errors import (
    InvalidExpiryError,
    LoginRequiredError,
    ShareInternalError,
    ShareLinkNotFoundError,
    WorkspaceNotFoundError,
)
from ..observability.logging import get_logger, redact_token
from .access import DEFAULT_TIMEOUT_SECONDS, best_effort, verify_owner
from .deadline import bounded
from .model import (
    ActivityAction,
    ShareLink,
    ShareType,
    WorkspaceView,
    generate_share_token,
    hash_token,
    new_id,
    utcnow,
)

if TYPE_CHECKING:
    from ..protocols import ContentStore, ShareLinkRepository
    from .activity import ActivityRecorder

logger = get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────────────

MAX_EXPIRES_IN_HOURS = 24 * 365
MAX_TOKEN_LENGTH = 256
TOKEN_ATTEMPTS = 3


def validate_expires_in_hours(expires_in_hours: float | None) -> None:
    """Reject non-positive, non-finite or over-long link lifetimes."""
    if expires_in_hours is None:
        return
    if isinstance(expires_in_hours, bool) or not isinstance(expires_in_hours, (int, float)):
        raise InvalidExpiryError('expiresIn must be a number of hours')
    if not math.isfinite(expires_in_hours) or expires_in_hours <= 0:
        raise InvalidExpiryError('expiresIn must be a positive number of hours')
    if expires_in_hours > MAX_EXPIRES_IN_HOURS:
        raise InvalidExpiryError(f'expiresIn must not exceed {MAX_EXPIRES_IN_HOURS} hours')


class LinkShareManager:
    """Issues, validates, revokes and lists share links."""

    def __init__(
        self,
        content: ContentStore,
        links: ShareLinkRepository,
        activity: ActivityRecorder,
        *,
        default_timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._content = content
        self._links = links
        self._activity = activity
        self._default_timeout = default_timeout

    def _timeout(self, timeout: float | None) -> float | None:
        return self._default_timeout if timeout is None else timeout

    # ── Create ────────────────────────────────────────────────────────

    async def create_link(
        self,
        workspace_id: str,
        owner_id: str,
        *,
        requires_login: bool = True,
        expires_in_hours: float | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
    ) -> ShareLink:
        """Issue a new link; the returned object carries the plaintext token.

        Raises:
            InvalidExpiryError: ``expires_in_hours`` is not a positive
                number of hours within the allowed maximum.
            NotOwnerError: ``owner_id`` does not own the workspace.
        """
        validate_expires_in_hours(expires_in_hours)

        link = await bounded(
            self._create(workspace_id, owner_id, requires_login, expires_in_hours),
            self._timeout(timeout),
            operation='links.create',
        )
        logger.info(
            'link_created',
            workspace_id=workspace_id,
            link_id=link.id,
            token_prefix=redact_token(link.token),
            requires_login=link.requires_login,
            expires_at=link.expires_at.isoformat() if link.expires_at else None,
        )
        await self._activity.record(
            workspace_id,
            owner_id,
            ShareType.LINK,
            ActivityAction.LINK_CREATED,
            {
                'linkId': link.id,
                'requiresLogin': link.requires_login,
                'expiresAt': link.expires_at.isoformat() if link.expires_at else None,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return link

    async def _create(
        self,
        workspace_id: str,
        owner_id: str,
        requires_login: bool,
        expires_in_hours: float | None,
    ) -> ShareLink:
        await verify_owner(self._content, workspace_id, owner_id)

        now = utcnow()
        expires_at = now + timedelta(hours=expires_in_hours) if expires_in_hours else None

        for _ in range(TOKEN_ATTEMPTS):
            token = generate_share_token()
            token_hash = hash_token(token)
            if await self._links.token_hash_exists(token_hash):
                continue
            link = ShareLink(
                id=new_id('link'),
                workspace_id=workspace_id,
                owner_id=owner_id,
                token_hash=token_hash,
                requires_login=requires_login,
                created_at=now,
                expires_at=expires_at,
                access_count=0,
                is_active=True,
            )
            try:
                created = await self._links.insert(link)
            except StoreConflictError:
                continue
            created.token = token
            return created

        raise ShareInternalError('Could not allocate a unique share token')

    # ── Validate / access ─────────────────────────────────────────────

    async def validate_link(
        self,
        token: str,
        *,
        timeout: float | None = None,
    ) -> ShareLink | None:
        """Return the active, unexpired link for ``token``, or None.

        An expired link is deactivated as a side effect; later calls then
        miss it entirely.
        """
        if not token or len(token) > MAX_TOKEN_LENGTH:
            return None

        timeout = self._timeout(timeout)
        link = await bounded(
            self._links.get_active_by_token_hash(hash_token(token)),
            timeout,
            operation='links.validate',
        )
        if link is None:
            return None

        if link.is_expired(utcnow()):
            logger.info(
                'link_expired',
                workspace_id=link.workspace_id,
                link_id=link.id,
                token_prefix=redact_token(token),
            )
            await best_effort(
                self._links.deactivate(link.id),
                timeout,
                operation='link_lazy_expire',
                link_id=link.id,
            )
            return None
        return link

    async def access_via_link(
        self,
        token: str,
        user_id: str | None = None,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
    ) -> WorkspaceView:
        """Resolve a token to a read-only workspace view.

        Raises:
            ShareLinkNotFoundError: Token unknown, inactive or expired.
            LoginRequiredError: Link is login-gated and no principal given.
            WorkspaceNotFoundError: Workspace was deleted after link creation.
        """
        timeout = self._timeout(timeout)
        link = await self.validate_link(token, timeout=timeout)
        if link is None:
            raise ShareLinkNotFoundError()

        if link.requires_login and not user_id:
            raise LoginRequiredError()

        workspace = await bounded(
            self._content.get_workspace(link.workspace_id),
            timeout,
            operation='links.fetch_workspace',
        )
        if workspace is None:
            raise WorkspaceNotFoundError()

        await self._activity.record(
            link.workspace_id,
            user_id,
            ShareType.LINK,
            ActivityAction.VIEWED,
            {'linkId': link.id},
            ip_address=ip_address,
            user_agent=user_agent,
        )

        access_count = link.access_count

        async def _increment() -> None:
            nonlocal access_count
            access_count = await self._links.increment_access(link.id)

        await best_effort(
            _increment(),
            timeout,
            operation='link_access_count',
            link_id=link.id,
        )

        return WorkspaceView(
            workspace=workspace,
            is_read_only=True,
            share_type='link',
            owner_username=link.owner_username,
            access_count=access_count,
        )

    # ── Revoke / list ─────────────────────────────────────────────────

    async def revoke_link(
        self,
        workspace_id: str,
        owner_id: str,
        link_id: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
    ) -> bool:
        """Deactivate ``link_id``; False when it is unknown or already inactive."""

        async def _run() -> bool:
            await verify_owner(self._content, workspace_id, owner_id)
            link = await self._links.get(link_id)
            if link is None or link.workspace_id != workspace_id or not link.is_active:
                return False
            return await self._links.deactivate(link_id)

        revoked = await bounded(_run(), self._timeout(timeout), operation='links.revoke')
        if not revoked:
            return False

        logger.info('link_revoked', workspace_id=workspace_id, link_id=link_id)
        await self._activity.record(
            workspace_id,
            owner_id,
            ShareType.LINK,
            ActivityAction.LINK_REVOKED,
            {'linkId': link_id},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return True

    async def list_links(
        self,
        workspace_id: str,
        owner_id: str,
        *,
        include_inactive: bool = False,
        timeout: float | None = None,
    ) -> list[ShareLink]:
        """Links on a workspace, newest first; tokens are never included."""

        async def _run() -> list[ShareLink]:
            await verify_owner(self._content, workspace_id, owner_id)
            return await self._links.list_for_workspace(
                workspace_id, include_inactive=include_inactive,
            )

        return await bounded(_run(), self._timeout(timeout), operation='links.list')
