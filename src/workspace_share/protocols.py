"""Store and collaborator protocol interfaces for dependency injection.

These protocols define the narrow contracts the share engine consumes.
Concrete implementations (in-memory for local dev and tests, PostgREST for
deployed environments) must satisfy them; the app factory accepts any
implementation that does.

Collaborators owned elsewhere (workspace content store, user directory) are
specified only at their interface boundary.

Implementations must raise ``workspace_share.db.errors.StoreError``
subclasses on storage failure, and ``StoreConflictError`` specifically when
an insert violates a uniqueness constraint.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from .sharing.model import Share, ShareActivity, ShareLink, SharedWorkspace, UserRecord


@runtime_checkable
class ContentStore(Protocol):
    """Workspace persistence (soft-delete aware)."""

    async def get_workspace(self, workspace_id: str) -> dict[str, Any] | None: ...
    async def get_owner_user_id(self, workspace_id: str) -> str | None: ...
    async def list_workspace_names(self, owner_id: str) -> list[str]: ...


@runtime_checkable
class UserDirectory(Protocol):
    """User lookup and search."""

    async def find_active_user(self, user_id: str) -> UserRecord | None: ...
    async def search_users(
        self, pattern: str, exclude_id: str, limit: int,
    ) -> list[UserRecord]: ...


@runtime_checkable
class ShareRepository(Protocol):
    """workspace_shares table.

    ``insert`` raises StoreConflictError when an active share already
    exists for ``(workspace_id, shared_with_user_id)``.
    """

    async def insert(self, share: Share) -> Share: ...
    async def get_active(self, workspace_id: str, user_id: str) -> Share | None: ...
    async def get_active_by_id(self, workspace_id: str, share_id: str) -> Share | None: ...
    async def deactivate(self, share_id: str) -> bool: ...
    async def touch(self, share_id: str, accessed_at: datetime) -> None: ...
    async def list_active_for_workspace(self, workspace_id: str) -> list[Share]: ...
    async def list_active_for_recipient(
        self, user_id: str, now: datetime,
    ) -> list[SharedWorkspace]: ...


@runtime_checkable
class ShareLinkRepository(Protocol):
    """share_links table."""

    async def insert(self, link: ShareLink) -> ShareLink: ...
    async def get(self, link_id: str) -> ShareLink | None: ...
    async def get_active_by_token_hash(self, token_hash: str) -> ShareLink | None: ...
    async def token_hash_exists(self, token_hash: str) -> bool: ...
    async def deactivate(self, link_id: str) -> bool: ...
    async def increment_access(self, link_id: str) -> int: ...
    async def list_for_workspace(
        self, workspace_id: str, *, include_inactive: bool = False,
    ) -> list[ShareLink]: ...


@runtime_checkable
class ActivityRepository(Protocol):
    """share_activity table (append-only)."""

    async def append(self, record: ShareActivity) -> None: ...
    async def list_for_workspace(
        self, workspace_id: str, limit: int = 50,
    ) -> list[ShareActivity]: ...
