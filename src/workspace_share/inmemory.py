"""In-memory store implementations for local development and tests.

Used when ENVIRONMENT=local. They satisfy the protocol interfaces but keep
everything in dicts (no persistence across restarts).

Each operation yields to the event loop once before touching state, the way
a real store round-trip would, so check-then-act sequences in the engine
interleave under ``asyncio.gather`` exactly as they can in production. The
partial unique index on active shares is emulated inside ``insert``, which
runs without yielding and is therefore atomic.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Any

from .db.errors import StoreConflictError
from .sharing.model import (
    Share,
    ShareActivity,
    ShareLink,
    SharedWorkspace,
    UserRecord,
    utcnow,
)


async def _io() -> None:
    await asyncio.sleep(0)


def _contains(pattern: str, value: str) -> bool:
    return pattern.lower() in value.lower()


class InMemoryContentStore:
    def __init__(self) -> None:
        self._workspaces: dict[str, dict[str, Any]] = {}

    def add_workspace(
        self,
        workspace_id: str,
        owner_id: str,
        name: str = 'Untitled',
        **content: Any,
    ) -> dict[str, Any]:
        now = utcnow().isoformat()
        workspace = {
            'id': workspace_id,
            'ownerId': owner_id,
            'name': name,
            'createdAt': now,
            'updatedAt': now,
            'deletedAt': None,
            **content,
        }
        self._workspaces[workspace_id] = workspace
        return workspace

    def soft_delete(self, workspace_id: str) -> None:
        self._workspaces[workspace_id]['deletedAt'] = utcnow().isoformat()

    def _live(self, workspace_id: str) -> dict[str, Any] | None:
        ws = self._workspaces.get(workspace_id)
        if ws is None or ws.get('deletedAt'):
            return None
        return ws

    async def get_workspace(self, workspace_id: str) -> dict[str, Any] | None:
        await _io()
        ws = self._live(workspace_id)
        return dict(ws) if ws is not None else None

    async def get_owner_user_id(self, workspace_id: str) -> str | None:
        await _io()
        ws = self._live(workspace_id)
        return ws['ownerId'] if ws is not None else None

    async def list_workspace_names(self, owner_id: str) -> list[str]:
        await _io()
        return sorted(
            ws['name'] for ws in self._workspaces.values()
            if ws['ownerId'] == owner_id and not ws.get('deletedAt')
        )


class InMemoryUserDirectory:
    def __init__(self) -> None:
        self._users: dict[str, UserRecord] = {}

    def add_user(self, user_id: str, username: str, *, is_active: bool = True) -> UserRecord:
        user = UserRecord(id=user_id, username=username, is_active=is_active)
        self._users[user_id] = user
        return user

    def username(self, user_id: str) -> str | None:
        user = self._users.get(user_id)
        return user.username if user else None

    async def find_active_user(self, user_id: str) -> UserRecord | None:
        await _io()
        user = self._users.get(user_id)
        if user is None or not user.is_active:
            return None
        return user

    async def search_users(
        self, pattern: str, exclude_id: str, limit: int,
    ) -> list[UserRecord]:
        await _io()
        matches = [
            u for u in self._users.values()
            if u.is_active
            and u.id != exclude_id
            and _contains(pattern, u.username)
        ]
        matches.sort(key=lambda u: (u.username.lower() != pattern.lower(), len(u.username), u.username))
        return matches[:limit]


class InMemoryShareRepository:
    def __init__(
        self,
        content: InMemoryContentStore,
        users: InMemoryUserDirectory,
    ) -> None:
        self._content = content
        self._users = users
        self._shares: dict[str, Share] = {}

    async def insert(self, share: Share) -> Share:
        await _io()
        # Partial unique index: (workspace_id, shared_with_user_id) WHERE is_active.
        for existing in self._shares.values():
            if (
                existing.is_active
                and existing.workspace_id == share.workspace_id
                and existing.shared_with_user_id == share.shared_with_user_id
            ):
                raise StoreConflictError(
                    status_code=409,
                    message='duplicate key value violates unique constraint',
                    code='23505',
                )
        stored = replace(share)
        self._shares[stored.id] = stored
        return replace(stored)

    async def get_active(self, workspace_id: str, user_id: str) -> Share | None:
        await _io()
        for share in self._shares.values():
            if (
                share.is_active
                and share.workspace_id == workspace_id
                and share.shared_with_user_id == user_id
            ):
                return replace(share)
        return None

    async def get_active_by_id(self, workspace_id: str, share_id: str) -> Share | None:
        await _io()
        share = self._shares.get(share_id)
        if share is None or not share.is_active or share.workspace_id != workspace_id:
            return None
        return replace(share)

    async def deactivate(self, share_id: str) -> bool:
        await _io()
        share = self._shares.get(share_id)
        if share is None or not share.is_active:
            return False
        share.is_active = False
        return True

    async def touch(self, share_id: str, accessed_at: datetime) -> None:
        await _io()
        share = self._shares.get(share_id)
        if share is not None:
            share.last_accessed_at = accessed_at

    async def list_active_for_workspace(self, workspace_id: str) -> list[Share]:
        await _io()
        result = [
            replace(s, shared_with_username=self._users.username(s.shared_with_user_id))
            for s in self._shares.values()
            if s.workspace_id == workspace_id
            and s.is_active
            and self._users.username(s.shared_with_user_id) is not None
        ]
        return sorted(result, key=lambda s: s.created_at, reverse=True)

    async def list_active_for_recipient(
        self, user_id: str, now: datetime,
    ) -> list[SharedWorkspace]:
        await _io()
        result: list[tuple[Share, SharedWorkspace]] = []
        for s in self._shares.values():
            if s.shared_with_user_id != user_id or not s.is_active:
                continue
            if s.expires_at is not None and s.expires_at <= now:
                continue
            ws = self._content._live(s.workspace_id)
            owner_name = self._users.username(ws['ownerId']) if ws else None
            if ws is None or owner_name is None:
                continue
            result.append((s, SharedWorkspace(
                id=ws['id'],
                name=ws['name'],
                owner_id=ws['ownerId'],
                owner_username=owner_name,
                shared_at=s.created_at,
                last_accessed_at=s.last_accessed_at,
                expires_at=s.expires_at,
            )))
        # last_accessed DESC (never-accessed last), then created_at DESC.
        result.sort(key=lambda pair: pair[0].created_at, reverse=True)
        result.sort(
            key=lambda pair: (
                pair[0].last_accessed_at is not None,
                pair[0].last_accessed_at or pair[0].created_at,
            ),
            reverse=True,
        )
        return [summary for _, summary in result]

    @property
    def rows(self) -> list[Share]:
        """All rows including inactive history (for test assertions)."""
        return [replace(s) for s in self._shares.values()]


class InMemoryShareLinkRepository:
    def __init__(self, users: InMemoryUserDirectory) -> None:
        self._users = users
        self._links: dict[str, ShareLink] = {}

    def _joined(self, link: ShareLink) -> ShareLink:
        return replace(link, token=None, owner_username=self._users.username(link.owner_id))

    async def insert(self, link: ShareLink) -> ShareLink:
        await _io()
        if any(l.token_hash == link.token_hash for l in self._links.values()):
            raise StoreConflictError(
                status_code=409,
                message='duplicate key value violates unique constraint',
                code='23505',
            )
        stored = replace(link, token=None)
        self._links[stored.id] = stored
        return replace(stored)

    async def get(self, link_id: str) -> ShareLink | None:
        await _io()
        link = self._links.get(link_id)
        return self._joined(link) if link else None

    async def get_active_by_token_hash(self, token_hash: str) -> ShareLink | None:
        await _io()
        for link in self._links.values():
            if link.token_hash == token_hash and link.is_active:
                if self._users.username(link.owner_id) is None:
                    return None
                return self._joined(link)
        return None

    async def token_hash_exists(self, token_hash: str) -> bool:
        await _io()
        return any(l.token_hash == token_hash for l in self._links.values())

    async def deactivate(self, link_id: str) -> bool:
        await _io()
        link = self._links.get(link_id)
        if link is None or not link.is_active:
            return False
        link.is_active = False
        return True

    async def increment_access(self, link_id: str) -> int:
        await _io()
        link = self._links[link_id]
        link.access_count += 1
        return link.access_count

    async def list_for_workspace(
        self, workspace_id: str, *, include_inactive: bool = False,
    ) -> list[ShareLink]:
        await _io()
        result = [
            self._joined(l) for l in self._links.values()
            if l.workspace_id == workspace_id and (include_inactive or l.is_active)
        ]
        return sorted(result, key=lambda l: l.created_at, reverse=True)


class InMemoryActivityRepository:
    def __init__(self) -> None:
        self._records: list[ShareActivity] = []

    async def append(self, record: ShareActivity) -> None:
        await _io()
        self._records.append(record)

    async def list_for_workspace(
        self, workspace_id: str, limit: int = 50,
    ) -> list[ShareActivity]:
        await _io()
        matching = [r for r in self._records if r.workspace_id == workspace_id]
        matching.sort(key=lambda r: r.created_at, reverse=True)
        return matching[:limit]

    @property
    def records(self) -> list[ShareActivity]:
        """All records in append order (for test assertions)."""
        return list(self._records)
