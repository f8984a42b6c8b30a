"""PostgREST-backed ShareRepository (``workspace_shares``).

The table carries a partial unique index on
``(workspace_id, shared_with_user_id) WHERE is_active``; a conflicting
insert surfaces as ``StoreConflictError`` from the client.

Deactivation is a conditional update (``is_active = true`` in the filter),
so of two concurrent revokers exactly one sees a changed row.
"""

from __future__ import annotations

from datetime import datetime

from ..sharing.model import Share, SharedWorkspace, parse_timestamp
from ._rows import share_from_row, share_to_row, ts
from .store_client import StoreClient
from .user_repo import StoreUserDirectory
from .workspace_repo import StoreContentStore


class StoreShareRepository:
    """ShareRepository backed by ``workspace_shares`` via PostgREST."""

    TABLE = "workspace_shares"

    def __init__(
        self,
        client: StoreClient,
        content: StoreContentStore,
        users: StoreUserDirectory,
    ) -> None:
        self._client = client
        self._content = content
        self._users = users

    async def insert(self, share: Share) -> Share:
        rows = await self._client.insert(self.TABLE, share_to_row(share))
        return share_from_row(rows[0])

    async def get_active(self, workspace_id: str, user_id: str) -> Share | None:
        row = await self._client.select_one(
            self.TABLE,
            filters={
                "workspace_id": workspace_id,
                "shared_with_user_id": user_id,
                "is_active": ("is", True),
            },
        )
        return share_from_row(row) if row else None

    async def get_active_by_id(self, workspace_id: str, share_id: str) -> Share | None:
        row = await self._client.select_one(
            self.TABLE,
            filters={
                "id": share_id,
                "workspace_id": workspace_id,
                "is_active": ("is", True),
            },
        )
        return share_from_row(row) if row else None

    async def deactivate(self, share_id: str) -> bool:
        rows = await self._client.update(
            self.TABLE,
            filters={"id": share_id, "is_active": ("is", True)},
            data={"is_active": False},
        )
        return len(rows) > 0

    async def touch(self, share_id: str, accessed_at: datetime) -> None:
        await self._client.update(
            self.TABLE,
            filters={"id": share_id},
            data={"last_accessed_at": ts(accessed_at)},
        )

    async def list_active_for_workspace(self, workspace_id: str) -> list[Share]:
        rows = await self._client.select(
            self.TABLE,
            filters={"workspace_id": workspace_id, "is_active": ("is", True)},
            order="created_at.desc",
        )
        names = await self._users.usernames([r["shared_with_user_id"] for r in rows])
        return [
            share_from_row(r, names[r["shared_with_user_id"]])
            for r in rows
            if r["shared_with_user_id"] in names
        ]

    async def list_active_for_recipient(
        self, user_id: str, now: datetime,
    ) -> list[SharedWorkspace]:
        rows = await self._client.select(
            self.TABLE,
            filters={
                "shared_with_user_id": user_id,
                "is_active": ("is", True),
                "or": f"(expires_at.is.null,expires_at.gt.{ts(now)})",
            },
            order="last_accessed_at.desc.nullslast,created_at.desc",
        )
        workspaces = await self._content.get_many([r["workspace_id"] for r in rows])
        owners = await self._users.usernames([w["owner_id"] for w in workspaces.values()])

        result: list[SharedWorkspace] = []
        for r in rows:
            ws = workspaces.get(r["workspace_id"])
            if ws is None or ws["owner_id"] not in owners:
                continue
            result.append(SharedWorkspace(
                id=ws["id"],
                name=ws["name"],
                owner_id=ws["owner_id"],
                owner_username=owners[ws["owner_id"]],
                shared_at=parse_timestamp(r["created_at"]),
                last_accessed_at=parse_timestamp(r.get("last_accessed_at")),
                expires_at=parse_timestamp(r.get("expires_at")),
            ))
        return result
