"""PostgREST-backed ContentStore.

Workspaces are soft-deleted through the nullable ``deleted_at`` column;
every read here filters ``deleted_at IS NULL``.
"""

from __future__ import annotations

from typing import Any

from .store_client import StoreClient


def _workspace_from_row(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "ownerId": row["owner_id"],
        "name": row["name"],
        "data": row.get("data") or {},
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


class StoreContentStore:
    """ContentStore backed by the ``workspaces`` table."""

    TABLE = "workspaces"

    def __init__(self, client: StoreClient) -> None:
        self._client = client

    async def get_workspace(self, workspace_id: str) -> dict[str, Any] | None:
        row = await self._client.select_one(
            self.TABLE,
            filters={"id": workspace_id, "deleted_at": ("is", None)},
        )
        return _workspace_from_row(row) if row else None

    async def get_owner_user_id(self, workspace_id: str) -> str | None:
        row = await self._client.select_one(
            self.TABLE,
            filters={"id": workspace_id, "deleted_at": ("is", None)},
            columns="owner_id",
        )
        return row["owner_id"] if row else None

    async def list_workspace_names(self, owner_id: str) -> list[str]:
        rows = await self._client.select(
            self.TABLE,
            filters={"owner_id": owner_id, "deleted_at": ("is", None)},
            columns="name",
            order="name.asc",
        )
        return [row["name"] for row in rows]

    async def get_many(self, workspace_ids: list[str]) -> dict[str, dict[str, Any]]:
        """Live workspaces by id (deleted or missing ids omitted)."""
        ids = sorted(set(workspace_ids))
        if not ids:
            return {}
        rows = await self._client.select(
            self.TABLE,
            filters={"id": ("in", ids), "deleted_at": ("is", None)},
            columns="id,owner_id,name",
        )
        return {row["id"]: row for row in rows}
