"""PostgREST-backed ActivityRepository (``share_activity``, append-only)."""

from __future__ import annotations

from ..sharing.model import ShareActivity
from ._rows import activity_from_row, activity_to_row
from .store_client import StoreClient


class StoreActivityRepository:
    """ActivityRepository backed by ``share_activity`` via PostgREST."""

    TABLE = "share_activity"

    def __init__(self, client: StoreClient) -> None:
        self._client = client

    async def append(self, record: ShareActivity) -> None:
        await self._client.insert(self.TABLE, activity_to_row(record))

    async def list_for_workspace(
        self, workspace_id: str, limit: int = 50,
    ) -> list[ShareActivity]:
        rows = await self._client.select(
            self.TABLE,
            filters={"workspace_id": workspace_id},
            order="created_at.desc",
            limit=limit,
        )
        return [activity_from_row(r) for r in rows]
