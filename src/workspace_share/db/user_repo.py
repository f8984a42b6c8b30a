"""PostgREST-backed UserDirectory.

Reads the ``users`` table. Search runs through the
``search_share_recipients`` SQL function so that ordering (exact match,
shorter username, alphabetical) and literal matching of LIKE wildcards
happen in one statement.
"""

from __future__ import annotations

from typing import Any

from ..sharing.model import UserRecord
from ..sharing.users import escape_like
from .store_client import StoreClient


def _user_from_row(row: dict[str, Any]) -> UserRecord:
    return UserRecord(
        id=row["id"],
        username=row["username"],
        is_active=bool(row.get("is_active", True)),
    )


class StoreUserDirectory:
    """UserDirectory backed by the ``users`` table."""

    TABLE = "users"
    SEARCH_FUNCTION = "search_share_recipients"

    def __init__(self, client: StoreClient) -> None:
        self._client = client

    async def find_active_user(self, user_id: str) -> UserRecord | None:
        row = await self._client.select_one(
            self.TABLE,
            filters={"id": user_id, "is_active": ("is", True)},
            columns="id,username,is_active",
        )
        return _user_from_row(row) if row else None

    async def usernames(self, user_ids: list[str]) -> dict[str, str]:
        """Map of id → username for the given ids (missing ids omitted)."""
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        rows = await self._client.select(
            self.TABLE,
            filters={"id": ("in", ids)},
            columns="id,username",
        )
        return {row["id"]: row["username"] for row in rows}

    async def search_users(
        self, pattern: str, exclude_id: str, limit: int,
    ) -> list[UserRecord]:
        rows = await self._client.rpc(
            self.SEARCH_FUNCTION,
            {
                "p_query": pattern,
                "p_pattern": escape_like(pattern),
                "p_exclude_id": exclude_id,
                "p_limit": int(limit),
            },
        )
        return [_user_from_row(row) for row in rows or []]
