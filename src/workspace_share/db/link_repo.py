"""PostgREST-backed ShareLinkRepository (``share_links``).

Only ``token_hash`` is ever written or queried; the plaintext token never
reaches the store. Access counting goes through the
``increment_share_link_access`` SQL function, a single
``UPDATE ... RETURNING`` statement, so concurrent views never lose counts.
"""

from __future__ import annotations

from ..sharing.model import ShareLink
from ._rows import link_from_row, link_to_row
from .errors import StoreError
from .store_client import StoreClient
from .user_repo import StoreUserDirectory


class StoreShareLinkRepository:
    """ShareLinkRepository backed by ``share_links`` via PostgREST."""

    TABLE = "share_links"
    INCREMENT_FUNCTION = "increment_share_link_access"

    def __init__(self, client: StoreClient, users: StoreUserDirectory) -> None:
        self._client = client
        self._users = users

    async def _owner_name(self, owner_id: str) -> str | None:
        names = await self._users.usernames([owner_id])
        return names.get(owner_id)

    async def insert(self, link: ShareLink) -> ShareLink:
        rows = await self._client.insert(self.TABLE, link_to_row(link))
        return link_from_row(rows[0])

    async def get(self, link_id: str) -> ShareLink | None:
        row = await self._client.select_one(self.TABLE, filters={"id": link_id})
        if row is None:
            return None
        return link_from_row(row, await self._owner_name(row["owner_id"]))

    async def get_active_by_token_hash(self, token_hash: str) -> ShareLink | None:
        row = await self._client.select_one(
            self.TABLE,
            filters={"token_hash": token_hash, "is_active": ("is", True)},
        )
        if row is None:
            return None
        owner = await self._owner_name(row["owner_id"])
        if owner is None:
            return None
        return link_from_row(row, owner)

    async def token_hash_exists(self, token_hash: str) -> bool:
        row = await self._client.select_one(
            self.TABLE,
            filters={"token_hash": token_hash},
            columns="id",
        )
        return row is not None

    async def deactivate(self, link_id: str) -> bool:
        rows = await self._client.update(
            self.TABLE,
            filters={"id": link_id, "is_active": ("is", True)},
            data={"is_active": False},
        )
        return len(rows) > 0

    async def increment_access(self, link_id: str) -> int:
        result = await self._client.rpc(self.INCREMENT_FUNCTION, {"p_link_id": link_id})
        if isinstance(result, list):
            result = result[0] if result else None
        if result is None:
            raise StoreError(status_code=404, message=f"share link {link_id} not found")
        return int(result)

    async def list_for_workspace(
        self, workspace_id: str, *, include_inactive: bool = False,
    ) -> list[ShareLink]:
        filters: dict = {"workspace_id": workspace_id}
        if not include_inactive:
            filters["is_active"] = ("is", True)
        rows = await self._client.select(self.TABLE, filters=filters, order="created_at.desc")
        names = await self._users.usernames([r["owner_id"] for r in rows])
        return [link_from_row(r, names.get(r["owner_id"])) for r in rows]
