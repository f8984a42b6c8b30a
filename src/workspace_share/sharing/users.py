"""Recipient discovery for the share dialog."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..errors import InvalidSearchError
from .access import DEFAULT_TIMEOUT_SECONDS
from .deadline import bounded
from .model import UserRecord

if TYPE_CHECKING:
    from ..protocols import UserDirectory

MIN_QUERY_LENGTH = 2
DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 50

_LIKE_ESCAPES = str.maketrans({'\\': '\\\\', '%': '\\%', '_': '\\_'})


def escape_like(query: str) -> str:
    """Escape LIKE wildcards so they match literally."""
    return query.translate(_LIKE_ESCAPES)


class UserSearch:
    def __init__(
        self,
        users: UserDirectory,
        *,
        default_timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._users = users
        self._default_timeout = default_timeout

    async def search_users(
        self,
        query: str,
        requester_id: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
        *,
        timeout: float | None = None,
    ) -> list[UserRecord]:
        """Active users whose username contains ``query``, excluding the requester.

        The directory receives the trimmed query verbatim; adapters backed
        by SQL ``LIKE`` must pass it through ``escape_like``.
        """
        query = (query or '').strip()
        if len(query) < MIN_QUERY_LENGTH:
            raise InvalidSearchError()
        limit = max(1, min(int(limit), MAX_SEARCH_LIMIT))
        return await bounded(
            self._users.search_users(query, requester_id, limit),
            self._default_timeout if timeout is None else timeout,
            operation='users.search',
        )
