"""Deadline and store-error boundary for engine operations.

Every engine operation runs under a caller-supplied deadline. On expiry the
operation fails closed: resolution surfaces ``StoreTimeoutError`` (the
authorization dependency turns that into a denial), mutations surface it as
an internal error. Nothing ever falls back to granting access.

Store adapter errors that escape an operation are translated here into
``ShareInternalError``; ``ShareError`` subclasses raised inside the
operation (validation, not-found, conflicts already translated) pass
through untouched.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from ..db.errors import StoreError
from ..errors import ShareInternalError, StoreTimeoutError

T = TypeVar('T')


async def bounded(
    awaitable: Awaitable[T],
    timeout: float | None,
    *,
    operation: str,
) -> T:
    """Await ``awaitable`` for at most ``timeout`` seconds.

    ``timeout=None`` waits indefinitely.

    Raises:
        StoreTimeoutError: The deadline passed first.
        ShareInternalError: The store reported a failure.
    """
    try:
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise StoreTimeoutError(operation, timeout or 0.0) from exc
    except StoreError as exc:
        raise ShareInternalError(f'{operation} failed: store error {exc.status_code}') from exc
