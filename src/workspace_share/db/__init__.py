"""PostgREST store adapters for the share engine.

Repositories live in their own modules (``db.share_repo``, ...); only the
dependency-free client and error types are re-exported here so the engine
can import ``db.errors`` without pulling in the adapters.
"""

from .errors import (
    StoreAuthError,
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
)
from .store_client import StoreClient, StoreFilter

__all__ = [
    "StoreAuthError",
    "StoreClient",
    "StoreConflictError",
    "StoreError",
    "StoreFilter",
    "StoreNotFoundError",
]
