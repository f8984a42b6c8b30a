"""Persistent store error hierarchy.

Kept small and dependency-free so repositories and the share engine can
catch them without touching httpx.Response objects (or secrets). The
in-memory store raises the same classes, so engine code never needs to
know which backend it runs against.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False, slots=True)
class StoreError(Exception):
    """Base error for persistent store operations."""

    status_code: int
    message: str
    code: str | None = None
    details: str | None = None
    hint: str | None = None

    def __str__(self) -> str:
        bits: list[str] = [f"StoreError(status={self.status_code})", self.message]
        if self.code:
            bits.append(f"code={self.code}")
        if self.details:
            bits.append(f"details={self.details}")
        return " ".join(bits)


class StoreAuthError(StoreError):
    """401/403 from the store (bad service key, RLS denial)."""


class StoreNotFoundError(StoreError):
    """404 from the store (missing table, view or function)."""


class StoreConflictError(StoreError):
    """409 conflicts: unique or partial-unique index violations."""
