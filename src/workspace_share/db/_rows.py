"""Row <-> domain object conversion shared by the PostgREST repositories."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..sharing.model import (
    ActivityAction,
    Share,
    ShareActivity,
    ShareLink,
    ShareType,
    parse_timestamp,
)


def ts(value: datetime | None) -> str | None:
    """Render an aware datetime as a PostgREST-safe UTC literal."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def share_from_row(row: dict[str, Any], username: str | None = None) -> Share:
    return Share(
        id=row["id"],
        workspace_id=row["workspace_id"],
        owner_id=row["owner_id"],
        shared_with_user_id=row["shared_with_user_id"],
        permission_level=row.get("permission_level") or "view",
        created_at=parse_timestamp(row["created_at"]),
        expires_at=parse_timestamp(row.get("expires_at")),
        last_accessed_at=parse_timestamp(row.get("last_accessed_at")),
        is_active=bool(row.get("is_active", True)),
        shared_with_username=username,
    )


def share_to_row(share: Share) -> dict[str, Any]:
    return {
        "id": share.id,
        "workspace_id": share.workspace_id,
        "owner_id": share.owner_id,
        "shared_with_user_id": share.shared_with_user_id,
        "permission_level": share.permission_level,
        "created_at": ts(share.created_at),
        "expires_at": ts(share.expires_at),
        "is_active": share.is_active,
    }


def link_from_row(row: dict[str, Any], owner_username: str | None = None) -> ShareLink:
    return ShareLink(
        id=row["id"],
        workspace_id=row["workspace_id"],
        owner_id=row["owner_id"],
        token_hash=row["token_hash"],
        requires_login=bool(row.get("requires_login", True)),
        created_at=parse_timestamp(row["created_at"]),
        expires_at=parse_timestamp(row.get("expires_at")),
        access_count=int(row.get("access_count") or 0),
        is_active=bool(row.get("is_active", True)),
        owner_username=owner_username,
    )


def link_to_row(link: ShareLink) -> dict[str, Any]:
    # The plaintext token is deliberately absent.
    return {
        "id": link.id,
        "workspace_id": link.workspace_id,
        "owner_id": link.owner_id,
        "token_hash": link.token_hash,
        "requires_login": link.requires_login,
        "created_at": ts(link.created_at),
        "expires_at": ts(link.expires_at),
        "access_count": link.access_count,
        "is_active": link.is_active,
    }


def activity_from_row(row: dict[str, Any]) -> ShareActivity:
    return ShareActivity(
        id=row["id"],
        workspace_id=row["workspace_id"],
        user_id=row.get("user_id"),
        share_type=ShareType(row["share_type"]),
        action=ActivityAction(row["action"]),
        created_at=parse_timestamp(row["created_at"]),
        ip_address=row.get("ip_address"),
        user_agent=row.get("user_agent"),
        metadata=row.get("metadata") or {},
    )


def activity_to_row(record: ShareActivity) -> dict[str, Any]:
    return {
        "id": record.id,
        "workspace_id": record.workspace_id,
        "user_id": record.user_id,
        "share_type": record.share_type.value,
        "action": record.action.value,
        "created_at": ts(record.created_at),
        "ip_address": record.ip_address,
        "user_agent": record.user_agent,
        "metadata": record.metadata,
    }
