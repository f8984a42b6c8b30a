"""Share domain model: direct shares, share links, activity records.

Implements the data model for workspace sharing:

  - ``Share``: "workspace X is viewable by user Y" (direct grant).
  - ``ShareLink``: "anyone holding token T may view workspace X".
  - ``ShareActivity``: append-only audit record.

Security invariant:
  The plaintext link token is generated once and returned to the creator.
  Only the SHA-256 hash is persisted.  Validation hashes the presented token
  and looks the hash up, so an exact-match query can never reveal anything
  about valid token prefixes.

Lifecycle invariant:
  Rows are never physically deleted.  Shares and links become inactive
  through explicit revocation or lazy expiration (detected on read).

This module provides:
  1. ``AccessLevel``, ``ShareType``, ``ActivityAction`` enums.
  2. ``Share``, ``ShareLink``, ``ShareActivity``, ``SharedWorkspace``,
     ``UserRecord`` and ``WorkspaceView`` domain objects.
  3. ``generate_share_token`` / ``hash_token`` token helpers.
  4. Timestamp helpers shared by the engine and store adapters.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# ── Constants ─────────────────────────────────────────────────────────

TOKEN_BYTES = 32  # 256-bit tokens, rendered as 64 hex chars.
PERMISSION_VIEW = 'view'


# ── Enums ─────────────────────────────────────────────────────────────


class AccessLevel(str, Enum):
    """Effective permission of a principal on a workspace."""

    OWNER = 'owner'
    VIEW = 'view'
    NONE = 'none'

    @property
    def granted(self) -> bool:
        return self is not AccessLevel.NONE

    def satisfies(self, required: AccessLevel) -> bool:
        """True when this level is at least ``required``."""
        if required is AccessLevel.OWNER:
            return self is AccessLevel.OWNER
        if required is AccessLevel.VIEW:
            return self.granted
        return True


class ShareType(str, Enum):
    DIRECT = 'direct_share'
    LINK = 'link_share'


class ActivityAction(str, Enum):
    SHARE_GRANTED = 'share_granted'
    SHARE_REVOKED = 'share_revoked'
    LINK_CREATED = 'link_created'
    LINK_REVOKED = 'link_revoked'
    VIEWED = 'viewed'


# ── Time helpers ──────────────────────────────────────────────────────


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 store value into an aware datetime."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    # Python < 3.11 fromisoformat does not accept a trailing Z.
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return ensure_aware(datetime.fromisoformat(text))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ── Token operations ──────────────────────────────────────────────────


def generate_share_token() -> str:
    """Generate a cryptographically random share-link token.

    Returned to the creator exactly once; only the hash is persisted.
    """
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(plaintext: str) -> str:
    """SHA-256 hex digest of a plaintext share token."""
    return hashlib.sha256(plaintext.encode('utf-8')).hexdigest()


def new_id(prefix: str) -> str:
    """Opaque row identifier, e.g. ``share_3f9a...``."""
    return f'{prefix}_{secrets.token_hex(12)}'


# ── Domain objects ────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class UserRecord:
    """User as seen through the user directory."""

    id: str
    username: str
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {'id': self.id, 'username': self.username}


@dataclass
class Share:
    """Direct grant of view access to one workspace for one user.

    Attributes:
        id: Row identity.
        workspace_id: Shared workspace.
        owner_id: Workspace owner at creation time.
        shared_with_user_id: Recipient (never equal to owner_id).
        permission_level: Currently always ``view``.
        created_at: Grant time.
        expires_at: Optional expiry; checked lazily on access.
        last_accessed_at: Last successful resolution by the recipient.
        is_active: False once revoked or lazily expired.
        shared_with_username: Recipient username when joined for listing.
    """

    id: str
    workspace_id: str
    owner_id: str
    shared_with_user_id: str
    permission_level: str = PERMISSION_VIEW
    created_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None
    last_accessed_at: datetime | None = None
    is_active: bool = True
    shared_with_username: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or utcnow())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            'id': self.id,
            'workspaceId': self.workspace_id,
            'ownerId': self.owner_id,
            'sharedWithUserId': self.shared_with_user_id,
            'permissionLevel': self.permission_level,
            'createdAt': _iso(self.created_at),
            'expiresAt': _iso(self.expires_at),
            'lastAccessed': _iso(self.last_accessed_at),
            'isActive': self.is_active,
        }
        if self.shared_with_username is not None:
            data['sharedWithUsername'] = self.shared_with_username
        return data


@dataclass
class ShareLink:
    """Token-based grant of view access to one workspace.

    ``token`` holds the plaintext only on the object returned from link
    creation; links loaded from the store carry ``token_hash`` alone.
    """

    id: str
    workspace_id: str
    owner_id: str
    token_hash: str
    requires_login: bool = True
    created_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None
    access_count: int = 0
    is_active: bool = True
    token: str | None = None
    owner_username: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or utcnow())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            'id': self.id,
            'workspaceId': self.workspace_id,
            'ownerId': self.owner_id,
            'requiresLogin': self.requires_login,
            'createdAt': _iso(self.created_at),
            'expiresAt': _iso(self.expires_at),
            'accessCount': self.access_count,
            'isActive': self.is_active,
        }
        if self.token is not None:
            data['token'] = self.token
        if self.owner_username is not None:
            data['ownerUsername'] = self.owner_username
        return data


@dataclass(frozen=True)
class ShareActivity:
    """Append-only audit record.

    References grants only through ``metadata`` so records stay valid
    after the grant they describe is revoked.
    """

    id: str
    workspace_id: str
    user_id: str | None
    share_type: ShareType
    action: ActivityAction
    created_at: datetime = field(default_factory=utcnow)
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'workspaceId': self.workspace_id,
            'userId': self.user_id,
            'shareType': self.share_type.value,
            'action': self.action.value,
            'createdAt': _iso(self.created_at),
            'ipAddress': self.ip_address,
            'userAgent': self.user_agent,
            'metadata': dict(self.metadata),
        }


@dataclass(frozen=True)
class SharedWorkspace:
    """Workspace summary for the "shared with me" listing."""

    id: str
    name: str
    owner_id: str
    owner_username: str
    shared_at: datetime
    last_accessed_at: datetime | None = None
    expires_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'ownerId': self.owner_id,
            'ownerUsername': self.owner_username,
            'sharedAt': _iso(self.shared_at),
            'lastAccessed': _iso(self.last_accessed_at),
            'expiresAt': _iso(self.expires_at),
        }


@dataclass(frozen=True)
class WorkspaceView:
    """Workspace content as returned to a (possibly read-only) viewer."""

    workspace: dict[str, Any]
    is_read_only: bool
    share_type: str | None = None  # 'link' | 'direct'
    owner_username: str | None = None
    access_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {**self.workspace, 'isReadOnly': self.is_read_only}
        if self.share_type is not None:
            share_info: dict[str, Any] = {
                'type': self.share_type,
                'owner': self.owner_username,
            }
            if self.access_count is not None:
                share_info['accessCount'] = self.access_count
            data['shareInfo'] = share_info
        return data
