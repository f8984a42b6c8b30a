"""Access control and share lifecycle engine."""

from .access import AccessResolver, verify_owner
from .activity import ActivityRecorder, sanitize_metadata
from .links import LinkShareManager
from .model import (
    AccessLevel,
    ActivityAction,
    Share,
    ShareActivity,
    ShareLink,
    SharedWorkspace,
    ShareType,
    UserRecord,
    WorkspaceView,
    generate_share_token,
    hash_token,
)
from .shares import ShareManager
from .users import UserSearch, escape_like

__all__ = [
    'AccessLevel',
    'AccessResolver',
    'ActivityAction',
    'ActivityRecorder',
    'LinkShareManager',
    'Share',
    'ShareActivity',
    'ShareLink',
    'ShareManager',
    'ShareType',
    'SharedWorkspace',
    'UserRecord',
    'UserSearch',
    'WorkspaceView',
    'escape_like',
    'generate_share_token',
    'hash_token',
    'sanitize_metadata',
    'verify_owner',
]
