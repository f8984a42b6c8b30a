"""Error taxonomy for the share engine.

Every failure the engine reports to a caller is a ``ShareError`` subclass
carrying a stable machine-readable ``code`` and the HTTP status the route
layer should answer with. Components raise the most specific class they can;
route handlers render ``to_dict()`` without re-wrapping.

  ShareValidationError (400)     malformed input, business-rule violations
    AlreadySharedError (409)     duplicate active share
  AccessDeniedError (403)        authenticated but not owner / not shared
  UnauthenticatedError (401)     no principal where one is required
  NotFoundError (404)            workspace / user / token absent
  ShareInternalError (500)       storage failure, timeout, unexpected error
"""

from __future__ import annotations

from typing import Any


class ShareError(Exception):
    """Base class for all errors surfaced by the share engine."""

    status_code: int = 500
    code: str = 'share_error'

    def __init__(self, message: str = '', **extra: Any) -> None:
        self.message = message or self.__class__.__doc__ or self.code
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON error body used by the HTTP surface."""
        return {'error': self.code, 'detail': self.message, **self.extra}


# ── 400 / 409 ────────────────────────────────────────────────────────


class ShareValidationError(ShareError):
    """Request violates an input or business rule."""

    status_code = 400
    code = 'validation_error'


class SelfShareError(ShareValidationError):
    """Cannot share a workspace with yourself."""

    code = 'self_share'


class InvalidExpiryError(ShareValidationError):
    """Expiry must be in the future."""

    code = 'invalid_expiry'


class InvalidSearchError(ShareValidationError):
    """Search query must be at least 2 characters."""

    code = 'invalid_query'


class AlreadySharedError(ShareValidationError):
    """Workspace is already shared with this user."""

    status_code = 409
    code = 'already_shared'


# ── 401 / 403 ────────────────────────────────────────────────────────


class UnauthenticatedError(ShareError):
    """Authentication required."""

    status_code = 401
    code = 'unauthenticated'


class LoginRequiredError(UnauthenticatedError):
    """This share link requires login."""

    code = 'login_required'

    def __init__(self, message: str = '') -> None:
        super().__init__(message, requiresLogin=True)


class AccessDeniedError(ShareError):
    """Access denied."""

    status_code = 403
    code = 'access_denied'


class NotOwnerError(AccessDeniedError):
    """Workspace not found or you do not have permission."""

    code = 'not_owner'


# ── 404 ──────────────────────────────────────────────────────────────


class NotFoundError(ShareError):
    """Resource not found."""

    status_code = 404
    code = 'not_found'


class WorkspaceNotFoundError(NotFoundError):
    """Workspace not found."""

    code = 'workspace_not_found'


class RecipientNotFoundError(NotFoundError):
    """User not found."""

    code = 'user_not_found'


class ShareLinkNotFoundError(NotFoundError):
    """Invalid or expired share link."""

    code = 'share_link_not_found'


# ── 500 ──────────────────────────────────────────────────────────────


class ShareInternalError(ShareError):
    """Internal server error."""

    status_code = 500
    code = 'internal_error'


class StoreTimeoutError(ShareInternalError):
    """Store operation exceeded its deadline."""

    code = 'store_timeout'

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f'{operation} exceeded {timeout:.2f}s deadline')
