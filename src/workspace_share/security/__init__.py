"""Principal extraction and workspace authorization."""

from .auth_guard import AuthGuardMiddleware, get_auth_identity, get_optional_identity
from .token_verify import (
    AuthIdentity,
    TokenVerificationError,
    TokenVerifier,
    create_token_verifier,
)
from .workspace_authz import require_workspace_access

__all__ = [
    'AuthGuardMiddleware',
    'AuthIdentity',
    'TokenVerificationError',
    'TokenVerifier',
    'create_token_verifier',
    'get_auth_identity',
    'get_optional_identity',
    'require_workspace_access',
]
