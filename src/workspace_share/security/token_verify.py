"""Bearer JWT verification for share routes.

A verified token becomes an ``AuthIdentity`` carrying the ``sub`` claim
and a display username; the share engine trusts both without further
lookups. Deployed environments verify RS256 tokens against the Supabase
JWKS document, local runs and tests use a shared HS256 secret.

The username comes from the first non-blank of ``username``,
``user_metadata.username`` and ``preferred_username``, falling back to the
local part of ``email``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import jwt
from jwt import PyJWKClient, PyJWKClientError
from starlette.requests import Request

DEFAULT_AUDIENCE = 'authenticated'
JWKS_CACHE_TTL_SECONDS = 300
JWKS_PATH = '/auth/v1/.well-known/jwks.json'
REQUIRED_CLAIMS = ('sub', 'exp', 'aud')

# Checked in order; subclasses must precede their bases.
_DECODE_FAILURES: tuple[tuple[type[Exception], str], ...] = (
    (jwt.ExpiredSignatureError, 'token_expired'),
    (jwt.InvalidAudienceError, 'invalid_audience'),
    (jwt.DecodeError, 'decode_error'),
    (jwt.InvalidTokenError, 'invalid_token'),
)


@dataclass(frozen=True, slots=True)
class AuthIdentity:
    """The principal a request acts as."""

    user_id: str
    username: str
    email: str = ''
    raw_claims: dict[str, Any] = field(default_factory=dict)


class TokenVerificationError(Exception):
    """A token was rejected; ``code`` is a stable machine-readable reason."""

    def __init__(self, code: str, detail: str = '') -> None:
        super().__init__(code if not detail else f'{code}: {detail}')
        self.code = code
        self.detail = detail


class KeyProvider(Protocol):
    def get_signing_key(self, token: str) -> Any: ...


class JWKSKeyProvider:
    """Looks up the key named by the token's ``kid`` in a JWKS document."""

    def __init__(self, jwks_url: str, cache_ttl: int = JWKS_CACHE_TTL_SECONDS) -> None:
        self.jwks_url = jwks_url
        self._client = PyJWKClient(jwks_url, cache_jwk_set=True, lifespan=cache_ttl)

    def get_signing_key(self, token: str) -> Any:
        try:
            jwk = self._client.get_signing_key_from_jwt(token)
        except PyJWKClientError as exc:
            raise TokenVerificationError('jwks_fetch_error', str(exc)) from exc
        return jwk.key


@dataclass(frozen=True)
class StaticKeyProvider:
    secret: str

    def get_signing_key(self, token: str) -> str:
        return self.secret


def username_from_claims(claims: dict[str, Any]) -> str:
    """Display username for ``claims``; empty when nothing usable is present."""
    metadata = claims.get('user_metadata')
    if not isinstance(metadata, dict):
        metadata = {}
    for value in (
        claims.get('username'),
        metadata.get('username'),
        claims.get('preferred_username'),
    ):
        if isinstance(value, str) and value.strip():
            return value.strip()
    email = claims.get('email')
    if isinstance(email, str) and '@' in email:
        return email.partition('@')[0]
    return ''


class TokenVerifier:
    def __init__(
        self,
        key_provider: KeyProvider,
        audience: str = DEFAULT_AUDIENCE,
        algorithms: list[str] | None = None,
    ) -> None:
        self._key_provider = key_provider
        self._audience = audience
        self._algorithms = list(algorithms) if algorithms else ['RS256']

    def _decode(self, token: str) -> dict[str, Any]:
        key = self._key_provider.get_signing_key(token)
        try:
            return jwt.decode(
                token,
                key,
                algorithms=self._algorithms,
                audience=self._audience,
                options={'require': list(REQUIRED_CLAIMS)},
            )
        except jwt.InvalidTokenError as exc:
            code = next(c for kind, c in _DECODE_FAILURES if isinstance(exc, kind))
            detail = f'expected {self._audience}' if code == 'invalid_audience' else str(exc)
            raise TokenVerificationError(code, detail) from exc

    def verify(self, token: str) -> AuthIdentity:
        """Verify a raw JWT (no ``Bearer`` prefix) and return its principal.

        Raises:
            TokenVerificationError: Signature, audience, expiry or a
                required claim is wrong or missing.
        """
        if not token or token.isspace():
            raise TokenVerificationError('empty_token')

        claims = self._decode(token)
        if not claims.get('sub'):
            raise TokenVerificationError('missing_sub_claim')
        username = username_from_claims(claims)
        if not username:
            raise TokenVerificationError('missing_username_claim')

        return AuthIdentity(
            user_id=str(claims['sub']),
            username=username,
            email=(claims.get('email') or '').lower(),
            raw_claims=claims,
        )


def extract_bearer_token(request: Request) -> str | None:
    scheme, _, credentials = request.headers.get('authorization', '').partition(' ')
    if scheme.lower() != 'bearer':
        return None
    return credentials.strip()


def create_token_verifier(
    supabase_url: str | None = None,
    jwt_secret: str | None = None,
    audience: str = DEFAULT_AUDIENCE,
) -> TokenVerifier:
    """HS256 verifier when ``jwt_secret`` is set, else RS256 against JWKS.

    Raises:
        ValueError: Neither ``supabase_url`` nor ``jwt_secret`` was given.
    """
    if jwt_secret:
        return TokenVerifier(StaticKeyProvider(jwt_secret), audience, ['HS256'])
    if not supabase_url:
        raise ValueError('Either supabase_url (for JWKS) or jwt_secret (for HS256) is required')
    jwks = JWKSKeyProvider(supabase_url.rstrip('/') + JWKS_PATH)
    return TokenVerifier(jwks, audience, ['RS256'])
