"""Share service configuration settings.

ShareSettings is the single configuration object accepted by create_app().
It is a plain dataclass (not env-coupled) so tests can inject config
without touching os.environ; production builds it with ``from_env()``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "http://localhost:5173",
    "http://localhost:3000",
)
VALID_ENVIRONMENTS = frozenset({"local", "dev", "staging", "production"})


@dataclass(frozen=True, slots=True)
class ShareSettings:
    """Configuration for the share service FastAPI application.

    Local environments run against the in-memory store; every other
    environment needs real Supabase credentials.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL (PostgREST base and JWKS issuer)."""

    supabase_service_role_key: str = ""
    """Service-role key for PostgREST calls. Never log this."""

    # ── Auth ───────────────────────────────────────────────────────
    jwt_secret: str = ""
    """HS256 secret for bearer tokens (local / dev). Never log this."""

    jwt_audience: str = "authenticated"

    # ── Sharing ────────────────────────────────────────────────────
    public_base_url: str = ""
    """Base for full share-link URLs; request base URL when empty."""

    store_timeout_seconds: float = 5.0
    """Default deadline for every engine operation."""

    # ── HTTP / logging ─────────────────────────────────────────────
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.environment not in VALID_ENVIRONMENTS:
            errors.append(f"environment must be one of {sorted(VALID_ENVIRONMENTS)}")
        if not self.is_local:
            if not self.supabase_url:
                errors.append(f"{self.environment}: supabase_url is required")
            if not self.supabase_service_role_key:
                errors.append(f"{self.environment}: supabase_service_role_key is required")
        if not self.supabase_url and not self.jwt_secret:
            errors.append("either supabase_url (JWKS) or jwt_secret (HS256) is required")
        if self.store_timeout_seconds <= 0:
            errors.append("store_timeout_seconds must be positive")
        if self.log_format not in ("json", "console"):
            errors.append("log_format must be 'json' or 'console'")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ShareSettings:
        """Build settings from environment variables.

        Raises:
            ValueError: STORE_TIMEOUT_SECONDS is not a number.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = (
            tuple(o.strip() for o in cors_raw.split(",") if o.strip())
            if cors_raw
            else DEFAULT_CORS_ORIGINS
        )

        timeout_raw = env.get("STORE_TIMEOUT_SECONDS", "")
        try:
            timeout = float(timeout_raw) if timeout_raw else 5.0
        except ValueError:
            raise ValueError(f"STORE_TIMEOUT_SECONDS must be a number, got {timeout_raw!r}") from None

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            jwt_secret=env.get("JWT_SECRET", ""),
            jwt_audience=env.get("JWT_AUDIENCE", "authenticated"),
            public_base_url=env.get("PUBLIC_BASE_URL", ""),
            store_timeout_seconds=timeout,
            cors_origins=cors,
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
        )
