"""Share service FastAPI application factory.

The create_app() factory is the single entry point for building the ASGI
application. It wires middleware (request-ID, metrics, auth guard, CORS),
builds the share engine once per process and injects it into the router.

Usage:
    # Local development (in-memory store)
    from workspace_share import create_app, ShareSettings
    app = create_app(ShareSettings(jwt_secret="dev-secret"))

    # Deployed (PostgREST store built from settings)
    app = create_app(ShareSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, content=fake_content, users=fake_users, ...)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .observability.logging import configure_logging, get_logger
from .observability.metrics import metrics_text
from .observability.middleware import MetricsMiddleware, RequestIdMiddleware
from .protocols import (
    ActivityRepository,
    ContentStore,
    ShareLinkRepository,
    ShareRepository,
    UserDirectory,
)
from .security.auth_guard import AuthGuardMiddleware
from .security.token_verify import TokenVerifier, create_token_verifier
from .settings import ShareSettings
from .sharing.access import AccessResolver
from .sharing.activity import ActivityRecorder
from .sharing.links import LinkShareManager
from .sharing.routes import create_share_router, register_error_handlers
from .sharing.shares import ShareManager
from .sharing.users import UserSearch

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Store implementations the engine runs against.

    Stored on ``app.state.deps`` so tests and tooling can reach them.
    """

    content: ContentStore
    users: UserDirectory
    share_repo: ShareRepository
    link_repo: ShareLinkRepository
    activity_repo: ActivityRepository


@dataclass(frozen=True)
class ShareEngine:
    """The engine components, constructed once per process."""

    resolver: AccessResolver
    shares: ShareManager
    links: LinkShareManager
    activity: ActivityRecorder
    users: UserSearch


def build_inmemory_deps() -> AppDependencies:
    """All-in-memory dependencies for local development and tests."""
    from .inmemory import (
        InMemoryActivityRepository,
        InMemoryContentStore,
        InMemoryShareLinkRepository,
        InMemoryShareRepository,
        InMemoryUserDirectory,
    )

    content = InMemoryContentStore()
    users = InMemoryUserDirectory()
    return AppDependencies(
        content=content,
        users=users,
        share_repo=InMemoryShareRepository(content, users),
        link_repo=InMemoryShareLinkRepository(users),
        activity_repo=InMemoryActivityRepository(),
    )


def build_store_deps(client) -> AppDependencies:
    """PostgREST-backed dependencies sharing one ``StoreClient``."""
    from .db.activity_repo import StoreActivityRepository
    from .db.link_repo import StoreShareLinkRepository
    from .db.share_repo import StoreShareRepository
    from .db.user_repo import StoreUserDirectory
    from .db.workspace_repo import StoreContentStore

    content = StoreContentStore(client)
    users = StoreUserDirectory(client)
    return AppDependencies(
        content=content,
        users=users,
        share_repo=StoreShareRepository(client, content, users),
        link_repo=StoreShareLinkRepository(client, users),
        activity_repo=StoreActivityRepository(client),
    )


def build_engine(deps: AppDependencies, settings: ShareSettings) -> ShareEngine:
    timeout = settings.store_timeout_seconds
    activity = ActivityRecorder(deps.activity_repo, deps.content, timeout=timeout)
    return ShareEngine(
        resolver=AccessResolver(deps.content, deps.share_repo, default_timeout=timeout),
        shares=ShareManager(
            deps.content, deps.users, deps.share_repo, activity, default_timeout=timeout,
        ),
        links=LinkShareManager(deps.content, deps.link_repo, activity, default_timeout=timeout),
        activity=activity,
        users=UserSearch(deps.users, default_timeout=timeout),
    )


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: ShareSettings | None = None,
    *,
    content: ContentStore | None = None,
    users: UserDirectory | None = None,
    share_repo: ShareRepository | None = None,
    link_repo: ShareLinkRepository | None = None,
    activity_repo: ActivityRepository | None = None,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Create a configured share-service FastAPI application.

    Args:
        settings: Application settings. Defaults to ``from_env()``.
        content..activity_repo: Store overrides. Missing ones are filled
            with in-memory implementations locally and PostgREST
            repositories elsewhere.
        token_verifier: Bearer token verifier override.

    Returns:
        Configured FastAPI application ready for uvicorn.

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = ShareSettings.from_env()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Share service settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    configure_logging(level=settings.log_level, json_output=settings.log_format == "json")

    store_client = None
    if settings.is_local:
        defaults = build_inmemory_deps()
    else:
        from .db.store_client import StoreClient

        store_client = StoreClient(
            base_url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
            timeout_seconds=settings.store_timeout_seconds,
        )
        defaults = build_store_deps(store_client)

    deps = AppDependencies(
        content=content or defaults.content,
        users=users or defaults.users,
        share_repo=share_repo or defaults.share_repo,
        link_repo=link_repo or defaults.link_repo,
        activity_repo=activity_repo or defaults.activity_repo,
    )
    engine = build_engine(deps, settings)
    verifier = token_verifier or create_token_verifier(
        supabase_url=settings.supabase_url or None,
        jwt_secret=settings.jwt_secret or None,
        audience=settings.jwt_audience,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("share_service_startup", environment=settings.environment)
        yield
        if store_client is not None:
            await store_client.aclose()
        logger.info("share_service_shutdown")

    app = FastAPI(
        title="Workspace Share Service",
        description="Access control and share lifecycle for workspaces",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.deps = deps
    app.state.engine = engine
    app.state.settings = settings
    register_error_handlers(app)

    # ── Middleware stack (last added runs first) ───────────────
    # Order of execution: RequestId -> Metrics -> AuthGuard -> CORS -> route
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AuthGuardMiddleware, token_verifier=verifier)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {"status": "ok", "environment": settings.environment}

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_share_router(
        resolver=engine.resolver,
        shares=engine.shares,
        links=engine.links,
        activity=engine.activity,
        users=engine.users,
        public_base_url=settings.public_base_url,
    ))

    return app


# For uvicorn, use --factory flag:
#   uvicorn workspace_share.main:create_app --factory
