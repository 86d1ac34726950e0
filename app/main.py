"""
Goalpost FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy.ext.asyncio import AsyncSession

from app import __version__
from app.config import Settings, get_settings
from app.core.logging_config import setup_logging
from app.core.sentry_config import init_sentry
from app.middleware.cache_status import CacheStatusMiddleware
from app.middleware.logging_middleware import LoggingMiddleware
from app.middleware.security_headers import SecurityHeadersMiddleware
from app.services.cache_service import CacheService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application startup and shutdown lifecycle management.

    Startup ensures the schema exists and connects the cache client
    (degraded mode if Redis is down). The sweep of stale key generations
    runs once the cache is first reachable. Shutdown closes the cache client.
    """
    settings: Settings = app.state.settings
    cache: CacheService = app.state.cache
    logger.info(f"Starting {settings.app_name} v{__version__} ({settings.app_env.value})")

    if settings.database_create_tables:
        from app.db.database import create_tables

        await create_tables()

    await cache.connect(purge_stale=settings.cache_purge_on_startup)

    yield

    await cache.close()
    logger.info(f"Shutting down {settings.app_name}")


def create_app(settings: Settings | None = None, cache: CacheService | None = None) -> FastAPI:
    """
    Application factory: creates and configures the FastAPI instance.

    Args:
        settings: Override settings (tests); defaults to ``get_settings()``.
        cache: Prebuilt cache client (tests); defaults to one built from
            settings. Either way it is the only cache client of the process.
    """
    settings = settings or get_settings()

    # 1. Configure structured logging (before anything else)
    setup_logging(
        app_env=settings.app_env,
        log_level=settings.log_level,
        log_format=settings.log_format,
    )

    # 2. Initialize Sentry (before app creation so ASGI integration hooks in)
    init_sentry(
        dsn=settings.sentry_dsn,
        app_env=settings.app_env,
        app_version=__version__,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        profiles_sample_rate=settings.sentry_profiles_sample_rate,
    )

    openapi_tags = [
        {"name": "Authentication", "description": "Register, login and refresh tokens."},
        {"name": "Users", "description": "Profile management and password changes."},
        {"name": "Goals", "description": "Goals with filters, sorting and derived progress."},
        {"name": "Subtasks", "description": "Steps of a goal; writes update goal progress."},
        {"name": "Rewards", "description": "Rewards, goal attachment and claiming."},
        {"name": "Analytics", "description": "Dashboard and per-user goal statistics."},
        {"name": "System", "description": "Health checks."},
    ]

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Goalpost tracks goals, their subtasks and the rewards attached to them.\n\n"
            "**Authentication:** All endpoints (except `/health` and `/api/v1/auth/*`) "
            "require a JWT Bearer token.\n\n"
            "**Caching:** Read endpoints are served through a Redis cache; the "
            "`X-Cache-Status` response header reports `HIT` or `MISS`."
        ),
        version=__version__,
        lifespan=lifespan,
        openapi_tags=openapi_tags,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        redirect_slashes=False,
    )
    app.state.settings = settings
    app.state.cache = cache or CacheService(settings)

    # Middleware order (outermost first): CORS → GZip → Logging → SecurityHeaders → CacheStatus
    app.add_middleware(CacheStatusMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=settings.gzip_minimum_size)
    if settings.is_development:
        cors_origins = ["http://localhost:5173"]
    else:
        cors_origins = [o.strip() for o in settings.cors_allowed_origins.split(",") if o.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Cache-Status", "X-Request-ID"],
    )

    # Register API routers (triggers database module import)
    from app.api.v1 import analytics, auth, goals, rewards, subtasks, users
    from app.db.database import get_db

    @app.get("/health", tags=["System"])
    async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
        from app.core.health import get_health_status

        return await get_health_status(
            app_name=settings.app_name,
            app_version=__version__,
            app_env=settings.app_env.value,
            db_session=db,
            cache=request.app.state.cache,
        )

    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(goals.router, prefix="/api/v1")
    app.include_router(subtasks.router, prefix="/api/v1")
    app.include_router(rewards.router, prefix="/api/v1")
    app.include_router(analytics.router, prefix="/api/v1")

    # Register global exception handlers (after routers)
    from app.middleware.exception_handler import register_exception_handlers

    register_exception_handlers(app)

    return app


app = create_app()
