"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from seedgraph.core.config import get_settings
from seedgraph.core.exceptions import register_exception_handlers
from seedgraph.core.health import router as health_router
from seedgraph.core.logging import configure_logging, get_logger
from seedgraph.core.middleware import RequestIdMiddleware
from seedgraph.features.relationships.routes import router as relationships_router
from seedgraph.shared.relationships import AnalysisCache

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown.

    Args:
        app: FastAPI application instance.

    Yields:
        None after startup, cleans up on shutdown.
    """
    settings = get_settings()

    # Startup
    configure_logging()
    logger.info(
        "app.startup_started",
        app_name=settings.app_name,
        app_env=settings.app_env,
        debug=settings.debug,
        schemas=settings.relationship_schemas,
    )

    yield

    # Shutdown
    app.state.analysis_cache.clear()
    logger.info("app.shutdown_completed")


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Foreign-key dependency analysis and seeding order for test data generation",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # One cache per application; analyzers created per request share it
    ttl_minutes = settings.relationship_cache_ttl_minutes
    app.state.analysis_cache = AnalysisCache(
        ttl_seconds=ttl_minutes * 60 if ttl_minutes > 0 else None
    )

    # Middleware (order matters - first added = outermost)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(RequestIdMiddleware)

    # Exception handlers
    register_exception_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(relationships_router)

    return app


app = create_app()
