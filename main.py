import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from storefront.config import settings
from storefront.database import AsyncSessionLocal, Base, engine
from storefront.exception_handlers import register_exception_handlers
from storefront.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from storefront.plugins.loader import load_widget_registry
from storefront.plugins.registry import WidgetRegistry
from storefront.plugins.sandbox import ControllerSandbox
from storefront.routes import navigation, plugins, resolution, slot_configurations, widgets
from storefront.services import navigation_service
from storefront.services.composition_service import CompositionResolver

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables in debug mode, then build the widget registry and seed navigation."""
    logger.info("Starting %s %s (%s)", settings.app_name, settings.app_version, settings.environment)
    if app.state.create_tables:
        async with app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created (if not existing).")

    async with app.state.session_factory() as db:
        await load_widget_registry(db, app.state.widget_registry)
        await navigation_service.seed_core_navigation(db)

    yield
    logger.info("Shutting down the application...")
    app.state.sandbox.shutdown()


def create_app(
    session_factory: async_sessionmaker = AsyncSessionLocal,
    db_engine: AsyncEngine = engine,
    create_tables: bool | None = None,
) -> FastAPI:
    """Create the FastAPI application with its runtime services on app.state."""
    app = FastAPI(
        title=settings.app_name,
        description="Plugin runtime and slot composition engine for multi-tenant storefronts",
        debug=settings.debug,
        version=settings.app_version,
        lifespan=lifespan,
    )

    widget_registry = WidgetRegistry()
    sandbox = ControllerSandbox(
        session_factory,
        timeout_seconds=settings.controller_timeout_seconds,
        max_workers=settings.controller_max_workers,
        max_pending_per_plugin=settings.controller_max_pending_per_plugin,
    )
    app.state.engine = db_engine
    app.state.session_factory = session_factory
    app.state.create_tables = settings.debug if create_tables is None else create_tables
    app.state.widget_registry = widget_registry
    app.state.sandbox = sandbox
    app.state.resolver = CompositionResolver(widget_registry, sandbox, settings)

    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(plugins.router, prefix="/api/v1/plugins")
    app.include_router(widgets.router, prefix="/api/v1/widgets")
    app.include_router(navigation.router, prefix="/api/v1/navigation")
    app.include_router(slot_configurations.router, prefix="/api/v1/slot-configurations")
    app.include_router(resolution.router, prefix="/api/v1/storefront")

    @app.get("/health", tags=["Health"])
    async def health():
        return {
            "status": "healthy",
            "version": settings.app_version,
            "widgets": len(app.state.widget_registry),
        }

    if settings.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    return app


setup_structured_logging(settings.log_level, json_format=settings.log_json)
app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
