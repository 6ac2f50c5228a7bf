from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from expense_dashboard import __version__
from expense_dashboard.api.middleware.error_handler import (
    handle_dashboard_error,
    handle_generic_error,
    handle_validation_error,
)
from expense_dashboard.api.middleware.logging import RequestLoggingMiddleware, setup_logging
from expense_dashboard.api.v1 import router as v1_router
from expense_dashboard.api.v1.health import router as health_router
from expense_dashboard.categorization import CategorizationEngine
from expense_dashboard.categorization.classifier import RemoteClassifier
from expense_dashboard.config import Settings, settings
from expense_dashboard.core.exceptions import DashboardError
from expense_dashboard.services.ramp_client import RampClient
from expense_dashboard.services.sessions import SessionStore


def build_services(app: FastAPI, config: Settings) -> None:
    """Construct the shared services and store them on app.state."""
    ramp_client = RampClient.from_settings(config) if config.ramp_configured else None
    classifier = RemoteClassifier.from_settings(config)

    app.state.ramp_client = ramp_client
    app.state.engine = CategorizationEngine(
        classifier, pacing_delay=config.categorize_pacing_ms / 1000
    )
    app.state.sessions = (
        SessionStore(
            ramp_client.list_transactions,
            max_sessions=config.session_max_count,
            page_size=config.pagination_page_size,
            chunk_size=config.pagination_chunk_size,
            max_count_calls=config.total_count_max_calls,
            search_min_fetch=config.search_min_fetch,
        )
        if ramp_client is not None
        else None
    )


async def close_services(app: FastAPI) -> None:
    sessions = getattr(app.state, "sessions", None)
    if sessions is not None:
        await sessions.aclose()
    ramp_client = getattr(app.state, "ramp_client", None)
    if ramp_client is not None:
        await ramp_client.aclose()
    engine = getattr(app.state, "engine", None)
    if engine is not None and engine.classifier is not None:
        await engine.classifier.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    build_services(app, settings)
    yield
    # Shutdown
    await close_services(app)


def create_app() -> FastAPI:
    setup_logging(settings.log_level, json_format=settings.app_env != "development")

    app = FastAPI(
        title="Expense Dashboard API",
        description="Ramp transaction browsing and expense categorization",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Register exception handlers (order matters - most specific first)
    app.add_exception_handler(DashboardError, handle_dashboard_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_generic_error)

    # Register routers
    app.include_router(health_router)
    app.include_router(v1_router)

    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
