"""FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError

from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.api.routes.study_material import error_response
from backend.app.api.routes.study_material import router as study_material_router
from backend.app.config import Settings, get_settings
from backend.app.llm.client import create_generation_client
from backend.app.middleware.body_limit import BodySizeLimitMiddleware
from backend.app.utils.logging import StructuredGenerationLogger, configure_logging
from backend.app.utils.metrics import PrometheusGenerationMetrics

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the shared generation client and close it on shutdown."""
    client = create_generation_client(
        app.state.settings,
        metrics=PrometheusGenerationMetrics(),
        structured_logger=StructuredGenerationLogger(),
    )
    await client.init()
    app.state.generation_client = client
    try:
        yield
    finally:
        await client.close()
        app.state.generation_client = None


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application around the given (or cached) settings."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)

    app = FastAPI(title="Study Material API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.generation_client = None

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_request_bytes)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        errors = exc.errors()
        detail = errors[0].get("msg", "invalid body") if errors else "invalid body"
        location = ".".join(str(p) for p in errors[0].get("loc", ())) if errors else ""
        return error_response(400, f"Invalid request: {location} {detail}".strip())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> Response:
        logger.exception(f"Unhandled error on {request.url.path}")
        return error_response(500, "Internal server error")

    # Register routes
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(study_material_router, tags=["study-material"])

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "Study Material API", "version": "0.1.0"}

    return app


app = create_app()
