"""FastAPI application factory for docjoin."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import asdict

import uvicorn
from fastapi import Depends, FastAPI

from docjoin import __version__
from docjoin.api.deps import get_store, init_store, reset_store
from docjoin.api.middleware import RequestBodyLimitMiddleware, RequestTimingMiddleware
from docjoin.api.routers import registries
from docjoin.api.schemas import ErrorDetail, HealthResponse, ValidateRequest, ValidateResponse
from docjoin.service.schema_store import SchemaStore
from docjoin.settings import Settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Install the SchemaStore for the lifetime of the application."""
    init_store(SchemaStore())
    try:
        yield
    finally:
        reset_store()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="docjoin",
        description="Compiles entity schemas and queries into MongoDB aggregation pipelines.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestBodyLimitMiddleware, max_bytes=settings.max_body_bytes)
    app.add_middleware(RequestTimingMiddleware)

    app.include_router(registries.router, prefix="/registries", tags=["registries"])

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    @app.post("/validate", response_model=ValidateResponse, tags=["registries"])
    async def validate(
        body: ValidateRequest,
        store: SchemaStore = Depends(get_store),  # noqa: B008
    ) -> ValidateResponse:
        """Validate a schema document without storing it."""
        summary = store.validate(body.schema_yaml)
        return ValidateResponse(
            valid=summary.valid,
            errors=[ErrorDetail(**asdict(e)) for e in summary.errors],
            warnings=[ErrorDetail(**asdict(w)) for w in summary.warnings],
        )

    return app


def main() -> None:
    """Run the REST API server using settings from environment / .env file."""
    settings = Settings()

    logging.basicConfig(level=settings.log_level.upper())
    logger.info(
        "docjoin API server v%s starting (host=%s, port=%d)",
        __version__,
        settings.api_server_host,
        settings.effective_port,
    )

    uvicorn.run(
        "docjoin.api.app:create_app",
        factory=True,
        host=settings.api_server_host,
        port=settings.effective_port,
        log_level=settings.log_level.lower(),
    )
