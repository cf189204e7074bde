"""
Lead Pipeline API - Main Application.

FastAPI application exposing ingestion, enrichment, outreach and provider
webhooks. Services are built once at startup from settings (.env) and shared
through `app.state.container`.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from api.dependencies import ServiceContainer, build_container
from api.routers import enrichment, ingest, outreach, webhooks
from settings import Settings, load_settings

logger = logging.getLogger(__name__)


def create_app(container: Optional[ServiceContainer] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    A prebuilt container is used as is and not closed on shutdown; otherwise
    one is built from `settings` (or the environment) when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if container is not None:
            app.state.container = container
            yield
            return

        resolved = settings or load_settings(require_database=True)
        logging.basicConfig(
            level=resolved.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        built = await build_container(resolved)
        app.state.container = built
        logger.info("Lead pipeline API started (outreach mode: %s)", resolved.instantly_mode.value)
        try:
            yield
        finally:
            await built.aclose()

    app = FastAPI(
        title="Lead Pipeline API",
        description="Ingest, enrich, score and route business leads",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Allow all origins for the dashboard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Health check endpoint.

        Returns the API status and version.
        """
        return {
            "status": "healthy",
            "version": __version__,
            "service": "lead-pipeline-api",
        }

    @app.get("/", tags=["Root"])
    def root():
        return {
            "message": "Lead Pipeline API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(ingest.router, prefix="/api/v1", tags=["Ingestion"])
    app.include_router(enrichment.router, prefix="/api/v1", tags=["Enrichment"])
    app.include_router(outreach.router, prefix="/api/v1", tags=["Outreach"])
    app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])

    return app


app = create_app()
