"""
Intercamb: administrative API for client management.

Run with: uvicorn intercamb.main:app --port 8000 --reload
"""
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configure structured logging FIRST (before any logger calls)
from .dependencies import LOG_LEVEL, create_query_facade
from .middleware.structlog_config import configure as configure_logging

configure_logging(LOG_LEVEL)

import structlog

from .middleware import RequestLoggingMiddleware, register_error_handlers
from .routers import clients_router, companies_router, institutions_router

logger = structlog.get_logger("intercamb.api")

API_TITLE = "Intercamb Client Management API"
API_VERSION = "1.0.0"


def create_app(db_path: Optional[Path] = None) -> FastAPI:
    """Build the API; ``db_path`` overrides DATABASE_PATH (used by tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        queries = create_query_facade(db_path)
        app.state.queries = queries
        logger.info(
            "store_ready",
            path=str(queries.store.path),
            collections=len(queries.registry),
        )
        yield
        logger.info("Shutting down.")

    docs_enabled = os.environ.get("ENABLE_DOCS", "true").lower() == "true"
    app = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        lifespan=lifespan,
    )

    register_error_handlers(app)

    # Request logging middleware (must be added before CORS so it wraps it)
    app.add_middleware(RequestLoggingMiddleware)

    cors_origins = os.environ.get(
        "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(",")
    if "*" in cors_origins:
        logger.warning("Wildcard CORS origin rejected for security; falling back to localhost defaults")
        cors_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    app.include_router(companies_router, prefix="/api/v1")
    app.include_router(clients_router, prefix="/api/v1")
    app.include_router(institutions_router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": API_VERSION}

    return app


app = create_app()
