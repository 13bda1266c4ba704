"""FastAPI application entry point for the catalog export service."""

from __future__ import annotations

import os
from typing import Final

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from catalog_export.api.routes import router
from catalog_export.config.settings import APIConfig
from catalog_export.telemetry.log_setup import setup_logging

_DEVELOPMENT_ENVIRONMENTS: Final[set[str]] = {"dev", "development", "local"}


def _resolve_cors_origins() -> list[str]:
    environment = os.getenv("CATALOG_EXPORT_ENV", "development").strip().lower()
    if os.getenv("CATALOG_EXPORT_ALLOWED_ORIGINS", "").strip():
        return APIConfig().allowed_origins

    if environment not in _DEVELOPMENT_ENVIRONMENTS:
        raise RuntimeError(
            "Production CORS configuration error: CATALOG_EXPORT_ALLOWED_ORIGINS must be "
            "set to a comma-separated list of trusted origins when CATALOG_EXPORT_ENV is "
            "not development/local/dev."
        )

    return []


def create_app() -> FastAPI:
    """Factory function for creating the FastAPI application."""
    setup_logging(APIConfig().log_level)

    app = FastAPI(
        title="Catalog Export",
        description="Search result export as streamed CSV",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_resolve_cors_origins(),
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    app.include_router(router, prefix="/api/v1", tags=["search"])

    return app


app = create_app()


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "service": "catalog-export", "version": "1.0.0"}
