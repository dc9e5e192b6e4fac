"""
FastAPI Application Entry Point.

Usage:
    uvicorn affirm_ms.main:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from fastapi import FastAPI

from affirm_ms import __version__
from affirm_ms.api.routes import router
from affirm_ms.core.logging import configure_logging


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Logging is configured first (AFFIRM_MS_LOG_LEVEL is honoured); the
    service itself is created lazily on the first request.
    """
    configure_logging()

    app = FastAPI(title="affirm-ms", version=__version__)
    app.include_router(router)

    return app


# Global application instance for ASGI servers
app = create_app()
