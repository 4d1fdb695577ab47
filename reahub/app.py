"""
FastAPI application entry point for the task service.
"""

from __future__ import annotations

from fastapi import FastAPI

from reahub.config import get_settings
from reahub.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="ReaHub Task Service", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
