"""
FastAPI application entry point for the company directory backend.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from companyhub.config import get_settings
from companyhub.errors import register_error_handlers
from companyhub.logging_config import configure_logging
from companyhub.routes import router
from companyhub.schemas import HealthResponse

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Company Directory API", version="0.1.0")
    register_error_handlers(app)

    if settings.cors_origins_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def log_api_requests(request: Request, call_next):
        if not request.url.path.startswith(settings.api_prefix):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %s in %.0fms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse()

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
