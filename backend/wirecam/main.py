"""
Main application module for the wirecam backend.

This file sets up the FastAPI application, configures CORS so a
browser frontend can make cross-origin requests, and exposes a simple
health check.

Routers for the model and CAM APIs are included under the ``/api``
namespace.  Malformed geometry reported by the services as
``GeometryInputError`` is answered with HTTP 422.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes_cam import router as cam_router
from .api.routes_models import router as models_router
from .services.errors import GeometryInputError
from .services.models_store import init_db

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Factory to create and configure the FastAPI application.

    Returns:
        FastAPI: The configured FastAPI application instance.
    """
    app = FastAPI(title="wirecam")

    # The SQLite schema must exist before the first request; init_db is
    # idempotent.
    @app.on_event("startup")  # type: ignore[misc]
    async def startup_event() -> None:
        init_db()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GeometryInputError)
    async def geometry_input_error_handler(request: Request, exc: GeometryInputError) -> JSONResponse:
        logger.warning("Rejected geometry input on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(models_router, prefix="/api", tags=["models"])
    app.include_router(cam_router, prefix="/api", tags=["cam"])

    return app


# Uvicorn imports this when running `uvicorn wirecam.main:app` from backend/
app = create_app()
