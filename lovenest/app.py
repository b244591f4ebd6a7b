"""
FastAPI application entry point for the LoveNest API.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lovenest import auth
from lovenest.config import Settings, get_settings
from lovenest.datastore import Datastore, DatastoreError, build_datastore
from lovenest.resources import build_registry, register_resources
from lovenest.schemas import HealthResponse

logger = logging.getLogger(__name__)


async def _datastore_error_handler(request: Request, exc: DatastoreError) -> JSONResponse:
    logger.exception(
        "Datastore failure on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


def create_app(
    settings: Settings | None = None, datastore: Datastore | None = None
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="LoveNest API", version="0.1.0")
    app.state.settings = settings
    app.state.datastore = datastore if datastore is not None else build_datastore(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(DatastoreError, _datastore_error_handler)

    @app.get(f"{settings.api_prefix}/health", response_model=HealthResponse)
    def health():
        return HealthResponse(status="ok")

    app.include_router(auth.router, prefix=f"{settings.api_prefix}/auth", tags=["auth"])
    register_resources(
        app, build_registry(settings.public_collections), prefix=settings.api_prefix
    )
    return app


app = create_app()
