"""
FastAPI application entry point for the EcoTrack backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from ecotrack.auth import IdentityVerifier
from ecotrack.config import Settings, get_settings
from ecotrack.db import DbClient
from ecotrack.dependencies import build_db_client, build_identity_verifier
from ecotrack.errors import EcoTrackError
from ecotrack.routes import router

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(EcoTrackError)
    async def handle_ecotrack_error(request: Request, exc: EcoTrackError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        problems = []
        for err in exc.errors():
            location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            problems.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
        return _error(400, "; ".join(problems) or "Invalid request")

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[DbClient] = None,
    verifier: Optional[IdentityVerifier] = None,
) -> FastAPI:
    settings = settings or get_settings()
    db = db or build_db_client(settings)
    verifier = verifier or build_identity_verifier(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            app.state.db.close()

    app = FastAPI(title="EcoTrack Backend (FastAPI)", version="0.1.0", lifespan=lifespan)
    app.state.db = db
    app.state.verifier = verifier
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _install_error_handlers(app)

    @app.get("/")
    def read_root():
        return {"message": "EcoTrack server is running"}

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    uvicorn.run(app, host=settings.host, port=settings.port)
