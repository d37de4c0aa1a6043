"""FastAPI entry point exposing the document repository to the UI layer."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from homecare.core.config import Settings, get_settings
from homecare.core.errors import (
    HomecareError,
    RoleConflict,
    StorageUnavailable,
    UnsupportedSchemaVersion,
    ValidationError,
)
from homecare.core.log import configure_logging
from homecare.repositories import build_store
from homecare.repositories.document_repository import DocumentRepository
from homecare.repositories.schema import CURRENT_VERSION
from homecare.routers import backup as backup_router
from homecare.routers import patients as patients_router
from homecare.routers import records as records_router
from homecare.routers import roles as roles_router

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 422,
    RoleConflict: 409,
    StorageUnavailable: 503,
    UnsupportedSchemaVersion: 500,
}


class NoStoreHeadersMiddleware(BaseHTTPMiddleware):
    """Patient data must not be cached by browsers or proxies."""

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Cache-Control", "no-store")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        return response


async def _homecare_error_handler(request: Request, exc: HomecareError) -> JSONResponse:
    status = ERROR_STATUS.get(type(exc), 500)
    if status >= 500:
        logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    body = {"error": exc.kind, "detail": exc.message}
    if isinstance(exc, RoleConflict):
        body["name"] = exc.name
        body["existingRole"] = exc.existing_role
    return JSONResponse(body, status_code=status)


def create_app(repository: DocumentRepository | None = None, settings: Settings | None = None) -> FastAPI:
    """Factory compatible with uvicorn/gunicorn (``--factory``)."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Home Care Records API")
    app.state.repository = repository or DocumentRepository(build_store(settings))

    allowed_cors = set()
    if settings.app_env != "prod":
        allowed_cors.update(
            {
                "http://localhost:5173",
                "http://127.0.0.1:5173",
                "http://localhost:8000",
                "http://127.0.0.1:8000",
            }
        )
    if allowed_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=sorted(allowed_cors),
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "OPTIONS"],
            allow_headers=["*"],
        )
    app.add_middleware(NoStoreHeadersMiddleware)
    app.add_exception_handler(HomecareError, _homecare_error_handler)

    @app.get("/health")
    async def health():
        return {"ok": True, "schemaVersion": CURRENT_VERSION, "backend": settings.storage_backend}

    app.include_router(patients_router.router)
    app.include_router(records_router.router)
    app.include_router(roles_router.router)
    app.include_router(backup_router.router)
    return app
