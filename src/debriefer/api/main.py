import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from debriefer.config import settings
from debriefer.exceptions import (
    DebrieferError,
    PersistenceError,
    ReferentialError,
    SaveInProgressError,
    StaleStateError,
    UnknownBucketError,
)
from debriefer.api import deps
from debriefer.api.middleware import add_request_id, enforce_body_size, error_response, log_requests

# Routers
from debriefer.api.routers import ledger, summary, system, units

# Configure logging
logging.basicConfig(level=getattr(logging, settings.logging.level.upper(), logging.INFO))
logger = logging.getLogger("debriefer.api")

# Domain errors that are the caller's to fix, by HTTP status.
_CLIENT_ERRORS: list[tuple[type[DebrieferError], int, str]] = [
    (UnknownBucketError, 400, "unknown_bucket"),
    (SaveInProgressError, 409, "save_in_progress"),
    (StaleStateError, 409, "stale_state"),
]


def create_app(db_path: Optional[Path] = None) -> FastAPI:
    """
    Factory to build the FastAPI application.
    Passing db_path points the shared settings at another database and drops cached services.
    """
    if db_path:
        settings.paths.db_path = Path(db_path)
        deps.reset()

    app = FastAPI(title=f"{settings.app.name} API", version=settings.app.version)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Custom Middleware
    app.middleware("http")(add_request_id)
    app.middleware("http")(enforce_body_size)
    if settings.logging.log_requests:
        app.middleware("http")(log_requests)

    app.include_router(system.router)
    app.include_router(units.router)
    app.include_router(ledger.router)
    app.include_router(summary.router)

    @app.exception_handler(ReferentialError)
    async def referential_exception_handler(request: Request, exc: ReferentialError):
        # Unknown ids in a path are a missing resource; in a write they are bad input.
        status = 404 if request.method == "GET" else 422
        return error_response(request, status, "unknown_reference", str(exc), exc.ids)

    @app.exception_handler(PersistenceError)
    async def persistence_exception_handler(request: Request, exc: PersistenceError):
        logger.error(
            "persistence failure",
            extra={"operation": exc.operation, "ids": exc.ids, "request_id": getattr(request.state, "request_id", None)},
        )
        return error_response(request, 503, "persistence_error", str(exc), exc.ids)

    @app.exception_handler(DebrieferError)
    async def domain_exception_handler(request: Request, exc: DebrieferError):
        for error_type, status, code in _CLIENT_ERRORS:
            if isinstance(exc, error_type):
                return error_response(request, status, code, str(exc), exc.ids)
        logger.exception("Unhandled domain error", extra={"path": str(request.url), "operation": exc.operation})
        return error_response(request, 500, "internal_error", "Unexpected server error")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        if isinstance(exc, StarletteHTTPException):
            return error_response(request, exc.status_code, "http_error", exc.detail)

        rid = getattr(request.state, "request_id", None)
        logger.exception("Unhandled error", extra={"path": str(request.url), "request_id": rid})
        return error_response(request, 500, "internal_error", "Unexpected server error")

    return app


# Module-level app for uvicorn entrypoint
app = create_app()
