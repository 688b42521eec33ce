import time
import logging
from typing import Any, Optional
from uuid import uuid4
from fastapi import Request
from fastapi.responses import JSONResponse
from debriefer.config import settings

logger = logging.getLogger("debriefer.api")

_BODY_METHODS = {"POST", "PUT", "PATCH"}


def error_response(request: Request, status_code: int, error: str, detail: Any, ids: Optional[dict] = None) -> JSONResponse:
    payload = {"error": error, "detail": detail}
    if ids:
        payload["ids"] = ids
    rid = getattr(request.state, "request_id", None)
    if rid:
        payload["request_id"] = rid
    return JSONResponse(status_code=status_code, content=payload)


async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or uuid4().hex
    request.state.request_id = rid
    response = await call_next(request)
    response.headers["x-request-id"] = rid
    return response


async def enforce_body_size(request: Request, call_next):
    if request.method not in _BODY_METHODS:
        return await call_next(request)
    limit_mb = settings.security.max_request_mb
    header_val = request.headers.get("content-length")
    try:
        too_large = bool(header_val) and int(header_val) > limit_mb * 1024 * 1024
    except ValueError:
        too_large = False
    if too_large:
        return error_response(request, 413, "request_too_large", f"Max request size is {limit_mb}MB")
    return await call_next(request)


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        status = getattr(response, "status_code", 500)
        level = logging.WARNING if status >= 500 else logging.INFO
        logger.log(
            level,
            "request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                "request_id": getattr(request.state, "request_id", None),
            },
        )
