"""JSON error responses for the files API.

Every failure renders as ``{code, message, details, request_id}``.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from stashkit.api.files import STATUS_BY_KIND
from stashkit.errors import StorageError

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _error_body(code: str, message: str, request: Request, details: object = None) -> dict:
    request_id = getattr(request.state, "request_id", None) or "unknown"
    return {"code": code, "message": message, "details": details, "request_id": request_id}


def _validation_details(exc: RequestValidationError) -> list[dict]:
    # Inputs are dropped: for uploads they are raw file bytes.
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


def register_error_handlers(app) -> None:
    @app.middleware("http")
    async def assign_request_id(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        # Routes raise dict details carrying the storage error code.
        detail = exc.detail
        if isinstance(detail, dict):
            code = str(detail.get("code") or f"http_{exc.status_code}")
            body = _error_body(code, str(detail.get("message") or ""), request, detail.get("details"))
        else:
            body = _error_body(f"http_{exc.status_code}", str(detail or "Request failed"), request)
        return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))

    @app.exception_handler(StorageError)
    async def handle_storage_error(request: Request, exc: StorageError):
        logger.warning("storage_error code=%s path=%s", exc.code.value, request.url.path)
        return JSONResponse(
            status_code=STATUS_BY_KIND.get(exc.kind, 500),
            content=_error_body(exc.code.value, exc.message, request),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=_error_body("validation_error", "Validation error", request, _validation_details(exc)),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body("internal_error", "Internal server error", request))
