"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nomadnow.domain.directory.exceptions import DirectoryError


def get_request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.detail, "request_id": rid}
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        rid = get_request_id(request)
        errors = [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]
        payload = {"detail": "validation_error", "errors": errors, "request_id": rid}
        return JSONResponse(status_code=422, content=payload)

    @app.exception_handler(DirectoryError)
    async def directory_exc_handler(request: Request, exc: DirectoryError):  # type: ignore[override]
        rid = get_request_id(request)
        return JSONResponse(status_code=503, content={"detail": exc.reason, "request_id": rid})
