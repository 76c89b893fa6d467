# backend/lessonbook/errors.py
"""
Unified ``{message, code, details}`` error envelope for every failure path.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.exceptions import DomainException

logger = logging.getLogger(__name__)

_DEFAULT_CODES = {
    400: "BAD_REQUEST",
    401: "NOT_AUTHENTICATED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}


def _envelope(message: str, code: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"message": message, "code": code, "details": jsonable_encoder(details or {})}


def _parse_detail(status_code: int, detail: Any) -> Tuple[str, str, Dict[str, Any]]:
    default_code = _DEFAULT_CODES.get(status_code, "ERROR")
    if isinstance(detail, dict):
        message = detail.get("message") or detail.get("detail") or ""
        code = detail.get("code") if isinstance(detail.get("code"), str) else default_code
        details = detail.get("details")
        return str(message), code, details if isinstance(details, dict) else {}
    if detail is None:
        return "", default_code, {}
    return str(detail), default_code, {}


def _field_errors(exc: RequestValidationError) -> list:
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message, code, details = _parse_detail(exc.status_code, exc.detail)
        return JSONResponse(
            _envelope(message, code, details),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            _envelope("Invalid request", "VALIDATION_ERROR", {"errors": _field_errors(exc)}),
            status_code=400,
        )

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.url.path}: {exc.code} {exc.message}")
        return JSONResponse(_envelope(exc.message, exc.code, exc.details), status_code=exc.status_code)
