"""Translate exceptions into the JSON error envelope."""

import logging
from collections.abc import Sequence
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from plantvision.core.db_client import DatabaseError
from plantvision.core.errors import ErrorCode, ErrorResponse, PlantVisionError


logger = logging.getLogger(__name__)


def _validation_details(errors: Sequence[Any]) -> list[dict]:
    return [
        {"field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"), "message": error.get("msg")}
        for error in errors
    ]


def _error(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def handle_plantvision_error(request: Request, exc: PlantVisionError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", extra={"path": request.url.path, "code": exc.code, "error": exc.message})
    return _error(exc.status_code, exc.to_response())


async def handle_validation_error(request: Request, exc: RequestValidationError | ValidationError) -> JSONResponse:
    logger.info("request_validation_failed", extra={"path": request.url.path})
    body = ErrorResponse(
        error="Validation failed", code=ErrorCode.ERR_INVALID_INPUT, details=_validation_details(exc.errors())
    )
    return _error(400, body)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", extra={"path": request.url.path, "error_type": type(exc).__name__})
    return _error(500, ErrorResponse(error="Internal server error", code=ErrorCode.ERR_UNKNOWN))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PlantVisionError, handle_plantvision_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(ValidationError, handle_validation_error)
    app.add_exception_handler(DatabaseError, handle_unexpected_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
