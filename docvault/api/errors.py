"""Translation of domain errors into structured HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import DocVaultError, TransactionError

logger = logging.getLogger(__name__)


def error_body(code: str, message: str, **extra: object) -> dict[str, object]:
    return {"error": {"code": code, "message": message, **extra}}


async def handle_docvault_error(request: Request, exc: DocVaultError) -> JSONResponse:
    if exc.server_fault:
        cause = exc.cause if isinstance(exc, TransactionError) else exc.__cause__
        logger.error("%s %s failed: %s (cause: %r)", request.method, request.url.path, exc.message, cause)
    headers = {"WWW-Authenticate": "Bearer"} if exc.http_status == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.http_status,
        content=error_body(exc.code, exc.message),
        headers=headers,
    )


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("validation_error", "request is missing or has malformed fields", fields=fields),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DocVaultError, handle_docvault_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
