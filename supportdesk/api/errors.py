"""Translate domain failures into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from supportdesk.support.errors import SupportError

logger = logging.getLogger(__name__)


async def _support_error_handler(request: Request, exc: SupportError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"kind": exc.kind, "detail": exc.message})


async def _storage_error_handler(request: Request, exc: SQLAlchemyError | OSError) -> JSONResponse:
    logger.exception("Storage failure while handling %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=503,
        content={"kind": "dependency_failure", "detail": "Storage is temporarily unavailable"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SupportError, _support_error_handler)
    app.add_exception_handler(SQLAlchemyError, _storage_error_handler)
    app.add_exception_handler(OSError, _storage_error_handler)
