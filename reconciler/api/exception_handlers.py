"""Map resolver faults onto HTTP responses.

- request validation errors  -> 400 with per-field details
- ``InvariantFault``          -> 500, logged with traceback
- ``SQLAlchemyError``         -> 500, logged with traceback

Server-side failures never echo their message to the client.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from reconciler.core.errors import InvariantFault, categorize

logger = logging.getLogger(__name__)

_INTERNAL_ERROR = {"error": "Internal server error"}


def _field_name(loc: tuple) -> str:
    parts = [str(part) for part in loc if part != "body"]
    return ".".join(parts)


async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": _field_name(tuple(error.get("loc", ()))), "message": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Validation failed", "details": details})


async def server_fault_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled %s fault on %s %s",
        categorize(exc).value,
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content=_INTERNAL_ERROR)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(InvariantFault, server_fault_handler)
    app.add_exception_handler(SQLAlchemyError, server_fault_handler)
