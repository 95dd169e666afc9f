"""
Error taxonomy for the directory API and its mapping onto HTTP responses.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    """Base class for errors that map onto a client-visible status code."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {"message": self.message}


class AuthenticationError(DirectoryError):
    status_code = 401

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.reason = reason

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.reason:
            payload["error"] = self.reason
        return payload


class AuthorizationError(DirectoryError):
    status_code = 403


class NotFoundError(DirectoryError):
    status_code = 404


class ValidationFailure(DirectoryError):
    status_code = 400

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def to_payload(self) -> dict[str, Any]:
        return {"message": self.message, "errors": self.errors}


class InvalidIdentifierError(DirectoryError):
    status_code = 400


class CompanyAlreadyExistsError(DirectoryError):
    """Raised by the storage layer when an owner already has a company."""

    status_code = 400

    def __init__(self, message: str = "User already has a company"):
        super().__init__(message)


def field_errors(errors: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flatten pydantic error dicts into the client-facing field error list."""
    return [
        {
            "path": [part for part in err.get("loc", ()) if part != "body"],
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in errors
    ]


async def _directory_error_handler(request: Request, exc: DirectoryError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request data", "errors": field_errors(exc.errors())},
    )


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DirectoryError, _directory_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
