"""API error helpers and exception handlers."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import (
    CredentialMissingError,
    CVAssistantError,
    DuplicateNameError,
    NotFoundError,
    PatchError,
    StorageError,
    TurnInProgressError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (DuplicateNameError, 409),
    (TurnInProgressError, 409),
    (ValidationError, 400),
    (PatchError, 400),
    (CredentialMissingError, 401),
    (UpstreamError, 502),
    (StorageError, 500),
)


class APIError(Exception):
    """Application-level API error with status/code mapping."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}

    @classmethod
    def from_domain(cls, exc: CVAssistantError) -> "APIError":
        return cls(status_code=status_for(exc), code=exc.code, message=exc.message, details=exc.details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


def status_for(exc: CVAssistantError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def api_error_handler(_: Request, exc: APIError) -> JSONResponse:
    """Render contract-compliant error response."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def domain_error_handler(_: Request, exc: CVAssistantError) -> JSONResponse:
    """Translate errors raised by the stores and the orchestrator."""
    err = APIError.from_domain(exc)
    if err.status_code >= 500:
        logger.error("request failed code=%s message=%s", exc.code, exc.message)
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """Normalize FastAPI validation errors to API contract shape."""
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "code": "BAD_REQUEST",
                "message": "Invalid request payload",
                "details": {"errors": exc.errors()},
            }
        },
    )
