"""Domain exceptions for the coverage engine.

Services raise these, never HTTPException. The API layer turns them into
JSON responses through ``register_exception_handlers``.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class CoverageError(Exception):
    """Base class for coverage engine errors."""

    code: str = "coverage_error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message or self.__class__.__name__)
        if code is not None:
            self.code = code
        self.message = message or self.__class__.__name__
        self.details = details


class ConfigurationError(CoverageError):
    """Plan or template data that cannot be resolved into coverage."""

    code = "configuration_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PlanMismatchError(ConfigurationError):
    """Enrolment no longer matches the plan or level it was invoiced against."""

    code = "plan_mismatch"


class NotFoundError(CoverageError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class BookingConflictError(CoverageError):
    """A concurrent booking took the seat first. Safe for the caller to retry."""

    code = "booking_conflict"
    status_code = status.HTTP_409_CONFLICT


class CoverageWouldShortenError(CoverageError):
    """A class or plan change would move paid-through backwards."""

    code = "coverage_would_shorten"
    status_code = status.HTTP_409_CONFLICT


class ValidationError(CoverageError):
    """Request data that the engine cannot act on."""

    code = "validation_error"


async def coverage_error_handler(request: Request, exc: CoverageError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "message": exc.message, "details": exc.details},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach domain error handlers to the app."""
    app.add_exception_handler(CoverageError, coverage_error_handler)
