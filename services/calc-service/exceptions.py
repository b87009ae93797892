"""
Centralized exception handlers for calc-service.

Maps domain errors to HTTP status codes; the engine and service never see
HTTP concerns.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from calcforest_common.metrics import record_calculation_error
from errors import (
    CalculationError,
    CorruptTreeError,
    DivisionByZeroError,
    InvalidOperationError,
    ParentNotFoundError,
)
from users import InvalidCredentialsError, UsernameTakenError

log = logging.getLogger("calc-service")

SERVICE_NAME = "calc"

STATUS_BY_ERROR: dict[type[Exception], int] = {
    InvalidOperationError: status.HTTP_400_BAD_REQUEST,
    DivisionByZeroError: status.HTTP_400_BAD_REQUEST,
    ParentNotFoundError: status.HTTP_404_NOT_FOUND,
    CorruptTreeError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    UsernameTakenError: status.HTTP_409_CONFLICT,
    InvalidCredentialsError: status.HTTP_401_UNAUTHORIZED,
}


async def calculation_error_handler(request: Request, exc: CalculationError) -> JSONResponse:
    """
    Handler for engine/service errors.
    CorruptTree is an integrity fault and is not echoed to the client.
    """
    status_code = STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    record_calculation_error(SERVICE_NAME, type(exc).__name__)

    if status_code >= 500:
        log.error(f"Integrity error on {request.url.path}: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": "Internal server error"})

    log.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


async def auth_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler for registration/login failures (409, 401).
    """
    log.warning(
        f"Auth failure on {request.url.path}: {exc}",
        extra={"client": request.client.host if request.client else None},
    )
    return JSONResponse(
        status_code=STATUS_BY_ERROR[type(exc)],
        content={"detail": str(exc)},
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Centralized handler for Pydantic validation errors (422).
    Returns standardized error format.
    """
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({"field": field, "message": error["msg"], "type": error["type"]})

    log.warning(
        f"Validation error on {request.url.path}: {len(errors)} error(s)",
        extra={"errors": errors},
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation error", "errors": errors},
    )


async def rate_limit_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler for rate limit exceeded (429).
    """
    log.warning(
        f"Rate limit exceeded on {request.url.path}",
        extra={"client": request.client.host if request.client else None},
    )

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "detail": "Too Many Requests",
            "message": "Rate limit exceeded. Please try again later.",
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Last-resort handler (500); store outages land here.
    """
    log.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CalculationError, calculation_error_handler)
    app.add_exception_handler(UsernameTakenError, auth_error_handler)
    app.add_exception_handler(InvalidCredentialsError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
