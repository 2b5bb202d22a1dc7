from typing import Any, Dict, List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logging import get_logger
from .responses import ResponseBuilder

logger = get_logger()


class ServiceError(Exception):
    """
    Base for errors the API turns into an error envelope.

    Subclasses pick the HTTP status and the `meta.error_type` tag; the error
    code is per instance so callers can be specific.
    """

    default_error_code = "SERVICE_ERROR"
    error_type = "SERVICE_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, error_code: str = ""):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code


class DatabaseError(ServiceError):
    """Raised when the store cannot be read or written."""

    default_error_code = "DB_ERROR"
    error_type = "DATABASE_ERROR"


class BusinessLogicError(ServiceError):
    default_error_code = "BLOC_ERROR"
    error_type = "BUSINESS_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(ServiceError):
    """Raised when a cron or operator call carries the wrong credentials."""

    default_error_code = "AUTH_ERROR"
    error_type = "AUTHENTICATION_ERROR"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication failed", error_code: str = ""):
        super().__init__(message, error_code)


class NotificationDeliveryError(ServiceError):
    """Raised by a notifier when the provider rejects or cannot accept a message."""

    default_error_code = "DELIVERY_ERROR"
    error_type = "NOTIFICATION_DELIVERY_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY


def _format_validation_errors(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]


def setup_error_handlers(app: FastAPI):
    """Register the JSON error envelope for every error the API can surface."""

    @app.exception_handler(ServiceError)
    async def service_exception_handler(request: Request, exc: ServiceError):
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "Service error",
            error_type=exc.error_type,
            error_code=exc.error_code,
            error=exc.message,
        )
        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=exc.status_code,
            meta={"error_type": exc.error_type},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning("HTTP exception", status_code=exc.status_code, detail=exc.detail)
        return ResponseBuilder.error(
            request=request,
            message=str(exc.detail),
            error_code="HTTP_ERROR",
            status_code=exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.warning("Request validation error", path=request.url.path)
        return ResponseBuilder.error(
            request=request,
            message="Request validation failed",
            errors=_format_validation_errors(exc),
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_exception_handler(
        request: Request, exc: ValidationError
    ):
        # A response model failing validation is a server bug
        logger.error("Response validation error", errors=str(exc.errors()))
        return ResponseBuilder.error(
            request=request,
            message="Data validation failed",
            error_code="INTERNAL_VALIDATION_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error("SQLAlchemy error", error=str(exc))
        # Driver messages stay in the logs
        return ResponseBuilder.error(
            request=request,
            message="A database error occurred",
            error_code="DATABASE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "SQLALCHEMY_ERROR"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error("Unhandled exception", error=str(exc))
        return ResponseBuilder.error(
            request=request,
            message="An internal server error occurred",
            error_code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "INTERNAL_ERROR"},
        )
