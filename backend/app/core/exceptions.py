"""
Application exception classes.

Services and repositories raise these; the API layer turns them into
HTTP responses through the handlers registered in ``register_exception_handlers``.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base exception for all application errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class NotFoundError(AppError):
    """Requested record does not exist."""

    status_code = 404


class ForbiddenError(AppError):
    """User is authenticated but has no access to the record."""

    status_code = 403


class UnauthorizedError(AppError):
    """Missing or invalid credentials."""

    status_code = 401


class ValidationError(AppError):
    """Request data is malformed."""

    status_code = 400


class ConfigurationError(AppError):
    """A required setting for a feature is missing."""

    def __init__(self, setting: str):
        super().__init__(f"{setting} is not configured")


class IntegrationError(AppError):
    """A third-party API call failed."""

    status_code = 502

    def __init__(self, vendor: str, message: str, details: Optional[str] = None):
        self.vendor = vendor
        super().__init__(f"{vendor}: {message}", details)


async def app_error_handler(_: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
