"""Domain error taxonomy.

Services raise these; ``register_error_handlers`` renders them as
``{"success": false, "error": <message>, "code": <code>}`` with the
matching HTTP status. Request-shape problems never get here - FastAPI
answers those with a 422 before any handler runs.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class CaseOSError(Exception):
    """Base class for errors that carry a machine-readable code."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(CaseOSError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"


class NotFoundError(CaseOSError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class AuthorizationError(CaseOSError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "ACCESS_DENIED"


class InvalidTransitionError(CaseOSError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "INVALID_TRANSITION"


class ConcurrencyError(CaseOSError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "CONCURRENT_MODIFICATION"


class ConsistencyError(CaseOSError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "CONSISTENCY_ERROR"


async def _handle_case_os_error(request: Request, exc: CaseOSError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: [%s] %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CaseOSError, _handle_case_os_error)
