"""Error taxonomy for the booking core.

Services raise these; the handlers registered in ``parkbooking.main`` turn them into
``{"detail": message}`` responses with the matching status code.
"""
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(DomainError):
    status_code = status.HTTP_409_CONFLICT


class Unauthorized(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidSignature(Forbidden):
    """Webhook body does not match its signature. Never retried with the same payload."""


class InvariantViolation(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class GatewayError(DomainError):
    status_code = status.HTTP_502_BAD_GATEWAY


class InsufficientInventory(Conflict):
    def __init__(self, message: str, instance_id: str = ""):
        super().__init__(message)
        self.instance_id = instance_id


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    else:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


EXCEPTION_HANDLERS = {
    DomainError: domain_error_handler,
    Exception: unhandled_error_handler,
}


def register_exception_handlers(app) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
