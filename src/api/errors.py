"""
Domain error mapping - AccountError families to HTTP responses.

Domain errors surface with their stable code in "detail". Infrastructure
failures are logged with their cause and reported as a generic
INTERNAL_ERROR so no store or database detail leaks to the caller.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.domain.exceptions import (
    AccountError,
    AuthError,
    AuthTokenError,
    CodecError,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    TransientInfraError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; first matching family wins
STATUS_BY_FAMILY: tuple[tuple[type[AccountError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthTokenError, status.HTTP_401_UNAUTHORIZED),
    (AuthError, status.HTTP_401_UNAUTHORIZED),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
)


def status_for(error: AccountError) -> int:
    for family, code in STATUS_BY_FAMILY:
        if isinstance(error, family):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
    """Translate a domain error into {"detail": <code>, "message": <detail>}."""
    if isinstance(exc, (TransientInfraError, CodecError)):
        logger.error("Infrastructure failure on %s %s: %r", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
            if isinstance(exc, TransientInfraError)
            else status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": TransientInfraError.code},
        )

    http_status = status_for(exc)
    logger.info("%s %s -> %d %s", request.method, request.url.path, http_status, exc.code)
    content = {"detail": exc.code}
    if exc.detail:
        content["message"] = exc.detail
    return JSONResponse(status_code=http_status, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AccountError, account_error_handler)
