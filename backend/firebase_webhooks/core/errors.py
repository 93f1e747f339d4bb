import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class WebhookError(Exception):
    """Base class for failures that map to a fixed status code and body."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "internal error"

    def __init__(self, reason: str | None = None):
        # reason is for logs only, the caller always gets ``message``
        self.reason = reason or self.message
        super().__init__(self.reason)


class MissingSignature(WebhookError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "invalid signature"


class SignatureMismatch(WebhookError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "invalid signature"


class RateLimited(WebhookError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "rate limited"

    def __init__(self, retry_after: float, reason: str | None = None):
        super().__init__(reason)
        self.retry_after = retry_after


class UnknownEndpoint(WebhookError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "unknown endpoint"


class MalformedPayload(WebhookError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "malformed payload"


class PayloadTooLarge(WebhookError):
    status_code = 413
    message = "payload too large"


class DownstreamTimeout(WebhookError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "downstream unavailable"


class DownstreamFailure(WebhookError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "downstream unavailable"


def error_response(exc: WebhookError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimited):
        # Retry-After must be a whole number of seconds
        headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after)))}
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.message}, headers=headers
    )


async def webhook_error_handler(request: Request, exc: WebhookError) -> JSONResponse:
    return error_response(exc)


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Routing failures (no such path, wrong method) in the same body shape."""
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return error_response(UnknownEndpoint())
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail).lower()},
        headers=exc.headers,
    )


def internal_error_response(request: Request) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(WebhookError())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return internal_error_response(request)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WebhookError, webhook_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
