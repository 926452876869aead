"""Global error handler: consistent JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from habitz.errors import GENERIC_USER_MESSAGE, ExternalServiceError, HabitzError

logger = structlog.get_logger()

RETRY_AFTER_SECONDS = "5"


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(HabitzError)
    async def domain_exception_handler(request: Request, exc: HabitzError) -> JSONResponse:
        """Map engine errors onto HTTP statuses with a user-facing message."""
        log = logger.warning if exc.status_code >= 500 else logger.info
        log(
            "domain_error",
            path=request.url.path,
            error=exc.__class__.__name__,
            message=exc.message,
            **exc.context,
        )
        headers = {"Retry-After": RETRY_AFTER_SECONDS} if isinstance(exc, ExternalServiceError) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle validation errors with consistent JSON format."""
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": GENERIC_USER_MESSAGE},
        )
