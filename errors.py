"""Error taxonomy and the handlers that turn it into JSON responses.

Every error body has the shape ``{"error": "<message>"}``.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException

from log import get_logger

logger = get_logger(__name__)


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(StorefrontError):
    status_code = 400


class StockError(StorefrontError):
    status_code = 400


class AuthError(StorefrontError):
    status_code = 401


class ForbiddenError(AuthError):
    status_code = 403


class NotFoundError(StorefrontError):
    status_code = 404


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(400, _format_validation_errors(exc))

    @app.exception_handler(PyMongoError)
    async def store_error_handler(request: Request, exc: PyMongoError):
        logger.error("database_error", path=request.url.path, exc_info=exc)
        return error_response(500, "Database error")
