"""Global error handling: structured API errors and the catch-all middleware"""
from typing import Any, Optional
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import traceback
import logging

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error surfaced to API callers as {"error": {code, message, details?}}"""

    def __init__(self, status_code: int, code: str, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details

    def to_body(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"error": error}


def unauthorized(message: str = "Not authenticated") -> ApiError:
    return ApiError(status.HTTP_401_UNAUTHORIZED, "unauthorized", message)


def forbidden(message: str = "Access denied") -> ApiError:
    return ApiError(status.HTTP_403_FORBIDDEN, "forbidden", message)


def bad_request(message: str, details: Optional[Any] = None) -> ApiError:
    return ApiError(status.HTTP_400_BAD_REQUEST, "bad_request", message, details)


def not_found(message: str) -> ApiError:
    return ApiError(status.HTTP_404_NOT_FOUND, "not_found", message)


def internal_error(message: str = "An unexpected error occurred") -> ApiError:
    return ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", message)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed query params and bodies share the bad_request code
    details = [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg")}
        for err in exc.errors()
    ]
    error = bad_request("Invalid request parameters", details)
    return JSONResponse(status_code=error.status_code, content=error.to_body())


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Global error handler middleware"""

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except Exception as exc:
            logger.error(f"Unhandled error: {exc}")
            logger.error(traceback.format_exc())

            message = str(exc) if logger.isEnabledFor(logging.DEBUG) else "An unexpected error occurred"
            error = internal_error(message)
            return JSONResponse(status_code=error.status_code, content=error.to_body())


def setup_error_handling(app: FastAPI):
    """
    Register structured error handlers and the catch-all middleware

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_middleware(ErrorHandlerMiddleware)
