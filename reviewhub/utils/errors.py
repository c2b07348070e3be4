import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logging import get_logger

logger = get_logger()


class ReviewHubError(Exception):
    """Base class for errors that must reach the end user."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code

    def to_payload(self) -> Dict[str, Any]:
        return {"message": self.message, "error_code": self.error_code}


class ValidationError(ReviewHubError):
    """Missing or malformed input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"


class AuthenticationError(ReviewHubError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication failed", error_code: Optional[str] = None):
        super().__init__(message, error_code)


class AuthorizationError(ReviewHubError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"

    def __init__(self, message: str = "Not authorized", error_code: Optional[str] = None):
        super().__init__(message, error_code)


class NotFoundError(ReviewHubError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found", error_code: Optional[str] = None):
        super().__init__(message, error_code)


class ConflictError(ReviewHubError):
    """The resource is in a state that forbids the operation.

    ``current_state`` is returned to the client so it can render e.g.
    "already approved" instead of a generic failure.
    """

    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"

    def __init__(self, message: str, current_state: Optional[str] = None, error_code: Optional[str] = None):
        super().__init__(message, error_code)
        self.current_state = current_state

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.current_state is not None:
            payload["current_state"] = self.current_state
        return payload


def error_response(status_code: int, payload: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=payload)


def setup_error_handlers(app: FastAPI):
    """Setup custom error handlers."""

    @app.exception_handler(ReviewHubError)
    async def reviewhub_exception_handler(request: Request, exc: ReviewHubError):
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        return error_response(exc.status_code, exc.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
        return error_response(
            exc.status_code, {"message": str(exc.detail), "error_code": "HTTP_ERROR"}
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.error(f"Request Validation Error: {exc.errors()}")

        formatted_errors = []
        for error in exc.errors():
            field_path = " -> ".join(str(loc) for loc in error["loc"])
            formatted_errors.append(
                {"field": field_path, "message": error["msg"], "type": error["type"]}
            )

        return error_response(
            status.HTTP_400_BAD_REQUEST,
            {
                "message": "Request validation failed",
                "error_code": "VALIDATION_ERROR",
                "errors": formatted_errors,
            },
        )

    @app.exception_handler(PyMongoError)
    async def mongo_exception_handler(request: Request, exc: PyMongoError):
        logger.error(f"MongoDB Error: {str(exc)}")

        # Don't expose internal database errors to users
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"message": "A database error occurred", "error_code": "DATABASE_ERROR"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other unhandled exceptions"""
        logger.error(f"Unhandled Exception: {str(exc)}")
        logger.error(f"Traceback: {traceback.format_exc()}")

        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"message": "Server error", "error_code": "INTERNAL_ERROR"},
        )
