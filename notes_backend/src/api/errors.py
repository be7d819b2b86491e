import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from src.api.config import ConfigurationError

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class ApiError(Exception):
    """Base error translated into a JSON {message} response."""
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Bad request"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Validation failed"


class InvalidId(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid note id"


class UserExists(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "User already exists"


class InvalidCredentials(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid credentials"


class NoTokenFound(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Not authorized to access this route - No token found"


class InvalidToken(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid token"


class UserNotFound(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "User not found"


class NoteNotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Note not found"


def _message_for(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return ValidationError.message
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    msg = first.get("msg", ValidationError.message)
    # pydantic prefixes custom validator messages
    msg = msg.removeprefix("Value error, ")
    return f"{field}: {msg}" if field else msg


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message}, headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return await api_error_handler(request, ValidationError(_message_for(exc)))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": "Database error"})


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Server configuration error"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": "Server error"})


# PUBLIC_INTERFACE
def register_error_handlers(app: FastAPI) -> None:
    """Convert every failure at the handler boundary into a {message} body."""
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
