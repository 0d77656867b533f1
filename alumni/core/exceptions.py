"""
Exceptions

Business exceptions and the global exception handlers
"""
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from loguru import logger

from .response import error_response


class AppException(Exception):
    """Base application exception"""

    def __init__(
        self,
        message: str = "Internal server error",
        code: int = 500,
        data: dict = None
    ):
        self.message = message
        self.code = code
        self.data = data
        super().__init__(self.message)


class NotFoundException(AppException):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message=message, code=404)


class BadRequestException(AppException):
    def __init__(self, message: str = "Bad request", data: dict = None):
        super().__init__(message=message, code=400, data=data)


class AuthenticationException(AppException):
    def __init__(self, message: str = "Unauthenticated"):
        super().__init__(message=message, code=401)


class PaymentRequiredException(AppException):
    def __init__(self, message: str = "Payment failed", data: dict = None):
        super().__init__(message=message, code=402, data=data)


class PermissionDeniedException(AppException):
    def __init__(self, message: str = "This action is unauthorized"):
        super().__init__(message=message, code=403)


class ConflictException(AppException):
    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message=message, code=409)


class UnprocessableException(AppException):
    """Business-rule validation failure, reported like a field validation error"""

    def __init__(self, message: str = "The given data was invalid", errors: dict = None):
        super().__init__(message=message, code=422, data={"errors": errors or {}})


class TooManyRequestsException(AppException):
    def __init__(self, message: str = "Too many requests", retry_after: int = None):
        super().__init__(
            message=message,
            code=429,
            data={"retry_after": retry_after} if retry_after is not None else None,
        )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning("AppException: {} | Path: {}", exc.message, request.url.path)
    return JSONResponse(
        status_code=exc.code,
        content=error_response(message=exc.message, code=exc.code, data=exc.data)
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning("HTTPException: {} | Path: {}", exc.detail, request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(message=str(exc.detail), code=exc.status_code),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    error_messages = []
    for error in errors:
        loc = " -> ".join(str(l) for l in error["loc"])
        error_messages.append(f"{loc}: {error['msg']}")

    message = "; ".join(error_messages)
    logger.warning("ValidationError: {} | Path: {}", message, request.url.path)

    return JSONResponse(
        status_code=422,
        content=error_response(
            message="The given data was invalid",
            code=422,
            data={"errors": jsonable_encoder(errors)}
        )
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled Exception: {} | Path: {}", exc, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_response(message="Internal server error", code=500)
    )
