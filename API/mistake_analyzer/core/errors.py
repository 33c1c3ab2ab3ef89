import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base for caller-facing failures. Every subclass carries a human-readable message."""

    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidRequestError(AppError):
    code = "invalid_request"
    status_code = 400


class NoActiveSessionError(AppError):
    code = "no_active_session"
    status_code = 409

    def __init__(self, message: str = "No active test session", *, details=None):
        super().__init__(message, details=details)


class NotFoundError(AppError):
    code = "not_found"
    status_code = 404


class ProviderError(AppError):
    """An external collaborator (question source, persistence, model API) failed or returned an unusable shape."""

    code = "provider_error"
    status_code = 502


class NoResultsError(ProviderError):
    code = "no_results"
    status_code = 404


class InsufficientDataError(AppError):
    code = "insufficient_data"
    status_code = 422


class ParseError(AppError):
    code = "parse_error"
    status_code = 502


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def error_response(
    request: Request,
    *,
    code: str,
    message: str,
    status_code: int,
    details=None,
) -> JSONResponse:
    """The error envelope every failing endpoint returns."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {
                "code": code,
                "message": message,
                "request_id": get_request_id(request),
                "details": details,
            },
        },
    )


_HTTP_STATUS_CODES = {
    401: "unauthorized",
    404: "not_found",
    405: "method_not_allowed",
}


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.warning("%s | request_id=%s | %s", exc.code, get_request_id(request), exc.message)
    return error_response(
        request,
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Also catches routing 404/405 raised by Starlette itself.
    return error_response(
        request,
        code=_HTTP_STATUS_CODES.get(exc.status_code, "http_error"),
        message=str(exc.detail),
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    message = "Request validation failed"
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        if field:
            message = f"{message}: {field} {errors[0].get('msg', 'is invalid')}"
    return error_response(
        request,
        code="validation_error",
        message=message,
        status_code=422,
        details=errors,
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception | path=%s | request_id=%s", request.url.path, get_request_id(request), exc_info=exc)
    return error_response(
        request,
        code="internal_error",
        message="Internal server error",
        status_code=500,
    )


_MAX_REQUEST_ID_LENGTH = 128


async def request_id_middleware(request: Request, call_next):
    incoming = (request.headers.get("x-request-id") or "").strip()
    if not incoming or len(incoming) > _MAX_REQUEST_ID_LENGTH:
        incoming = uuid.uuid4().hex
    request.state.request_id = incoming
    response = await call_next(request)
    response.headers["x-request-id"] = incoming
    return response


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
