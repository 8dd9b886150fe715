import logging
import uuid

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "bad_request",
    404: "not_found",
    409: "conflict",
    503: "service_unavailable",
}


class SpeechCoachError(Exception):
    """Base for errors that map onto a fixed HTTP status and error code."""

    status_code = 500
    code = "internal_error"
    public_message: str | None = None


class SessionNotFoundError(SpeechCoachError, LookupError):
    status_code = 404
    code = "session_not_found"

    def __init__(self, session_id: str):
        super().__init__(f"Session '{session_id}' not found.")
        self.session_id = session_id


class ReasoningServiceError(SpeechCoachError, RuntimeError):
    """The reasoning service could not produce a reply."""

    status_code = 502
    code = "reasoning_service_error"
    public_message = "AI service error. Please try again."


class PlanGenerationError(SpeechCoachError, RuntimeError):
    """The plan model output could not be turned into a plan."""

    code = "plan_generation_failed"


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


async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(
        request,
        code=HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
        message=str(exc.detail),
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        request,
        code="validation_error",
        message="Request validation failed",
        status_code=422,
        details=exc.errors(),
    )


async def speechcoach_error_handler(request: Request, exc: SpeechCoachError):
    if exc.status_code >= 500:
        logger.warning("%s | request_id=%s | %s", exc.code, get_request_id(request), exc)
    return error_response(
        request,
        code=exc.code,
        message=exc.public_message or str(exc),
        status_code=exc.status_code,
        details=str(exc) if exc.public_message else None,
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception | request_id=%s", get_request_id(request), exc_info=exc)
    return error_response(
        request,
        code="internal_error",
        message="Internal server error",
        status_code=500,
    )


async def request_id_middleware(request: Request, call_next):
    request.state.request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    response = await call_next(request)
    response.headers["x-request-id"] = request.state.request_id
    return response
