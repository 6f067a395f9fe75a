"""
API error taxonomy

Every failure leaves the API as ``{"success": false, "message": ...}`` with an
optional ``error`` string carrying the underlying exception text.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error


class ValidationError(ApiError):
    """Missing or malformed input"""
    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    """A unique field (email, trackingId) is already taken"""
    status_code = 400


class InternalError(ApiError):
    status_code = 500


def error_response(status_code: int, message: str, error: Optional[str] = None) -> JSONResponse:
    content = {"success": False, "message": message}
    if error is not None:
        content["error"] = error
    return JSONResponse(status_code=status_code, content=content)


@contextmanager
def error_boundary(message: str) -> Iterator[None]:
    """Report anything that is not already an ApiError as an InternalError."""
    try:
        yield
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"{message}: {e}", exc_info=True)
        raise InternalError(message, error=str(e)) from e


def _describe_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        # Drop the "body"/"query" prefix FastAPI puts in front of the field path
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field = ".".join(loc)
        parts.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc.status_code, exc.message, exc.error)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = _describe_validation_errors(exc)
    logger.info(
        "Request validation failed",
        extra={"extra_fields": {"path": request.url.path, "errors": message}},
    )
    return error_response(400, message)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
