"""Application error taxonomy and FastAPI handlers rendering it."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("anesguardian.errors")


class AppError(Exception):
    """Base class for errors that map onto an HTTP status and a stable code."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str,
        *,
        is_operational: bool = True,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.is_operational = is_operational
        self.headers = headers

    def to_payload(self) -> dict[str, object]:
        return {"status": "error", "code": self.code, "message": self.message}


class InvalidInputError(AppError):
    def __init__(
        self,
        message: str = "Request payload failed validation",
        errors: list[dict[str, str]] | None = None,
    ) -> None:
        super().__init__(status.HTTP_400_BAD_REQUEST, message, "VALIDATION_ERROR")
        self.errors = errors or []

    def to_payload(self) -> dict[str, object]:
        payload = super().to_payload()
        if self.errors:
            payload["errors"] = self.errors
        return payload


class PayloadTooDeepError(AppError):
    def __init__(self, max_depth: int) -> None:
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            f"Request payload nests deeper than {max_depth} levels",
            "PAYLOAD_TOO_DEEP",
        )
        self.max_depth = max_depth


class FileUploadError(InvalidInputError):
    def __init__(
        self,
        message: str = "File upload rejected",
        errors: list[dict[str, str]] | None = None,
    ) -> None:
        super().__init__(message, errors)
        self.code = "FILE_UPLOAD_ERROR"


class NotFoundError(AppError):
    def __init__(self, resource: str = "Resource") -> None:
        super().__init__(status.HTTP_404_NOT_FOUND, f"{resource} not found", "NOT_FOUND")


class RateLimitExceededError(AppError):
    def __init__(
        self,
        *,
        retry_after_seconds: int,
        code: str = "RATE_LIMIT_EXCEEDED",
        message: str = "Too many requests, please try again later",
        limit: int | None = None,
    ) -> None:
        headers = {"Retry-After": str(retry_after_seconds)}
        if limit is not None:
            headers["RateLimit-Limit"] = str(limit)
            headers["RateLimit-Remaining"] = "0"
            headers["RateLimit-Reset"] = str(retry_after_seconds)
        super().__init__(status.HTTP_429_TOO_MANY_REQUESTS, message, code, headers=headers)
        self.retry_after_seconds = retry_after_seconds


def is_operational_error(exc: BaseException) -> bool:
    """Return True for expected errors that should not page anyone."""

    return isinstance(exc, AppError) and exc.is_operational


def _error_details(exc: ValidationError | RequestValidationError) -> list[dict[str, str]]:
    details: list[dict[str, str]] = []
    for err in exc.errors():
        loc = [str(item) for item in err["loc"] if item != "body"]
        details.append(
            {
                "field": ".".join(loc) or "body",
                "message": err["msg"],
                "type": err["type"],
            }
        )
    return details


def invalid_input_from_pydantic(exc: ValidationError) -> InvalidInputError:
    return InvalidInputError(errors=_error_details(exc))


def register_exception_handlers(app: FastAPI, *, expose_details: bool) -> None:
    """Render every failure as ``{"status": "error", "code": ..., "message": ...}``."""

    @app.exception_handler(AppError)
    async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if is_operational_error(exc):
            logger.warning(
                "operational_error code=%s status=%s method=%s path=%s message=%s",
                exc.code,
                exc.status_code,
                request.method,
                request.url.path,
                exc.message,
            )
        else:
            logger.error(
                "programming_error code=%s status=%s method=%s path=%s message=%s",
                exc.code,
                exc.status_code,
                request.method,
                request.url.path,
                exc.message,
                exc_info=exc,
            )
        payload = exc.to_payload()
        if not exc.is_operational and not expose_details:
            payload["message"] = "Internal server error"
        return JSONResponse(
            status_code=exc.status_code,
            content=payload,
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        error = InvalidInputError(errors=_error_details(exc))
        logger.warning(
            "request_validation_failed method=%s path=%s errors=%s",
            request.method,
            request.url.path,
            len(error.errors),
        )
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(
        request: Request,
        exc: StarletteHTTPException,
    ) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            content = NotFoundError("Route").to_payload()
        else:
            content = {
                "status": "error",
                "code": f"HTTP_{exc.status_code}",
                "message": str(exc.detail),
            }
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unexpected_error method=%s path=%s error=%s",
            request.method,
            request.url.path,
            exc,
        )
        message = str(exc) if expose_details else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "code": "INTERNAL_ERROR", "message": message},
        )
