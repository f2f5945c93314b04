"""FastAPI entrypoint for the AnesGuardian request-boundary API."""

import logging
from time import monotonic
from typing import Any, Awaitable, Callable

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from anesguardian.config import get_settings
from anesguardian.errors import (
    InvalidInputError,
    PayloadTooDeepError,
    RateLimitExceededError,
    register_exception_handlers,
)
from anesguardian.rate_limit import (
    RateLimitBackendError,
    RateLimitPolicy,
    build_policies,
    create_rate_limiter,
)
from anesguardian.sanitization import is_secure_object, sanitize_html, sanitize_input
from anesguardian.security import STRIPPED_RESPONSE_HEADERS, build_security_headers, cors_options
from anesguardian.validation import RichTextPayload, check_upload, validate_contact

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
app = FastAPI(title=settings.app_name, version=settings.app_version)
started_at_monotonic = monotonic()
rate_limit_logger = logging.getLogger("anesguardian.rate_limit")
rate_limiter, rate_limiter_is_shared = create_rate_limiter(settings, logger=rate_limit_logger)
if settings.environment.lower() not in {"development", "test"} and not rate_limiter_is_shared:
    raise RuntimeError(
        "Shared rate limiting is required outside development/test. "
        "Configure REDIS_URL or RATE_LIMIT_BACKEND=redis."
    )
rate_limit_policies = build_policies(settings)
security_logger = logging.getLogger("anesguardian.security")
request_logger = logging.getLogger("anesguardian.request")
security_headers = build_security_headers(production=settings.is_production)

register_exception_handlers(app, expose_details=not settings.is_production)


@app.middleware("http")
async def request_size_limit_middleware(request: Request, call_next: Any) -> Response:
    limit = settings.max_request_body_bytes
    if limit > 0 and request.method.upper() not in {"GET", "HEAD", "OPTIONS"}:
        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                declared_size = int(content_length)
            except ValueError:
                return JSONResponse(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    content={
                        "status": "error",
                        "code": "INVALID_CONTENT_LENGTH",
                        "message": "Invalid Content-Length header",
                    },
                )
            if declared_size > limit:
                security_logger.warning(
                    "payload_too_large path=%s declared_bytes=%s limit=%s",
                    request.url.path,
                    declared_size,
                    limit,
                )
                return JSONResponse(
                    status_code=status.HTTP_413_CONTENT_TOO_LARGE,
                    content={
                        "status": "error",
                        "code": "PAYLOAD_TOO_LARGE",
                        "message": "Request payload too large",
                    },
                )

    return await call_next(request)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next: Any) -> Response:
    response = await call_next(request)
    for name, value in security_headers.items():
        response.headers.setdefault(name, value)
    for name in STRIPPED_RESPONSE_HEADERS:
        if name in response.headers:
            del response.headers[name]
    return response


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next: Any) -> Response:
    started = monotonic()
    path = request.url.path
    method = request.method.upper()
    try:
        response = await call_next(request)
    except Exception:
        latency_ms = int((monotonic() - started) * 1000)
        request_logger.exception(
            "request method=%s path=%s status=%s latency_ms=%s",
            method,
            path,
            500,
            latency_ms,
        )
        raise

    latency_ms = int((monotonic() - started) * 1000)
    request_logger.info(
        "request method=%s path=%s status=%s latency_ms=%s",
        method,
        path,
        response.status_code,
        latency_ms,
    )
    return response


app.add_middleware(CORSMiddleware, **cors_options(settings))


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await rate_limiter.close()


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def _enforce_rate_limit(request: Request, response: Response, policy: RateLimitPolicy) -> None:
    ip = _client_ip(request)
    try:
        result = await rate_limiter.check(
            key=f"{policy.name}:ip:{ip}",
            limit=policy.limit,
            window_seconds=policy.window_seconds,
        )
    except RateLimitBackendError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Rate limiting unavailable",
        ) from exc

    if result.allowed:
        response.headers["RateLimit-Limit"] = str(policy.limit)
        response.headers["RateLimit-Remaining"] = str(result.remaining)
        response.headers["RateLimit-Reset"] = str(result.reset_after_seconds)
        return

    rate_limit_logger.warning(
        "rate_limited policy=%s source_ip=%s path=%s retry_after=%s",
        policy.name,
        ip,
        request.url.path,
        result.retry_after_seconds,
    )
    raise RateLimitExceededError(
        retry_after_seconds=result.retry_after_seconds,
        code=policy.error_code,
        message=policy.message,
        limit=policy.limit,
    )


def rate_limited(policy_name: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Dependency enforcing the named policy per client IP."""

    async def _dependency(request: Request, response: Response) -> None:
        await _enforce_rate_limit(request, response, rate_limit_policies[policy_name])

    return _dependency


async def sanitized_json_body(request: Request) -> Any:
    """
    Decode the JSON body, reject over-nested payloads and sanitize the rest.

    Raises:
        InvalidInputError: when the body is not valid JSON.
        PayloadTooDeepError: when nesting exceeds ``max_payload_depth``.
    """

    max_depth = settings.max_payload_depth
    try:
        payload = await request.json()
    except RecursionError as exc:
        security_logger.warning("payload_rejected reason=recursion path=%s", request.url.path)
        raise PayloadTooDeepError(max_depth) from exc
    except ValueError as exc:
        raise InvalidInputError("Request body is not valid JSON") from exc

    if not is_secure_object(payload, max_depth):
        security_logger.warning(
            "payload_rejected reason=depth path=%s max_depth=%s source_ip=%s",
            request.url.path,
            max_depth,
            _client_ip(request),
        )
        raise PayloadTooDeepError(max_depth)

    return sanitize_input(payload)


@app.get("/api/v1", tags=["meta"])
async def api_root() -> dict[str, str]:
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "ok",
    }


@app.get("/api/v1/health", tags=["health"])
async def basic_health() -> dict[str, int | str]:
    return {
        "status": "healthy",
        "version": settings.app_version,
        "rate_limiter": "shared" if rate_limiter_is_shared else "local",
        "uptime_seconds": int(monotonic() - started_at_monotonic),
    }


@app.post(
    "/api/v1/sanitize",
    tags=["sanitization"],
    dependencies=[Depends(rate_limited("api"))],
)
async def sanitize_payload(payload: Any = Depends(sanitized_json_body)) -> dict[str, Any]:
    return {"data": payload}


@app.post(
    "/api/v1/sanitize/html",
    tags=["sanitization"],
    dependencies=[Depends(rate_limited("api"))],
)
async def sanitize_rich_text(body: RichTextPayload) -> dict[str, str]:
    return {"html": sanitize_html(body.html)}


@app.post(
    "/api/v1/uploads/check",
    tags=["uploads"],
    dependencies=[Depends(rate_limited("upload"))],
)
async def check_upload_metadata(payload: Any = Depends(sanitized_json_body)) -> dict[str, Any]:
    checked = check_upload(
        payload,
        allowed_types=settings.allowed_upload_types,
        max_size=settings.max_upload_bytes,
    )
    return {
        "filename": checked.safe_filename,
        "originalFilename": checked.original_filename,
        "contentType": checked.content_type,
        "size": checked.size,
    }


@app.post(
    "/api/v1/contacts/validate",
    tags=["validation"],
    dependencies=[Depends(rate_limited("api"))],
)
async def validate_contact_fields(payload: Any = Depends(sanitized_json_body)) -> dict[str, Any]:
    contact = validate_contact(payload)
    return {"valid": True, "contact": contact.model_dump()}
