"""Security response headers and CORS options for the API."""

from __future__ import annotations

from typing import Any

from anesguardian.config import Settings

DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:5000",
    "http://localhost:3000",
)
CORS_ALLOWED_METHODS = ("GET", "POST", "PATCH", "DELETE", "PUT", "OPTIONS")
CORS_ALLOWED_HEADERS = ("Content-Type", "Authorization", "X-Requested-With", "Accept")
CORS_EXPOSED_HEADERS = ("RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset")
HSTS_MAX_AGE_SECONDS = 31_536_000
STRIPPED_RESPONSE_HEADERS = ("x-powered-by", "server")

_CSP_DIRECTIVES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("default-src", ("'self'",)),
    ("script-src", ("'self'", "'unsafe-inline'", "'unsafe-eval'")),
    ("style-src", ("'self'", "'unsafe-inline'", "https:")),
    ("img-src", ("'self'", "data:", "https:", "blob:")),
    ("font-src", ("'self'", "data:", "https:")),
    ("connect-src", ("'self'", "https://generativelanguage.googleapis.com", "wss:")),
    ("frame-src", ("'self'",)),
    ("object-src", ("'none'",)),
)


def build_content_security_policy(*, production: bool) -> str:
    parts = [f"{name} {' '.join(sources)}" for name, sources in _CSP_DIRECTIVES]
    if production:
        parts.append("upgrade-insecure-requests")
    return "; ".join(parts)


def build_security_headers(*, production: bool) -> dict[str, str]:
    """
    Return headers added to every response.

    HSTS and ``upgrade-insecure-requests`` are only sent in production so
    local HTTP development keeps working.
    """

    headers = {
        "Content-Security-Policy": build_content_security_policy(production=production),
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "X-XSS-Protection": "0",
        "X-DNS-Prefetch-Control": "off",
        "X-Download-Options": "noopen",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }
    if production:
        headers["Strict-Transport-Security"] = (
            f"max-age={HSTS_MAX_AGE_SECONDS}; includeSubDomains; preload"
        )
    return headers


def parse_allowed_origins(raw: str | None) -> list[str]:
    if not raw:
        return list(DEFAULT_ALLOWED_ORIGINS)
    origins = [origin.strip() for origin in raw.split(",")]
    return [origin for origin in origins if origin]


def cors_options(settings: Settings) -> dict[str, Any]:
    """Keyword arguments for ``CORSMiddleware``."""

    return {
        "allow_origins": parse_allowed_origins(settings.allowed_origins),
        "allow_credentials": True,
        "allow_methods": list(CORS_ALLOWED_METHODS),
        "allow_headers": list(CORS_ALLOWED_HEADERS),
        "expose_headers": list(CORS_EXPOSED_HEADERS),
    }
