from anesguardian.config import Settings
from anesguardian.security import (
    DEFAULT_ALLOWED_ORIGINS,
    build_content_security_policy,
    build_security_headers,
    cors_options,
    parse_allowed_origins,
)


def test_development_headers_skip_hsts() -> None:
    headers = build_security_headers(production=False)
    assert headers["X-Frame-Options"] == "DENY"
    assert headers["X-Content-Type-Options"] == "nosniff"
    assert headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert "Strict-Transport-Security" not in headers
    assert "upgrade-insecure-requests" not in headers["Content-Security-Policy"]


def test_production_headers_enable_hsts_and_upgrade() -> None:
    headers = build_security_headers(production=True)
    assert headers["Strict-Transport-Security"] == "max-age=31536000; includeSubDomains; preload"
    assert headers["Content-Security-Policy"].endswith("upgrade-insecure-requests")


def test_content_security_policy_directives() -> None:
    policy = build_content_security_policy(production=False)
    assert "default-src 'self'" in policy
    assert "object-src 'none'" in policy
    assert "connect-src 'self' https://generativelanguage.googleapis.com wss:" in policy


def test_parse_allowed_origins() -> None:
    assert parse_allowed_origins(None) == list(DEFAULT_ALLOWED_ORIGINS)
    assert parse_allowed_origins("") == list(DEFAULT_ALLOWED_ORIGINS)
    assert parse_allowed_origins("https://a.example, https://b.example,") == [
        "https://a.example",
        "https://b.example",
    ]


def test_cors_options_from_settings() -> None:
    options = cors_options(Settings(allowed_origins="https://anes.example"))
    assert options["allow_origins"] == ["https://anes.example"]
    assert options["allow_credentials"] is True
    assert "PATCH" in options["allow_methods"]
    assert options["expose_headers"] == ["RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset"]
