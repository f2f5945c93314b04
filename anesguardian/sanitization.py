"""Helpers for sanitizing and validating untrusted input at the request boundary.

Every function here is pure: it allocates new output and never mutates the
caller's value. Nothing raises for suspicious input. Cleaning functions return
a best-effort cleaned value and predicates return ``False``; deciding whether
to reject a request is left to the caller.

The regex passes are a first line of defense only. Rendered output still
needs context-aware encoding.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

DEFAULT_ALLOWED_FILE_TYPES: tuple[str, ...] = ("image/jpeg", "image/png", "image/jpg", "image/gif")
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
DEFAULT_MAX_DEPTH = 5
MAX_FILENAME_LENGTH = 255

ALLOWED_HTML_TAGS = frozenset(
    {"p", "br", "strong", "em", "u", "ol", "ul", "li", "a", "h1", "h2", "h3", "h4", "h5", "h6"}
)

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_IFRAME_RE = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(
    r"""\s*(?<!\w)on\w+\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]*)""",
    re.IGNORECASE,
)
_JAVASCRIPT_SCHEME_RE = re.compile(r"javascript:", re.IGNORECASE)
_NON_IMAGE_DATA_SCHEME_RE = re.compile(r"data:(?!image/)", re.IGNORECASE)

_HTML_TAG_RE = re.compile(r"</?([a-z][a-z0-9]*)\b[^>]*>", re.IGNORECASE)
_UNSAFE_URI_ATTRIBUTE_RE = re.compile(
    r"""\s*(?:href|src)\s*=\s*"""
    r"""(?:["']\s*(?:javascript|data):[^"']*["']|(?:javascript|data):[^\s>]*)""",
    re.IGNORECASE,
)

_FILENAME_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9_\u4e00-\u9fa5.-]")

_SQL_LINE_COMMENT_RE = re.compile(r"--.*$", re.MULTILINE)
_SQL_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_SQL_CHAINED_STATEMENT_RE = re.compile(
    r";\s*(?:DROP|DELETE|TRUNCATE|ALTER|CREATE|EXEC|EXECUTE)\s+",
    re.IGNORECASE,
)

_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_CN_MOBILE_RE = re.compile(r"1[3-9][0-9]{9}")


def sanitize_string(value: Any) -> Any:
    """
    Strip script-injection constructs from a string.

    Passes run in a fixed order and each one sees the output of the previous
    one: ``<script>`` elements, ``<iframe>`` elements, inline ``on*=`` event
    handlers, ``javascript:`` prefixes, non-image ``data:`` prefixes, then
    surrounding whitespace. A handler name must start a word, so plain text
    such as ``condition=stable`` is left alone. Non-string values are
    returned unchanged.
    """

    if not isinstance(value, str):
        return value

    cleaned = _SCRIPT_RE.sub("", value)
    cleaned = _IFRAME_RE.sub("", cleaned)
    cleaned = _EVENT_HANDLER_RE.sub("", cleaned)
    cleaned = _JAVASCRIPT_SCHEME_RE.sub("", cleaned)
    cleaned = _NON_IMAGE_DATA_SCHEME_RE.sub("", cleaned)
    return cleaned.strip()


def sanitize_input(value: Any) -> Any:
    """Recursively sanitize every string inside a JSON-like payload.

    The result has the same shape as ``value``: mappings keep their keys in
    order, sequences keep their length, and non-string scalars pass through.
    Only the mapping's own items are copied.
    """

    if value is None:
        return None
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, list):
        return [sanitize_input(item) for item in value]
    if isinstance(value, tuple):
        return tuple(sanitize_input(item) for item in value)
    if isinstance(value, Mapping):
        return {key: sanitize_input(item) for key, item in value.items()}
    return value


def is_secure_object(value: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> bool:
    """
    Return False when any branch of ``value`` nests deeper than ``max_depth``.

    The root sits at depth 0 and each list or mapping level adds one to the
    depth of its children, leaves included. Traversal stops at the first
    node past the limit.
    """

    def _within_limit(node: Any, depth: int) -> bool:
        if depth > max_depth:
            return False
        if isinstance(node, (list, tuple)):
            return all(_within_limit(item, depth + 1) for item in node)
        if isinstance(node, Mapping):
            return all(_within_limit(item, depth + 1) for item in node.values())
        return True

    return _within_limit(value, 0)


def sanitize_html(html: Any) -> Any:
    """
    Keep only allow-listed tags in rich text.

    Tags outside ``ALLOWED_HTML_TAGS`` are dropped (their text content stays).
    Allowed tags keep their attributes, except ``on*`` handlers and
    ``href``/``src`` values using the ``javascript:`` or ``data:`` schemes.
    This is weaker than ``sanitize_string`` and meant for text written by
    trusted staff, not arbitrary user input.
    """

    if not isinstance(html, str):
        return html

    def _keep_allowed(match: re.Match[str]) -> str:
        if match.group(1).lower() in ALLOWED_HTML_TAGS:
            return match.group(0)
        return ""

    sanitized = _HTML_TAG_RE.sub(_keep_allowed, html)
    sanitized = _EVENT_HANDLER_RE.sub("", sanitized)
    return _UNSAFE_URI_ATTRIBUTE_RE.sub("", sanitized)


def sanitize_filename(filename: Any) -> Any:
    """Replace unsafe filename characters, drop ``..`` and cap the length."""

    if not isinstance(filename, str):
        return filename

    cleaned = _FILENAME_UNSAFE_CHARS_RE.sub("_", filename)
    cleaned = cleaned.replace("..", "")
    return cleaned[:MAX_FILENAME_LENGTH]


def sanitize_sql_input(value: Any) -> Any:
    """
    Strip SQL comments and chained destructive statements.

    Queries are parameterized at the persistence layer; this only adds a
    second layer for free-text fields that end up in reports or logs.
    """

    if not isinstance(value, str):
        return value

    cleaned = _SQL_LINE_COMMENT_RE.sub("", value)
    cleaned = _SQL_BLOCK_COMMENT_RE.sub("", cleaned)
    cleaned = _SQL_CHAINED_STATEMENT_RE.sub("; ", cleaned)
    return cleaned.strip()


def is_allowed_file_type(
    mimetype: Any,
    allowed_types: tuple[str, ...] | list[str] = DEFAULT_ALLOWED_FILE_TYPES,
) -> bool:
    if not isinstance(mimetype, str):
        return False
    return mimetype.lower() in allowed_types


def is_valid_file_size(size: Any, max_size: int = DEFAULT_MAX_FILE_SIZE) -> bool:
    if isinstance(size, bool) or not isinstance(size, (int, float)):
        return False
    return 0 < size <= max_size


def is_valid_email(email: Any) -> bool:
    if not isinstance(email, str):
        return False
    return _EMAIL_RE.fullmatch(email) is not None


def is_valid_phone(phone: Any) -> bool:
    """Return True for a mainland China mobile number such as ``13800138000``."""

    if not isinstance(phone, str):
        return False
    return _CN_MOBILE_RE.fullmatch(phone) is not None
