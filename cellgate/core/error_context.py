"""Redaction of sensitive values before they reach logs or error responses.

Cell payloads routinely carry identifiers that must not be echoed back, such
as tax identification numbers submitted to ``validateTaxId`` or session
tokens forwarded by the storefront. Everything the error handler and the
SQL slow-query listener log passes through these helpers first.

Only copies are sanitized; the original payload handed to a cell is never
mutated.
"""

from __future__ import annotations

import re
from functools import lru_cache
from re import Pattern
from typing import Any, Final

from cellgate.core.config import get_settings
from cellgate.core.constants import REDACTED

type SanitizableValue = (
    str | int | float | bool | None | dict[str, Any] | list[Any] | tuple[Any, ...]
)

SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-auth-token",
    "proxy-authorization",
}

# Field names matched case-insensitively, in snake_case or camelCase form
DEFAULT_SENSITIVE_PATTERN: Final[Pattern[str]] = re.compile(
    r"(password|passwd|secret|token|api[_-]?key|apikey|authorization|"
    r"credential|private[_-]?key|session|tax[_-]?id|taxid|card[_-]?number|"
    r"connection[_-]?string)",
    re.IGNORECASE,
)

MAX_DEPTH: Final[int] = 10


@lru_cache(maxsize=1)
def _get_sensitive_fields() -> tuple[str, ...]:
    """Configured sensitive field names, lower-cased."""
    return tuple(f.lower() for f in get_settings().log_config.sensitive_fields)


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates sensitive data.

    Args:
        field_name: The field name to check.

    Returns:
        bool: True if the name matches the default pattern or a configured field.
    """
    if DEFAULT_SENSITIVE_PATTERN.search(field_name):
        return True

    field_lower = field_name.lower()
    return any(sensitive in field_lower for sensitive in _get_sensitive_fields())


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header name is sensitive (case-insensitive)."""
    return header_name.lower() in SENSITIVE_HEADERS


def sanitize_value(
    value: SanitizableValue, field_name: str = "", depth: int = 0
) -> SanitizableValue:
    """Redact a value if its field name looks sensitive.

    Nested dicts, lists and tuples are walked up to ``MAX_DEPTH``; anything
    deeper is redacted wholesale.

    Args:
        value: The value to potentially sanitize.
        field_name: The field name for context.
        depth: Current recursion depth.

    Returns:
        SanitizableValue: Sanitized value or original if not sensitive.
    """
    if depth > MAX_DEPTH:
        return REDACTED

    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if isinstance(value, dict):
        return {k: sanitize_value(v, str(k), depth + 1) for k, v in value.items()}

    if isinstance(value, list):
        return [sanitize_value(item, "", depth + 1) for item in value]

    if isinstance(value, tuple):
        return tuple(sanitize_value(item, "", depth + 1) for item in value)

    return value


def sanitize_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with sensitive values redacted."""
    return {key: sanitize_value(value, key) for key, value in data.items()}


def sanitize_headers(headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` with credential headers redacted."""
    return {k: REDACTED if is_sensitive_header(k) else v for k, v in headers.items()}


def sanitize_error_context(
    error: Exception, context: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Create sanitized error context for logging.

    Args:
        error: The exception to describe.
        context: Additional context to include (will be sanitized).

    Returns:
        dict[str, Any]: Error type, message and sanitized extras.
    """
    error_context: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if context:
        error_context.update(sanitize_dict(context))

    error_attrs = {
        k: v
        for k, v in getattr(error, "__dict__", {}).items()
        if not k.startswith("_") and k != "stack_trace"
    }
    if error_attrs:
        error_context["error_attributes"] = sanitize_dict(error_attrs)

    return error_context


def sanitize_sql_params(params: object) -> object:
    """Sanitize SQL query parameters for safe logging.

    Named parameters are redacted by key. Positional parameters carry no
    names, so they are returned as-is. Any other shape is redacted.
    """
    if params is None:
        return None

    if isinstance(params, dict):
        return sanitize_dict(params)
    if isinstance(params, (list, tuple)):
        return params

    return REDACTED
