"""Header and parameter redaction utilities for logging."""

from collections.abc import Mapping
from typing import Any


# Headers that must never appear in logs
SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "csrf-token",
        "proxy-authorization",
        "set-cookie",
        "x-api-key",
    }
)

# Query/body parameters that carry credentials
SENSITIVE_PARAMS = frozenset(
    {
        "login_token",
        "loginstr",
        "password",
    }
)

REDACTED_VALUE = "[REDACTED]"


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Redact sensitive headers for logging.

    Replaces the values of Cookie, CSRF-Token and other sensitive
    headers with [REDACTED] for safe logging.

    Args:
        headers: Original headers mapping.

    Returns:
        New dictionary with sensitive values redacted.
    """
    return {
        key: REDACTED_VALUE if is_sensitive_header(key) else value
        for key, value in headers.items()
    }


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header name is sensitive.

    Args:
        header_name: The header name to check.

    Returns:
        True if the header should be redacted.
    """
    return header_name.lower() in SENSITIVE_HEADERS


def redact_params(params: Mapping[str, Any]) -> dict[str, Any]:
    """Redact credential-bearing parameters for logging.

    Args:
        params: Query or body parameters.

    Returns:
        New dictionary with sensitive values redacted.
    """
    return {
        key: REDACTED_VALUE if key.lower() in SENSITIVE_PARAMS else value
        for key, value in params.items()
    }

