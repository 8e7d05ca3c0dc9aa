"""Observability module for logging and redaction."""

from churchtools_client.observability.logging import (
    LogLevel,
    activate_logging,
    configure_logging,
    deactivate_logging,
    get_request_log_level,
    log_request,
    log_response,
    log_transport_error,
)
from churchtools_client.observability.redact import (
    REDACTED_VALUE,
    is_sensitive_header,
    redact_headers,
    redact_params,
)


__all__ = [
    # Logging
    "LogLevel",
    "activate_logging",
    "configure_logging",
    "deactivate_logging",
    "get_request_log_level",
    "log_request",
    "log_response",
    "log_transport_error",
    # Redaction
    "REDACTED_VALUE",
    "is_sensitive_header",
    "redact_headers",
    "redact_params",
]
