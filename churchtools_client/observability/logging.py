"""Structured logging configuration and request logging."""

import logging
import sys
from enum import IntFlag
from typing import Any, TextIO

import httpx
import structlog

from churchtools_client.constants import HTTP_STATUS_BAD_REQUEST
from churchtools_client.observability.redact import (
    REDACTED_VALUE,
    SENSITIVE_PARAMS,
    is_sensitive_header,
    redact_headers,
    redact_params,
)


class LogLevel(IntFlag):
    """Verbosity of request/response logging.

    - NONE: Does not log requests at all
    - ERROR: Logs error responses and unsuccessful requests
    - INFO: Logs every request and response with method and URL
    - DEBUG: Additionally logs headers, params and bodies
    """

    NONE = 0
    ERROR = 1 << 0
    INFO = 1 << 1
    DEBUG = 1 << 2


_request_log_level = LogLevel.NONE


def redact_event(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor blanking credential-bearing top-level fields."""
    for key in event_dict:
        if key.lower() in SENSITIVE_PARAMS or is_sensitive_header(key):
            event_dict[key] = REDACTED_VALUE
    return event_dict


def configure_logging(
    request_log_level: LogLevel = LogLevel.NONE,
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structlog output and request logging in one call.

    Client events (re-login, rate limiting, deferral) are rendered as JSON
    lines by default. Request/response logging stays governed by
    `request_log_level`, see `activate_logging`.

    Args:
        request_log_level: Verbosity of request/response logging.
        level: Minimum stdlib level of emitted events (default: INFO).
        output: Output stream (default: stderr).
        json_format: Render JSON lines instead of console output.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_event,
        structlog.processors.format_exc_info,
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )
    activate_logging(request_log_level)


def activate_logging(level: LogLevel = LogLevel.INFO) -> None:
    """Enable request/response logging at the given verbosity.

    Args:
        level: Request log level (default: INFO).
    """
    global _request_log_level  # noqa: PLW0603
    _request_log_level = level


def deactivate_logging() -> None:
    """Disable request/response logging."""
    global _request_log_level  # noqa: PLW0603
    _request_log_level = LogLevel.NONE


def get_request_log_level() -> LogLevel:
    """Get the current request log level."""
    return _request_log_level


def _with_data(minimum: LogLevel = LogLevel.DEBUG) -> bool:
    return _request_log_level >= minimum


def _without_query(url: httpx.URL) -> str:
    return f"{url.scheme}://{url.netloc.decode('ascii')}{url.path}"


def log_request(log: Any, request: httpx.Request) -> None:
    """Log an outgoing request according to the request log level.

    Args:
        log: Bound structlog logger.
        request: The request being sent.
    """
    if _request_log_level < LogLevel.INFO:
        return
    fields: dict[str, Any] = {
        "method": request.method,
        "url": _without_query(request.url),
    }
    if _with_data():
        fields["params"] = redact_params(dict(request.url.params))
        fields["headers"] = redact_headers(dict(request.headers))
    log.info("http_request", **fields)


def log_response(log: Any, response: httpx.Response) -> None:
    """Log a received response according to the request log level.

    Error statuses are logged from ERROR level on, everything else from INFO.

    Args:
        log: Bound structlog logger.
        response: The response received.
    """
    is_error = response.status_code >= HTTP_STATUS_BAD_REQUEST
    if _request_log_level < LogLevel.INFO and not (
        is_error and _request_log_level >= LogLevel.ERROR
    ):
        return
    fields: dict[str, Any] = {
        "method": response.request.method,
        "url": _without_query(response.request.url),
        "status_code": response.status_code,
    }
    if _with_data(LogLevel.ERROR if is_error else LogLevel.DEBUG):
        fields["headers"] = redact_headers(dict(response.headers))
        fields["body"] = response.text
    if is_error:
        log.warning("http_response", **fields)
    else:
        log.info("http_response", **fields)


def log_transport_error(log: Any, request: httpx.Request, error: Exception) -> None:
    """Log a request that failed without a response.

    Args:
        log: Bound structlog logger.
        request: The request that failed.
        error: The transport exception.
    """
    if _request_log_level < LogLevel.ERROR:
        return
    log.warning(
        "http_transport_error",
        method=request.method,
        url=_without_query(request.url),
        error=str(error),
        error_type=type(error).__name__,
    )
