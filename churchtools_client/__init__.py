"""Python client for the ChurchTools REST and legacy APIs.

Provides transparent re-login with a login token, rate-limit backoff,
deferral of requests behind setup and re-login, and pagination.
"""

from churchtools_client.client import ChurchToolsClient
from churchtools_client.constants import __version__
from churchtools_client.error_helper import (
    get_error_message_key,
    get_translated_error_message,
)
from churchtools_client.errors import (
    ApiResponseError,
    ChurchToolsError,
    ClientErrorClass,
    HttpStatusError,
    InstallationError,
    InstallationErrorKind,
    LegacyApiError,
    NoJSONError,
    UnauthorizedError,
)
from churchtools_client.observability import (
    LogLevel,
    activate_logging,
    configure_logging,
    deactivate_logging,
)
from churchtools_client.pipeline import FormData, UnauthenticatedInfo
from churchtools_client.settings import ClientSettings
from churchtools_client.url import to_correct_churchtools_url


__all__ = [
    "__version__",
    # Client
    "ChurchToolsClient",
    "ClientSettings",
    "FormData",
    "UnauthenticatedInfo",
    # Errors
    "ApiResponseError",
    "ChurchToolsError",
    "ClientErrorClass",
    "HttpStatusError",
    "InstallationError",
    "InstallationErrorKind",
    "LegacyApiError",
    "NoJSONError",
    "UnauthorizedError",
    "get_error_message_key",
    "get_translated_error_message",
    # Logging
    "LogLevel",
    "activate_logging",
    "configure_logging",
    "deactivate_logging",
    # URLs
    "to_correct_churchtools_url",
]
