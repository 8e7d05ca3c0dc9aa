"""Error types for the ChurchTools client."""

from enum import Enum
from typing import Any

import httpx


class ClientErrorClass(str, Enum):
    """Classification of client errors.

    - HTTP_STATUS: Server answered with an error status
    - UNAUTHORIZED: Session expired and could not be recovered
    - LEGACY_API: Legacy endpoint answered without a success status
    - NO_JSON: JSON was enforced but the body was something else
    - INSTALLATION: Installation probe rejected the URL
    """

    HTTP_STATUS = "HTTP_STATUS"
    UNAUTHORIZED = "UNAUTHORIZED"
    LEGACY_API = "LEGACY_API"
    NO_JSON = "NO_JSON"
    INSTALLATION = "INSTALLATION"


class ChurchToolsError(Exception):
    """Base exception for client errors.

    Provides structured error information for logging and error translation.
    """

    def __init__(
        self,
        error_class: ClientErrorClass,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the client error.

        Args:
            error_class: Classification of the error.
            message: Human-readable error message.
            details: Additional structured error details.
        """
        super().__init__(message)
        self.error_class = error_class
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error_class": self.error_class.value,
            "message": self.message,
            "details": self.details,
        }


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class ApiResponseError(ChurchToolsError):
    """Error carrying the server response that caused it."""

    def __init__(
        self,
        error_class: ClientErrorClass,
        message: str,
        response: httpx.Response,
    ) -> None:
        """Initialize the response error.

        Args:
            error_class: Classification of the error.
            message: Human-readable error message.
            response: The response that failed.
        """
        super().__init__(
            error_class=error_class,
            message=message,
            details={
                "status_code": response.status_code,
                "url": str(response.request.url),
            },
        )
        self.response = response

    @property
    def status_code(self) -> int:
        """Get the HTTP status code of the failed response."""
        return self.response.status_code

    @property
    def data(self) -> Any:
        """Get the decoded response body."""
        return _decode_body(self.response)


class HttpStatusError(ApiResponseError):
    """Server answered with a 4xx/5xx status."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(
            error_class=ClientErrorClass.HTTP_STATUS,
            message=(
                f"Request to '{response.request.url}' failed "
                f"with status {response.status_code}"
            ),
            response=response,
        )


class UnauthorizedError(ApiResponseError):
    """Session expired and transparent re-login was not possible."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(
            error_class=ClientErrorClass.UNAUTHORIZED,
            message=f"Request to '{response.request.url}' is not authorized",
            response=response,
        )


class LegacyApiError(ApiResponseError):
    """Legacy endpoint answered with a status other than 'success'."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(
            error_class=ClientErrorClass.LEGACY_API,
            message=f"Legacy call to '{response.request.url}' was not successful",
            response=response,
        )


class NoJSONError(ApiResponseError):
    """A request with enforced JSON returned another content type."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(
            error_class=ClientErrorClass.NO_JSON,
            message=(
                f"Request to '{response.request.url}' returned no JSON. "
                f"Return value is:\n {response.text}"
            ),
            response=response,
        )


class InstallationErrorKind(str, Enum):
    """Why an installation probe rejected a URL."""

    TOO_OLD = "churchtools.url.invalidold"
    INVALID = "churchtools.url.invalid"
    OFFLINE = "churchtools.url.offline"


class InstallationError(ChurchToolsError):
    """Raised when a URL does not point to a usable installation.

    The message key is stable and meant for downstream localization.
    """

    def __init__(
        self,
        kind: InstallationErrorKind,
        message: str,
        args: dict[str, str] | None = None,
    ) -> None:
        """Initialize the installation error.

        Args:
            kind: Which probe check failed.
            message: Human-readable error message.
            args: Arguments for the localized message.
        """
        super().__init__(
            error_class=ClientErrorClass.INSTALLATION,
            message=message,
            details={"message_key": kind.value, "args": dict(args or {})},
        )
        self.kind = kind
        self.message_key = kind.value
        self.message_args = dict(args or {})

    @classmethod
    def too_old(cls, url: str, minimal_version: str) -> "InstallationError":
        """Installation answered with a build below the minimum."""
        return cls(
            InstallationErrorKind.TOO_OLD,
            f"The url {url} points to a ChurchTools Installation, but its version "
            f"is too old. At least version {minimal_version} is required.",
            {"url": url, "minimalChurchToolsVersion": minimal_version},
        )

    @classmethod
    def invalid(cls, url: str) -> "InstallationError":
        """URL answered, but not like an installation."""
        return cls(
            InstallationErrorKind.INVALID,
            f"The url {url} does not point to a valid ChurchTools installation.",
            {"url": url},
        )

    @classmethod
    def offline(cls) -> "InstallationError":
        """URL could not be reached at all."""
        return cls(
            InstallationErrorKind.OFFLINE,
            "Could not validate the url. Either the url is wrong or there is a "
            "problem with the internet connection",
        )
