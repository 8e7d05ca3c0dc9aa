"""Data models for the request pipeline."""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import IO, Any

from churchtools_client.constants import (
    DEFAULT_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
    RATE_LIMIT_TIMEOUT_MS,
    RETRY_LOGIN_PARAM,
)
from churchtools_client.settings import ClientSettings
from churchtools_client.url import trim_trailing_slash


FileContent = IO[bytes] | bytes | str
FileValue = FileContent | tuple[str, FileContent] | tuple[str, FileContent, str]


class ResponseKind(str, Enum):
    """Classification of a transport response.

    - OK: 1xx-3xx without anomaly
    - SESSION_EXPIRED: 401, or a 200 body reporting an expired session
    - RATE_LIMITED: 429 Too Many Requests
    - HTTP_ERROR: Any other 4xx/5xx
    """

    OK = "OK"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    RATE_LIMITED = "RATE_LIMITED"
    HTTP_ERROR = "HTTP_ERROR"


@dataclass
class ClientSession:
    """Mutable session state owned by one client.

    Attributes:
        base_url: Installation URL without trailing slash.
        login_token: Long-lived login token used for transparent re-login.
        person_id: Person the login token belongs to.
        with_credentials: Whether session cookies are sent.
        request_timeout_ms: Per-request timeout.
        rate_limit_timeout_ms: Wait before retrying a 429.
        csrf_token: Anti-forgery token, fetched lazily.
        load_csrf_for_old_api: Refresh the anti-forgery token after re-login.
        enforce_json: Fail requests whose response is not JSON.
        needs_authentication: Overrides whether requests demand a session.
        user_agent: User-Agent header value.
    """

    base_url: str | None = None
    login_token: str | None = None
    person_id: int | None = None
    with_credentials: bool = True
    request_timeout_ms: int = DEFAULT_TIMEOUT_MS
    rate_limit_timeout_ms: int = RATE_LIMIT_TIMEOUT_MS
    csrf_token: str | None = None
    load_csrf_for_old_api: bool = False
    enforce_json: bool = False
    needs_authentication: bool | None = None
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        if self.base_url is not None:
            self.base_url = trim_trailing_slash(self.base_url)

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> "ClientSession":
        """Build session state from client settings."""
        return cls(
            base_url=settings.base_url,
            login_token=settings.login_token,
            person_id=settings.person_id,
            with_credentials=settings.with_credentials,
            request_timeout_ms=settings.request_timeout_ms,
            rate_limit_timeout_ms=settings.rate_limit_timeout_ms,
            load_csrf_for_old_api=settings.load_csrf_for_old_api,
            enforce_json=settings.enforce_json,
            user_agent=settings.user_agent,
        )

    @property
    def has_token(self) -> bool:
        """Check if a login token is configured."""
        return bool(self.login_token)


class FormData:
    """Multipart form payload.

    Posting a FormData sends `multipart/form-data`, which the server only
    accepts together with an anti-forgery token.
    """

    def __init__(self) -> None:
        self.fields: dict[str, str] = {}
        self.files: list[tuple[str, FileValue]] = []

    def append(self, name: str, value: str | int | FileValue) -> None:
        """Add a field or a file part.

        Args:
            name: Form field name (e.g. 'files[]').
            value: Plain value, or file content/tuple for a file part.
        """
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            self.fields[name] = str(value)
        else:
            self.files.append((name, value))

    def keys(self) -> list[str]:
        """Get field and file names in insertion order."""
        return [*self.fields, *(name for name, _ in self.files)]


def is_multipart(body: Any) -> bool:
    """Check whether a request body will be sent as multipart form data."""
    return isinstance(body, FormData)


@dataclass(frozen=True)
class PreparedRequest:
    """One request as handed to the middleware chain.

    Attributes:
        method: HTTP method.
        url: Absolute URL.
        params: Query parameters.
        json: JSON body, if any.
        form: Multipart body, if any.
        headers: Request headers.
        timeout_ms: Timeout applied to each transport attempt.
        enforce_json: Fail if the response body is not JSON.
        relogin_attempted: Set on the re-issue after a re-login.
    """

    method: str
    url: str
    params: Mapping[str, Any] = field(default_factory=dict)
    json: Any = None
    form: FormData | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout_ms: int | None = None
    enforce_json: bool | None = None
    relogin_attempted: bool = False

    @property
    def is_login_probe(self) -> bool:
        """Check if this is the internal re-login probe."""
        return bool(self.params.get(RETRY_LOGIN_PARAM))

    def with_header(self, name: str, value: str) -> "PreparedRequest":
        """Return a copy with one header set."""
        return replace(self, headers={**self.headers, name: value})


@dataclass(frozen=True)
class UnauthenticatedInfo:
    """Payload passed to unauthenticated listeners.

    Attributes:
        error: The error that ended recovery, if any.
        url: URL of the request that could not be authenticated.
        base_url: Installation base URL.
    """

    error: BaseException | None = None
    url: str | None = None
    base_url: str | None = None
