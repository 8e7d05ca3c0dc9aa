"""ChurchTools API client.

Wraps the REST API (`{base}/api/...`) and the legacy endpoint
(`{base}/?q={module}`) behind a small set of verbs. Every call goes
through the deferral queue and the recovery middlewares, so callers never
see expired sessions or rate limiting unless recovery fails.
"""

import asyncio
import re
from collections.abc import Mapping
from types import TracebackType
from typing import Any

import httpx
import structlog

from churchtools_client.constants import (
    API_PREFIX,
    CSRF_TOKEN_HEADER,
    CSRF_TOKEN_PATH,
    DEFAULT_PAGE_SIZE,
    FIRST_PAGE,
    HTTP_STATUS_NO_CONTENT,
    INFO_API_PATH,
    MINIMAL_CHURCHTOOLS_BUILD_VERSION,
    MINIMAL_CHURCHTOOLS_VERSION,
    ONLY_AUTHENTICATED_HEADER,
    RETRY_LOGIN_PARAM,
    WHOAMI_PATH,
)
from churchtools_client.errors import (
    HttpStatusError,
    InstallationError,
    LegacyApiError,
    NoJSONError,
    UnauthorizedError,
)
from churchtools_client.pipeline.chain import MiddlewareChain, MiddlewareKind
from churchtools_client.pipeline.deferral import DeferralQueue, DeferralState
from churchtools_client.pipeline.metrics import PipelineMetrics
from churchtools_client.pipeline.models import (
    ClientSession,
    FormData,
    PreparedRequest,
    ResponseKind,
    is_multipart,
)
from churchtools_client.pipeline.normalizer import (
    decode_body,
    last_page_of,
    response_to_data,
)
from churchtools_client.pipeline.recovery import (
    LoginRecovery,
    RateLimitMiddleware,
    SessionExpiryMiddleware,
    Sleep,
    UnauthenticatedCallback,
    UnauthenticatedNotifier,
    classify_response,
)
from churchtools_client.pipeline.transport import HttpTransport
from churchtools_client.settings import ClientSettings, get_settings
from churchtools_client.url import to_correct_churchtools_url, trim_trailing_slash


logger = structlog.get_logger()

_LEADING_INT_PATTERN = re.compile(r"^\s*([-+]?\d+)")


def _parse_build(value: Any) -> int | None:
    """Parse a build number ('31413-beta' -> 31413)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        match = _LEADING_INT_PATTERN.match(value)
        if match:
            return int(match.group(1))
    return None


def _auth_headers(needs_authentication: bool | None) -> dict[str, str]:
    if needs_authentication is None:
        return {}
    return {ONLY_AUTHENTICATED_HEADER: "1" if needs_authentication else "0"}


class ChurchToolsClient:
    """Client for one ChurchTools installation.

    Example:
        async with ChurchToolsClient("https://demo.church.tools", token) as ct:
            persons = await ct.fetch_all_pages("/persons")
    """

    def __init__(
        self,
        base_url: str | None = None,
        login_token: str | None = None,
        load_csrf_for_old_api: bool = False,
        *,
        person_id: int | None = None,
        settings: ClientSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Explicit arguments override values from `settings`, which in turn
        default to the `CHURCHTOOLS_*` environment.

        Args:
            base_url: Installation URL.
            login_token: Long-lived login token for transparent re-login.
            load_csrf_for_old_api: Keep an anti-forgery token for legacy calls.
            person_id: Person the login token belongs to.
            settings: Client settings.
            transport: Optional httpx transport (e.g. httpx.MockTransport).
            sleep: Coroutine function used for rate-limit backoff.
        """
        settings = settings or get_settings()
        self._session = ClientSession.from_settings(settings)
        if base_url is not None:
            self._session.base_url = trim_trailing_slash(base_url)
        if login_token is not None:
            self._session.login_token = login_token
        if person_id is not None:
            self._session.person_id = person_id
        if load_csrf_for_old_api:
            self._session.load_csrf_for_old_api = True

        self.metrics = PipelineMetrics()
        self._sleep = sleep
        self._transport = HttpTransport(self._session, self.metrics, transport)
        self._chain = MiddlewareChain(self._transport.send)
        self._queue = DeferralQueue(self.metrics)
        self._notifier = UnauthenticatedNotifier(self.metrics)
        self._recovery = LoginRecovery(
            self._queue, self._login_with_token, self.metrics
        )
        self._log = logger.bind(component="client")

        self.set_login_token(self._session.login_token, self._session.person_id)
        if settings.rate_limit_retry:
            self.set_rate_limit_interceptor()

    async def __aenter__(self) -> "ChurchToolsClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the underlying HTTP connections."""
        await self._transport.aclose()

    # Configuration

    @property
    def session(self) -> ClientSession:
        """Get the session state."""
        return self._session

    @property
    def deferral_state(self) -> DeferralState:
        """Get the current deferral gate state."""
        return self._queue.state

    @property
    def cookies(self) -> httpx.Cookies:
        """Get the cookie jar holding the server session."""
        return self._transport.cookies

    def get_base_url(self) -> str | None:
        """Get the installation base URL."""
        return self._session.base_url

    def set_base_url(self, base_url: str) -> None:
        """Set the installation base URL (trailing slash removed)."""
        self._session.base_url = trim_trailing_slash(base_url)

    def set_login_token(
        self, login_token: str | None, person_id: int | None = None
    ) -> None:
        """Bind a login token and (re)install session-expiry recovery.

        Args:
            login_token: Long-lived login token; None disables re-login.
            person_id: Person the token belongs to.
        """
        self._session.login_token = login_token
        self._session.person_id = person_id
        self._chain.install(
            SessionExpiryMiddleware(
                self._session,
                self._recovery,
                self._notifier,
                login_token=login_token,
                person_id=person_id,
            )
        )

    def set_rate_limit_interceptor(self, timeout_ms: int | None = None) -> None:
        """(Re)install rate-limit recovery.

        Args:
            timeout_ms: New backoff duration; keeps the current one if None.
        """
        if timeout_ms:
            self.set_rate_limit_timeout(timeout_ms)
        self._chain.install(
            RateLimitMiddleware(self._session, self.metrics, self._sleep)
        )

    def remove_rate_limit_interceptor(self) -> None:
        """Surface 429 responses to callers instead of retrying."""
        self._chain.eject(MiddlewareKind.RATE_LIMIT)

    def set_rate_limit_timeout(self, timeout_ms: int) -> None:
        """Set the wait before retrying a rate-limited request."""
        self._session.rate_limit_timeout_ms = timeout_ms

    def set_request_timeout(self, timeout_ms: int) -> None:
        """Set the default per-request timeout."""
        self._session.request_timeout_ms = timeout_ms

    def set_user_agent(self, user_agent: str) -> None:
        """Override the User-Agent header."""
        self._session.user_agent = user_agent

    def set_needs_authentication(self, needs_authentication: bool) -> None:
        """Force whether requests demand an authenticated session."""
        self._session.needs_authentication = needs_authentication

    def set_enforce_json(self, enforce_json: bool) -> None:
        """Fail requests whose response body is not JSON."""
        self._session.enforce_json = enforce_json

    def set_load_csrf_for_old_api(self, load: bool = True) -> None:
        """Keep an anti-forgery token available for legacy calls."""
        self._session.load_csrf_for_old_api = load

    def enable_cross_origin_requests(self) -> None:
        """Send session cookies with every request."""
        self._session.with_credentials = True

    def set_cookie_jar(self, cookies: httpx.Cookies) -> None:
        """Use the given cookie jar for the server session."""
        self._transport.set_cookie_jar(cookies)

    def on_unauthenticated(self, callback: UnauthenticatedCallback) -> None:
        """Register a listener called when a session cannot be recovered."""
        self._notifier.register(callback)

    def build_url(self, path: str) -> str:
        """Build an API URL; absolute URLs pass through unchanged."""
        if path.startswith("http"):
            return path
        return f"{self._session.base_url}{API_PREFIX}{path}"

    # Verbs

    async def fetch(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        want_raw: bool = False,
        *,
        deferred: bool = True,
        enforce_json: bool | None = None,
        needs_authentication: bool | None = None,
        timeout_ms: int | None = None,
    ) -> Any:
        """GET a resource.

        Args:
            path: API path (e.g. '/persons/1') or absolute URL.
            params: Query parameters.
            want_raw: Return the httpx.Response instead of the payload.
            deferred: Wait behind setup/re-login (internal calls pass False).
            enforce_json: Override the client's enforce-JSON setting.
            needs_authentication: Override whether a session is required.
            timeout_ms: Override the request timeout.

        Returns:
            The unwrapped payload, or the raw response.
        """
        request = PreparedRequest(
            method="GET",
            url=self.build_url(path),
            params=dict(params or {}),
            headers=_auth_headers(needs_authentication),
            timeout_ms=timeout_ms,
            enforce_json=enforce_json,
        )

        async def call() -> Any:
            response = await self._send(request)
            return response if want_raw else response_to_data(response)

        return await self._queue.run(call, deferred=deferred)

    async def fetch_all_pages(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> list[Any]:
        """GET every page of a paginated resource.

        Args:
            path: API path.
            params: Query parameters.
            page_size: Items requested per page.

        Returns:
            All items, in page order.
        """
        query = {**(params or {}), "limit": page_size}
        items: list[Any] = []
        page = FIRST_PAGE
        while True:
            response = await self.fetch(path, {**query, "page": page}, want_raw=True)
            data = response_to_data(response)
            if isinstance(data, list):
                items.extend(data)
            elif data is not None:
                items.append(data)
            if last_page_of(response) <= page:
                return items
            page += 1

    async def create(
        self,
        path: str,
        body: Mapping[str, Any] | FormData | None = None,
        *,
        enforce_json: bool | None = None,
        needs_authentication: bool | None = None,
        timeout_ms: int | None = None,
    ) -> Any:
        """POST a JSON or multipart body.

        Multipart bodies (FormData) are sent with the anti-forgery token,
        which is fetched once and cached.

        Args:
            path: API path.
            body: JSON mapping or FormData.
            enforce_json: Override the client's enforce-JSON setting.
            needs_authentication: Override whether a session is required.
            timeout_ms: Override the request timeout.

        Returns:
            The unwrapped payload.
        """
        if not is_multipart(body):
            return await self._write(
                "POST", path, body, enforce_json, needs_authentication, timeout_ms
            )

        async def call() -> Any:
            await self._ensure_csrf_token()
            headers = _auth_headers(needs_authentication)
            headers[CSRF_TOKEN_HEADER] = self._session.csrf_token or ""
            request = PreparedRequest(
                method="POST",
                url=self.build_url(path),
                form=body,
                headers=headers,
                timeout_ms=timeout_ms,
                enforce_json=enforce_json,
            )
            return response_to_data(await self._send(request))

        return await self._queue.run(call)

    async def replace(
        self,
        path: str,
        body: Mapping[str, Any] | None = None,
        *,
        enforce_json: bool | None = None,
        needs_authentication: bool | None = None,
        timeout_ms: int | None = None,
    ) -> Any:
        """PUT a JSON body and return the unwrapped payload."""
        return await self._write(
            "PUT", path, body, enforce_json, needs_authentication, timeout_ms
        )

    async def update(
        self,
        path: str,
        body: Mapping[str, Any] | None = None,
        *,
        enforce_json: bool | None = None,
        needs_authentication: bool | None = None,
        timeout_ms: int | None = None,
    ) -> Any:
        """PATCH a JSON body and return the unwrapped payload."""
        return await self._write(
            "PATCH", path, body, enforce_json, needs_authentication, timeout_ms
        )

    async def remove(
        self,
        path: str,
        body: Mapping[str, Any] | None = None,
        *,
        enforce_json: bool | None = None,
        needs_authentication: bool | None = None,
        timeout_ms: int | None = None,
    ) -> Any:
        """DELETE a resource, optionally with a JSON body."""
        return await self._write(
            "DELETE", path, body, enforce_json, needs_authentication, timeout_ms
        )

    async def legacy_call(
        self,
        module: str,
        func: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """Call a function of the legacy endpoint.

        Args:
            module: Legacy module (e.g. 'churchauth/ajax').
            func: Function name within the module.
            params: Additional parameters for the function.

        Returns:
            The unwrapped payload of a `{"status": "success"}` answer.

        Raises:
            LegacyApiError: If the answer's status is not 'success'.
        """
        self._session.load_csrf_for_old_api = True

        async def call() -> Any:
            await self._ensure_csrf_token()
            request = PreparedRequest(
                method="POST",
                url=f"{self._session.base_url}/?q={module}",
                json={**(params or {}), "func": func},
                headers={CSRF_TOKEN_HEADER: self._session.csrf_token or ""},
            )
            response = await self._send(request)
            body = decode_body(response)
            if isinstance(body, Mapping) and body.get("status") == "success":
                return response_to_data(response)
            raise LegacyApiError(response)

        return await self._queue.run(call)

    async def probe_installation(
        self,
        url: str,
        min_build: int = MINIMAL_CHURCHTOOLS_BUILD_VERSION,
        min_version: str = MINIMAL_CHURCHTOOLS_VERSION,
    ) -> str:
        """Check that a URL points to a recent enough installation.

        Args:
            url: URL as entered by a user.
            min_build: Minimum accepted build number.
            min_version: Human-readable version matching `min_build`.

        Returns:
            The base URL, following redirects the server answered with.

        Raises:
            InstallationError: If the URL is offline, invalid, or too old.
        """
        endpoint = f"{to_correct_churchtools_url(url)}{INFO_API_PATH}"
        request = PreparedRequest(
            method="GET",
            url=endpoint,
            headers=_auth_headers(needs_authentication=False),
        )
        try:
            response = await self._chain.dispatch(request)
        except httpx.TransportError as e:
            self._log.info("installation_offline", url=url, error=str(e))
            raise InstallationError.offline() from e

        if classify_response(response) is not ResponseKind.OK:
            self._log.info(
                "installation_invalid", url=url, status_code=response.status_code
            )
            raise InstallationError.invalid(url)

        body = decode_body(response)
        raw_build = body.get("build") if isinstance(body, Mapping) else None
        build = _parse_build(raw_build)
        if build is not None and build >= min_build:
            final_url = str(response.url)
            if final_url != endpoint and final_url.endswith(INFO_API_PATH):
                return final_url[: -len(INFO_API_PATH)]
            return url
        if raw_build:
            raise InstallationError.too_old(url, min_version)
        raise InstallationError.invalid(url)

    # Internals

    async def _write(
        self,
        method: str,
        path: str,
        body: Mapping[str, Any] | None,
        enforce_json: bool | None,
        needs_authentication: bool | None,
        timeout_ms: int | None,
    ) -> Any:
        request = PreparedRequest(
            method=method,
            url=self.build_url(path),
            json=dict(body) if body is not None else {},
            headers=_auth_headers(needs_authentication),
            timeout_ms=timeout_ms,
            enforce_json=enforce_json,
        )

        async def call() -> Any:
            return response_to_data(await self._send(request))

        return await self._queue.run(call)

    async def _send(self, request: PreparedRequest) -> httpx.Response:
        response = await self._chain.dispatch(request)
        self._raise_for_response(request, response)
        return response

    def _raise_for_response(
        self, request: PreparedRequest, response: httpx.Response
    ) -> None:
        """Turn anomalies and error statuses that survived recovery into errors.

        Raises:
            UnauthorizedError: Session expired and was not recovered.
            HttpStatusError: Any other 4xx/5xx.
            NoJSONError: JSON was enforced and the body is something else.
        """
        kind = classify_response(response)
        if kind is ResponseKind.SESSION_EXPIRED:
            raise UnauthorizedError(response)
        if kind in (ResponseKind.RATE_LIMITED, ResponseKind.HTTP_ERROR):
            raise HttpStatusError(response)

        enforce_json = (
            request.enforce_json
            if request.enforce_json is not None
            else self._session.enforce_json
        )
        if (
            enforce_json
            and response.status_code != HTTP_STATUS_NO_CONTENT
            and response.content
            and not isinstance(decode_body(response), (Mapping, list))
        ):
            raise NoJSONError(response)

    async def _ensure_csrf_token(self) -> None:
        if self._session.csrf_token:
            return
        token = await self.fetch(CSRF_TOKEN_PATH, deferred=False)
        if isinstance(token, str):
            self._session.csrf_token = token

    async def _login_with_token(self, login_token: str, person_id: int | None) -> None:
        """Re-login probe run by the login recovery.

        A previously used anti-forgery token belongs to the old session and
        is replaced by a fresh one.
        """
        await self.fetch(
            WHOAMI_PATH,
            {
                "login_token": login_token,
                "user_id": person_id,
                "no_url_rewrite": True,
                RETRY_LOGIN_PARAM: True,
            },
            deferred=False,
        )
        self._log.info("relogin_with_token_succeeded", person_id=person_id)
        had_csrf_token = self._session.csrf_token is not None
        self._session.csrf_token = None
        if had_csrf_token or self._session.load_csrf_for_old_api:
            await self._ensure_csrf_token()
