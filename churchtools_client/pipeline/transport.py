"""HTTP transport issuing single requests over httpx."""

import time
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from churchtools_client.constants import (
    ONLY_AUTHENTICATED_HEADER,
    USER_AGENT_HEADER,
)
from churchtools_client.observability.logging import (
    log_request,
    log_response,
    log_transport_error,
)
from churchtools_client.pipeline.metrics import PipelineMetrics
from churchtools_client.pipeline.models import ClientSession, PreparedRequest


logger = structlog.get_logger()


def _clean_params(params: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}


class HttpTransport:
    """Sends one prepared request and returns the response, whatever its status.

    Network failures raise the httpx exception (`httpx.TimeoutException`
    when the per-request timeout elapses).
    """

    def __init__(
        self,
        session: ClientSession,
        metrics: PipelineMetrics | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        cookies: httpx.Cookies | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            session: Session state providing timeouts and headers.
            metrics: Metrics sink.
            transport: Optional httpx transport (e.g. httpx.MockTransport).
            cookies: Optional cookie jar to start from.
        """
        self._session = session
        self._metrics = metrics or PipelineMetrics()
        self._transport = transport
        self._client = self._build_client(cookies)
        self._log = logger.bind(component="transport")

    def _build_client(self, cookies: httpx.Cookies | None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=True,
            cookies=cookies,
        )

    @property
    def cookies(self) -> httpx.Cookies:
        """Get the cookie jar holding the server session."""
        return self._client.cookies

    def set_cookie_jar(self, cookies: httpx.Cookies) -> None:
        """Replace the cookie jar used for subsequent requests."""
        self._client.cookies = cookies

    async def send(self, request: PreparedRequest) -> httpx.Response:
        """Send a request once.

        Args:
            request: The request to send.

        Returns:
            The response, for any status code.
        """
        http_request = self._build_request(request)
        log_request(self._log, http_request)

        start_ns = time.perf_counter_ns()
        try:
            response = await self._client.send(http_request)
        except httpx.TransportError as e:
            self._metrics.record_transport_error()
            log_transport_error(self._log, http_request, e)
            raise

        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        self._metrics.record_request(response.status_code, duration_ms)
        log_response(self._log, response)
        return response

    def _build_request(self, request: PreparedRequest) -> httpx.Request:
        timeout_ms = request.timeout_ms or self._session.request_timeout_ms
        form = request.form
        # params= replaces the query already in the URL
        params = httpx.URL(request.url).params.merge(_clean_params(request.params))
        http_request = self._client.build_request(
            request.method,
            request.url,
            params=params,
            json=request.json if form is None else None,
            data=form.fields if form is not None else None,
            files=form.files if form is not None and form.files else None,
            headers=self._build_headers(request.headers),
            timeout=timeout_ms / 1000.0,
        )
        if not self._session.with_credentials:
            http_request.headers.pop("Cookie", None)
        return http_request

    def _build_headers(self, extra_headers: Mapping[str, str]) -> dict[str, str]:
        """Build request headers.

        The server only checks whether the authentication header is
        present, so an explicit '0' removes it.

        Args:
            extra_headers: Headers from the caller.

        Returns:
            Complete headers dictionary.
        """
        headers: dict[str, str] = {USER_AGENT_HEADER: self._session.user_agent}
        headers.update(extra_headers)

        only_authenticated = headers.get(ONLY_AUTHENTICATED_HEADER)
        if only_authenticated == "0":
            del headers[ONLY_AUTHENTICATED_HEADER]
        elif not only_authenticated and self._needs_authentication():
            headers[ONLY_AUTHENTICATED_HEADER] = "1"
        return headers

    def _needs_authentication(self) -> bool:
        if self._session.needs_authentication is not None:
            return self._session.needs_authentication
        return self._session.has_token

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()
