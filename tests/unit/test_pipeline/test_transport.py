"""Unit tests for the HTTP transport."""

import httpx
import pytest

from churchtools_client.pipeline.metrics import PipelineMetrics
from churchtools_client.pipeline.models import (
    ClientSession,
    FormData,
    PreparedRequest,
)
from churchtools_client.pipeline.transport import HttpTransport
from tests.helpers.server import BASE_URL, FakeServer, json_response


URL = f"{BASE_URL}/api/persons"


def _server() -> FakeServer:
    server = FakeServer()
    server.route("GET", "/api/persons", json_response({"data": []}))
    server.route("POST", "/api/files", json_response({"data": "ok"}))
    return server


class TestHeaders:
    """Tests for request headers."""

    @pytest.mark.asyncio
    async def test_user_agent(self) -> None:
        """Every request carries the session's User-Agent."""
        server = _server()
        session = ClientSession(user_agent="my-app/2.0")
        transport = HttpTransport(session, transport=server.transport)

        await transport.send(PreparedRequest(method="GET", url=URL))

        assert server.requests[0].headers["User-Agent"] == "my-app/2.0"

    @pytest.mark.asyncio
    async def test_only_authenticated_with_token(self) -> None:
        """With a login token requests demand an authenticated session."""
        server = _server()
        session = ClientSession(login_token="token")
        transport = HttpTransport(session, transport=server.transport)

        await transport.send(PreparedRequest(method="GET", url=URL))

        assert server.requests[0].headers["X-OnlyAuthenticated"] == "1"

    @pytest.mark.asyncio
    async def test_no_only_authenticated_without_token(self) -> None:
        """Anonymous clients do not send the header."""
        server = _server()
        transport = HttpTransport(ClientSession(), transport=server.transport)

        await transport.send(PreparedRequest(method="GET", url=URL))

        assert "X-OnlyAuthenticated" not in server.requests[0].headers

    @pytest.mark.asyncio
    async def test_explicit_zero_removes_header(self) -> None:
        """An explicit '0' removes the header, since only presence counts."""
        server = _server()
        session = ClientSession(login_token="token")
        transport = HttpTransport(session, transport=server.transport)

        await transport.send(
            PreparedRequest(
                method="GET", url=URL, headers={"X-OnlyAuthenticated": "0"}
            )
        )

        assert "X-OnlyAuthenticated" not in server.requests[0].headers

    @pytest.mark.asyncio
    async def test_session_override(self) -> None:
        """needs_authentication on the session wins over the token rule."""
        server = _server()
        session = ClientSession(needs_authentication=True)
        transport = HttpTransport(session, transport=server.transport)

        await transport.send(PreparedRequest(method="GET", url=URL))

        assert server.requests[0].headers["X-OnlyAuthenticated"] == "1"


class TestRequestBody:
    """Tests for params and bodies."""

    @pytest.mark.asyncio
    async def test_none_params_dropped(self) -> None:
        """Parameters set to None are not sent."""
        server = _server()
        transport = HttpTransport(ClientSession(), transport=server.transport)

        await transport.send(
            PreparedRequest(
                method="GET", url=URL, params={"page": 2, "user_id": None}
            )
        )

        assert dict(server.requests[0].url.params) == {"page": "2"}

    @pytest.mark.asyncio
    async def test_url_query_kept(self) -> None:
        """A query already in the URL survives, with or without params."""
        server = _server()
        server.route("POST", "/", json_response({"status": "success"}))
        transport = HttpTransport(ClientSession(), transport=server.transport)

        await transport.send(
            PreparedRequest(method="POST", url=f"{BASE_URL}/?q=churchauth/ajax")
        )
        await transport.send(
            PreparedRequest(method="GET", url=f"{URL}?ids[]=1", params={"limit": 5})
        )

        assert server.requests[0].url.params["q"] == "churchauth/ajax"
        assert dict(server.requests[1].url.params) == {"ids[]": "1", "limit": "5"}

    @pytest.mark.asyncio
    async def test_timeout_propagates(self) -> None:
        """An elapsed timeout raises httpx.TimeoutException unchanged."""

        def hang(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        metrics = PipelineMetrics()
        transport = HttpTransport(ClientSession(), metrics, httpx.MockTransport(hang))

        with pytest.raises(httpx.TimeoutException):
            await transport.send(PreparedRequest(method="GET", url=URL, timeout_ms=1))

        assert metrics.http_transport_errors_total == 1

    @pytest.mark.asyncio
    async def test_form_is_multipart(self) -> None:
        """FormData with files is sent as multipart/form-data."""
        server = _server()
        transport = HttpTransport(ClientSession(), transport=server.transport)
        form = FormData()
        form.append("domain_type", "avatar")
        form.append("files[]", ("avatar.png", b"\x89PNG", "image/png"))

        await transport.send(
            PreparedRequest(method="POST", url=f"{BASE_URL}/api/files", form=form)
        )

        request = server.requests[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b"avatar.png" in request.content
        assert b"domain_type" in request.content


class TestTimeoutAndCookies:
    """Tests for timeouts and cookie handling."""

    @pytest.mark.asyncio
    async def test_request_timeout_applied(self) -> None:
        """The per-request timeout overrides the session default."""
        server = _server()
        session = ClientSession(request_timeout_ms=15000)
        transport = HttpTransport(session, transport=server.transport)

        await transport.send(PreparedRequest(method="GET", url=URL, timeout_ms=2500))

        assert server.requests[0].extensions["timeout"]["read"] == 2.5

    @pytest.mark.asyncio
    async def test_session_timeout_default(self) -> None:
        """Without override the session timeout applies."""
        server = _server()
        transport = HttpTransport(
            ClientSession(request_timeout_ms=15000), transport=server.transport
        )

        await transport.send(PreparedRequest(method="GET", url=URL))

        assert server.requests[0].extensions["timeout"]["connect"] == 15.0

    @pytest.mark.asyncio
    async def test_cookies_sent_with_credentials(self) -> None:
        """Session cookies are sent by default."""
        server = _server()
        cookies = httpx.Cookies()
        cookies.set("ChurchTools_ct", "abc", domain="ct.test")
        transport = HttpTransport(
            ClientSession(), transport=server.transport, cookies=cookies
        )

        await transport.send(PreparedRequest(method="GET", url=URL))

        assert "ChurchTools_ct=abc" in server.requests[0].headers["Cookie"]

    @pytest.mark.asyncio
    async def test_cookies_withheld_without_credentials(self) -> None:
        """with_credentials=False keeps the cookie jar out of requests."""
        server = _server()
        cookies = httpx.Cookies()
        cookies.set("ChurchTools_ct", "abc", domain="ct.test")
        transport = HttpTransport(
            ClientSession(with_credentials=False),
            transport=server.transport,
            cookies=cookies,
        )

        await transport.send(PreparedRequest(method="GET", url=URL))

        assert "Cookie" not in server.requests[0].headers


class TestMetrics:
    """Tests for transport metrics."""

    @pytest.mark.asyncio
    async def test_records_status(self) -> None:
        """Completed requests are counted by status."""
        server = _server()
        metrics = PipelineMetrics()
        transport = HttpTransport(ClientSession(), metrics, server.transport)

        await transport.send(PreparedRequest(method="GET", url=URL))
        await transport.send(PreparedRequest(method="GET", url=f"{BASE_URL}/api/x"))

        assert metrics.http_requests_total == {200: 1, 404: 1}
        assert metrics.http_request_count == 2

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self) -> None:
        """Network failures raise and are counted."""

        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        metrics = PipelineMetrics()
        transport = HttpTransport(
            ClientSession(), metrics, httpx.MockTransport(fail)
        )

        with pytest.raises(httpx.ConnectError):
            await transport.send(PreparedRequest(method="GET", url=URL))

        assert metrics.http_transport_errors_total == 1
        assert metrics.http_request_count == 0
