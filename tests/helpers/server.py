"""Fake ChurchTools server backed by httpx.MockTransport."""

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from churchtools_client import ChurchToolsClient, ClientSettings


BASE_URL = "https://ct.test"

Handler = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]


def json_response(body: Any, status_code: int = 200) -> httpx.Response:
    """Build a JSON response."""
    return httpx.Response(status_code, json=body)


class FakeServer:
    """Routes requests by method and path and records every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Handler] = {}

    def route(self, method: str, path: str, handler: Handler | httpx.Response) -> None:
        """Register a handler (or fixed response) for method and path."""
        if isinstance(handler, httpx.Response):
            fixed = handler
            self._routes[(method, path)] = lambda _request: httpx.Response(
                fixed.status_code, content=fixed.content, headers=fixed.headers
            )
        else:
            self._routes[(method, path)] = handler

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self._routes.get((request.method, request.url.path))
        if handler is None:
            return json_response({"message": "not found"}, status_code=404)
        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def paths(self) -> list[str]:
        """Get the paths of all recorded requests, in order."""
        return [request.url.path for request in self.requests]

    def count(self, path: str) -> int:
        """Count recorded requests to a path."""
        return self.paths().count(path)


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_client(
    server: FakeServer,
    login_token: str | None = None,
    sleep: SleepRecorder | None = None,
    **settings: Any,
) -> ChurchToolsClient:
    """Create a client talking to the fake server."""
    return ChurchToolsClient(
        BASE_URL,
        login_token,
        settings=ClientSettings(_env_file=None, **settings),
        transport=server.transport,
        sleep=sleep or SleepRecorder(),
    )
