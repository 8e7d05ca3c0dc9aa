"""Unit tests for the middleware chain."""

import httpx
import pytest

from churchtools_client.pipeline.chain import MiddlewareChain, MiddlewareKind, Send
from churchtools_client.pipeline.models import PreparedRequest


class RecordingMiddleware:
    """Middleware that records the order it sees requests in."""

    def __init__(self, kind: MiddlewareKind, name: str, seen: list[str]) -> None:
        self.kind = kind
        self.name = name
        self.seen = seen

    async def __call__(
        self, request: PreparedRequest, call_next: Send, resend: Send
    ) -> httpx.Response:
        self.seen.append(f"{self.name}:in")
        response = await call_next(request)
        self.seen.append(f"{self.name}:out")
        return response


def _request() -> PreparedRequest:
    return PreparedRequest(method="GET", url="https://ct.test/api/persons")


class TestMiddlewareChain:
    """Tests for MiddlewareChain."""

    @pytest.mark.asyncio
    async def test_empty_chain_calls_terminal(self) -> None:
        """Without middlewares the terminal is called directly."""
        sent: list[PreparedRequest] = []

        async def terminal(request: PreparedRequest) -> httpx.Response:
            sent.append(request)
            return httpx.Response(200)

        chain = MiddlewareChain(terminal)
        response = await chain.dispatch(_request())

        assert response.status_code == 200
        assert len(sent) == 1

    @pytest.mark.asyncio
    async def test_middlewares_run_outermost_first(self) -> None:
        """Middlewares wrap each other in install order."""
        seen: list[str] = []

        async def terminal(request: PreparedRequest) -> httpx.Response:
            seen.append("terminal")
            return httpx.Response(200)

        chain = MiddlewareChain(terminal)
        chain.install(RecordingMiddleware(MiddlewareKind.SESSION_EXPIRY, "a", seen))
        chain.install(RecordingMiddleware(MiddlewareKind.RATE_LIMIT, "b", seen))

        await chain.dispatch(_request())

        assert seen == ["a:in", "b:in", "terminal", "b:out", "a:out"]

    def test_install_replaces_same_kind(self) -> None:
        """Installing a kind twice keeps only the newer middleware."""

        async def terminal(request: PreparedRequest) -> httpx.Response:
            return httpx.Response(200)

        chain = MiddlewareChain(terminal)
        first = RecordingMiddleware(MiddlewareKind.RATE_LIMIT, "first", [])
        second = RecordingMiddleware(MiddlewareKind.RATE_LIMIT, "second", [])

        chain.install(first)
        chain.install(second)

        assert chain.kinds == [MiddlewareKind.RATE_LIMIT]
        assert chain.get(MiddlewareKind.RATE_LIMIT) is second

    def test_eject(self) -> None:
        """Ejecting removes the middleware and reports whether it existed."""

        async def terminal(request: PreparedRequest) -> httpx.Response:
            return httpx.Response(200)

        chain = MiddlewareChain(terminal)
        chain.install(RecordingMiddleware(MiddlewareKind.RATE_LIMIT, "r", []))

        assert chain.eject(MiddlewareKind.RATE_LIMIT) is True
        assert chain.eject(MiddlewareKind.RATE_LIMIT) is False
        assert chain.get(MiddlewareKind.RATE_LIMIT) is None

    @pytest.mark.asyncio
    async def test_resend_reenters_whole_chain(self) -> None:
        """resend runs the request through every middleware again."""
        seen: list[str] = []

        class ResendOnce:
            kind = MiddlewareKind.SESSION_EXPIRY

            async def __call__(
                self, request: PreparedRequest, call_next: Send, resend: Send
            ) -> httpx.Response:
                seen.append("resend:in")
                response = await call_next(request)
                if request.relogin_attempted:
                    return response
                return await resend(
                    PreparedRequest(
                        method=request.method, url=request.url, relogin_attempted=True
                    )
                )

        async def terminal(request: PreparedRequest) -> httpx.Response:
            seen.append("terminal")
            return httpx.Response(200)

        chain = MiddlewareChain(terminal)
        chain.install(ResendOnce())
        chain.install(RecordingMiddleware(MiddlewareKind.RATE_LIMIT, "inner", seen))

        await chain.dispatch(_request())

        assert seen == [
            "resend:in",
            "inner:in",
            "terminal",
            "inner:out",
            "resend:in",
            "inner:in",
            "terminal",
            "inner:out",
        ]
