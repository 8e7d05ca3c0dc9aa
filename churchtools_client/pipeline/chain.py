"""Middleware chain composed around the transport.

Each middleware receives the request, a `call_next` continuation into
the rest of the chain, and a `resend` entry point re-running the whole
chain from the top.
"""

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Protocol

import httpx
import structlog

from churchtools_client.pipeline.models import PreparedRequest


logger = structlog.get_logger()

Send = Callable[[PreparedRequest], Awaitable[httpx.Response]]


class MiddlewareKind(str, Enum):
    """Slot a middleware occupies; one instance per kind is installed."""

    SESSION_EXPIRY = "SESSION_EXPIRY"
    RATE_LIMIT = "RATE_LIMIT"


class Middleware(Protocol):
    """Protocol for response middlewares."""

    kind: MiddlewareKind

    async def __call__(
        self,
        request: PreparedRequest,
        call_next: Send,
        resend: Send,
    ) -> httpx.Response:
        """Handle one request.

        Args:
            request: The request being sent.
            call_next: Sends the request through the rest of the chain.
            resend: Sends a request through the whole chain.

        Returns:
            The (possibly recovered) response.
        """
        ...


class MiddlewareChain:
    """Ordered middlewares around a terminal send function."""

    def __init__(self, terminal: Send) -> None:
        """Initialize the chain.

        Args:
            terminal: Function sending a request over the wire.
        """
        self._terminal = terminal
        self._middlewares: list[Middleware] = []
        self._log = logger.bind(component="chain")

    @property
    def kinds(self) -> list[MiddlewareKind]:
        """Get the installed middleware kinds, outermost first."""
        return [middleware.kind for middleware in self._middlewares]

    def get(self, kind: MiddlewareKind) -> Middleware | None:
        """Get the installed middleware of a kind."""
        for middleware in self._middlewares:
            if middleware.kind is kind:
                return middleware
        return None

    def install(self, middleware: Middleware) -> None:
        """Install a middleware, ejecting the previous one of the same kind.

        New middlewares are appended innermost.

        Args:
            middleware: The middleware to install.
        """
        ejected = self.eject(middleware.kind)
        self._middlewares.append(middleware)
        self._log.debug(
            "middleware_installed", kind=middleware.kind.value, replaced=ejected
        )

    def eject(self, kind: MiddlewareKind) -> bool:
        """Remove the middleware of a kind.

        Args:
            kind: Kind to remove.

        Returns:
            True if a middleware was removed.
        """
        before = len(self._middlewares)
        self._middlewares = [m for m in self._middlewares if m.kind is not kind]
        return len(self._middlewares) != before

    async def dispatch(self, request: PreparedRequest) -> httpx.Response:
        """Send a request through all installed middlewares.

        Args:
            request: The request to send.

        Returns:
            The final response.
        """
        middlewares = tuple(self._middlewares)

        async def call(index: int, current: PreparedRequest) -> httpx.Response:
            if index == len(middlewares):
                return await self._terminal(current)
            return await middlewares[index](
                current,
                lambda next_request: call(index + 1, next_request),
                self.dispatch,
            )

        return await call(0, request)
