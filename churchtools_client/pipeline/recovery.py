"""Anomaly detection and recovery for the request pipeline.

Two anomalies are recovered transparently:
- Session expiry: re-login with the configured login token, then re-issue
- Rate limiting: wait the configured backoff, then re-issue, until accepted

Concurrent requests that observe an expired session while a re-login is
running attach to that same re-login instead of starting another one.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace

import httpx
import structlog

from churchtools_client.constants import (
    CSRF_TOKEN_HEADER,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    HTTP_STATUS_UNAUTHORIZED,
    SESSION_EXPIRED_MESSAGE,
)
from churchtools_client.errors import ChurchToolsError, UnauthorizedError
from churchtools_client.pipeline.chain import MiddlewareKind, Send
from churchtools_client.pipeline.deferral import DeferralQueue
from churchtools_client.pipeline.metrics import PipelineMetrics
from churchtools_client.pipeline.models import (
    ClientSession,
    PreparedRequest,
    ResponseKind,
    UnauthenticatedInfo,
)
from churchtools_client.pipeline.normalizer import decode_body


logger = structlog.get_logger()

LoginProbe = Callable[[str, int | None], Awaitable[None]]
UnauthenticatedCallback = Callable[[UnauthenticatedInfo], None]
Sleep = Callable[[float], Awaitable[None]]


def is_session_expired(response: httpx.Response) -> bool:
    """Check whether a response reports an expired session.

    The server answers 401, or sometimes 200 with a body message saying so.

    Args:
        response: Transport response.

    Returns:
        True if the session has expired.
    """
    if response.status_code == HTTP_STATUS_UNAUTHORIZED:
        return True
    if not HTTP_STATUS_OK_MIN <= response.status_code < HTTP_STATUS_OK_MAX:
        return False
    body = decode_body(response)
    return isinstance(body, Mapping) and body.get("message") == SESSION_EXPIRED_MESSAGE


def is_rate_limited(response: httpx.Response) -> bool:
    """Check whether a response is 429 Too Many Requests."""
    return response.status_code == HTTP_STATUS_TOO_MANY_REQUESTS


def classify_response(response: httpx.Response) -> ResponseKind:
    """Classify a transport response.

    Args:
        response: Transport response.

    Returns:
        The response kind.
    """
    if is_session_expired(response):
        return ResponseKind.SESSION_EXPIRED
    if is_rate_limited(response):
        return ResponseKind.RATE_LIMITED
    if response.status_code >= HTTP_STATUS_BAD_REQUEST:
        return ResponseKind.HTTP_ERROR
    return ResponseKind.OK


class UnauthenticatedNotifier:
    """Registry of listeners told when a session cannot be recovered."""

    def __init__(self, metrics: PipelineMetrics | None = None) -> None:
        self._callbacks: list[UnauthenticatedCallback] = []
        self._metrics = metrics or PipelineMetrics()
        self._log = logger.bind(component="recovery")

    def register(self, callback: UnauthenticatedCallback) -> None:
        """Register a listener."""
        self._callbacks.append(callback)

    def notify(self, info: UnauthenticatedInfo) -> None:
        """Call every listener with the given info."""
        self._metrics.record_unauthenticated()
        self._log.info("unauthenticated_notified", url=info.url)
        for callback in self._callbacks:
            callback(info)


class LoginRecovery:
    """Runs at most one re-login at a time and shares its outcome.

    While a re-login is in flight the deferral queue is held in
    LOGIN_IN_FLIGHT, so no new request reaches the server with the
    invalid session.
    """

    def __init__(
        self,
        queue: DeferralQueue,
        probe: LoginProbe,
        metrics: PipelineMetrics | None = None,
    ) -> None:
        """Initialize the login recovery.

        Args:
            queue: Deferral queue to hold during re-login.
            probe: Coroutine performing the re-login request.
            metrics: Metrics sink.
        """
        self._queue = queue
        self._probe = probe
        self._metrics = metrics or PipelineMetrics()
        self._current: asyncio.Task[None] | None = None
        self._log = logger.bind(component="recovery")

    @property
    def is_running(self) -> bool:
        """Check if a re-login is in flight."""
        return self._current is not None

    async def login(self, login_token: str, person_id: int | None = None) -> None:
        """Re-login, or wait for the re-login already in flight.

        Args:
            login_token: Long-lived login token.
            person_id: Person the token belongs to.

        Raises:
            Exception: Whatever the re-login request raised.
        """
        if self._current is None:
            self._queue.begin_login()
            self._log.warning("relogin_started", person_id=person_id)
            task = asyncio.create_task(self._run(login_token, person_id))
            task.add_done_callback(_consume_exception)
            self._current = task
        else:
            self._log.debug("relogin_joined")
        await asyncio.shield(self._current)

    async def _run(self, login_token: str, person_id: int | None) -> None:
        try:
            await self._probe(login_token, person_id)
        except Exception as e:
            self._metrics.record_relogin(success=False)
            self._log.warning(
                "relogin_failed", error=str(e), error_type=type(e).__name__
            )
            raise
        else:
            self._metrics.record_relogin(success=True)
            self._log.info("relogin_succeeded")
        finally:
            self._current = None
            self._queue.end_login()


def _consume_exception(task: "asyncio.Task[None]") -> None:
    # Callers may all have been cancelled; keep asyncio from warning.
    if not task.cancelled():
        task.exception()


class SessionExpiryMiddleware:
    """Recovers expired sessions by re-login and re-issue.

    Without a login token, or when the failing request is the re-login
    probe itself, listeners are notified and the anomaly is surfaced.
    """

    kind = MiddlewareKind.SESSION_EXPIRY

    def __init__(
        self,
        session: ClientSession,
        recovery: LoginRecovery,
        notifier: UnauthenticatedNotifier,
        login_token: str | None = None,
        person_id: int | None = None,
    ) -> None:
        """Initialize the middleware.

        Args:
            session: Session state (base URL and anti-forgery token).
            recovery: Shared login recovery.
            notifier: Unauthenticated listeners.
            login_token: Token used for re-login; None disables recovery.
            person_id: Person the token belongs to.
        """
        self._session = session
        self._recovery = recovery
        self._notifier = notifier
        self.login_token = login_token
        self.person_id = person_id
        self._log = logger.bind(component="recovery")

    async def __call__(
        self,
        request: PreparedRequest,
        call_next: Send,
        resend: Send,
    ) -> httpx.Response:
        response = await call_next(request)
        if classify_response(response) is not ResponseKind.SESSION_EXPIRED:
            return response
        if request.relogin_attempted:
            return response

        if request.is_login_probe or not self.login_token:
            self._notify(response, request)
            return response

        self._log.info("session_expired", url=request.url)
        try:
            await self._recovery.login(self.login_token, self.person_id)
        except (httpx.HTTPError, ChurchToolsError):
            return response

        retry = replace(request, relogin_attempted=True)
        if CSRF_TOKEN_HEADER in request.headers:
            retry = retry.with_header(CSRF_TOKEN_HEADER, self._session.csrf_token or "")
        retried = await resend(retry)
        if classify_response(retried) is ResponseKind.SESSION_EXPIRED:
            self._log.warning("relogin_rejected", url=request.url)
            self._notify(retried, request)
        return retried

    def _notify(self, response: httpx.Response, request: PreparedRequest) -> None:
        self._notifier.notify(
            UnauthenticatedInfo(
                error=UnauthorizedError(response),
                url=request.url,
                base_url=self._session.base_url,
            )
        )


class RateLimitMiddleware:
    """Waits and re-issues requests answered with 429 until accepted.

    There is no attempt cap; every 429 triggers another fixed wait.
    """

    kind = MiddlewareKind.RATE_LIMIT

    def __init__(
        self,
        session: ClientSession,
        metrics: PipelineMetrics | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the middleware.

        Args:
            session: Session state providing the backoff duration.
            metrics: Metrics sink.
            sleep: Coroutine function used to wait (seconds).
        """
        self._session = session
        self._metrics = metrics or PipelineMetrics()
        self._sleep = sleep
        self._log = logger.bind(component="recovery")

    async def __call__(
        self,
        request: PreparedRequest,
        call_next: Send,
        resend: Send,
    ) -> httpx.Response:
        response = await call_next(request)
        attempt = 0
        while classify_response(response) is ResponseKind.RATE_LIMITED:
            attempt += 1
            delay_ms = self._session.rate_limit_timeout_ms
            self._metrics.record_rate_limited()
            self._log.info(
                "rate_limited", url=request.url, attempt=attempt, delay_ms=delay_ms
            )
            await self._sleep(delay_ms / 1000.0)
            response = await call_next(request)
        return response
