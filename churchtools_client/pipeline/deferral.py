"""Deferral queue gating requests behind setup and re-login.

The very first request of a client establishes session state server-side,
and a running re-login invalidates the session of everything sent
meanwhile. While either is outstanding, new requests are parked and
released once it settles.
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

import structlog

from churchtools_client.pipeline.metrics import PipelineMetrics


logger = structlog.get_logger()

T = TypeVar("T")


class DeferralState(str, Enum):
    """State of the deferral gate.

    - IDLE: Requests run immediately
    - FIRST_IN_FLIGHT: The client's first request is outstanding
    - LOGIN_IN_FLIGHT: A re-login is outstanding
    """

    IDLE = "IDLE"
    FIRST_IN_FLIGHT = "FIRST_IN_FLIGHT"
    LOGIN_IN_FLIGHT = "LOGIN_IN_FLIGHT"


class DeferralStateTransitionError(Exception):
    """Raised when the gate is driven into an inconsistent state."""

    def __init__(self, from_state: DeferralState, action: str) -> None:
        """Initialize the transition error.

        Args:
            from_state: Current state.
            action: Attempted action.
        """
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"Illegal deferral transition: {action} while {from_state.value}"
        )


class DeferralQueue:
    """Gate that defers requests while setup or re-login is outstanding.

    Parked requests are released most-recently-queued first. The only
    ordering guarantee is that nothing deferred starts before the blocking
    operation has settled.
    """

    def __init__(self, metrics: PipelineMetrics | None = None) -> None:
        """Initialize the deferral queue.

        Args:
            metrics: Metrics sink for deferred call counts.
        """
        self._first_started = False
        self._first_completed = False
        self._login_running = False
        self._pending: list[asyncio.Future[None]] = []
        self._metrics = metrics or PipelineMetrics()
        self._log = logger.bind(component="deferral")

    @property
    def state(self) -> DeferralState:
        """Get the current gate state."""
        if self._login_running:
            return DeferralState.LOGIN_IN_FLIGHT
        if self._first_started and not self._first_completed:
            return DeferralState.FIRST_IN_FLIGHT
        return DeferralState.IDLE

    @property
    def is_blocked(self) -> bool:
        """Check if new requests would be parked."""
        return self.state is not DeferralState.IDLE

    @property
    def pending_count(self) -> int:
        """Get the number of parked requests."""
        return sum(1 for gate in self._pending if not gate.done())

    async def run(
        self,
        call: Callable[[], Awaitable[T]],
        deferred: bool = True,
    ) -> T:
        """Run a call once the gate allows it.

        Args:
            call: Zero-argument coroutine factory issuing the request.
            deferred: If False, bypass the gate (internal calls only).

        Returns:
            The call's result.
        """
        if not deferred:
            return await call()

        if self.is_blocked:
            gate: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._pending.append(gate)
            self._metrics.record_deferred()
            self._log.debug(
                "request_deferred", state=self.state.value, pending=len(self._pending)
            )
            await gate
            return await call()

        is_first = not self._first_started
        self._first_started = True
        if is_first:
            self._log.debug(
                "state_transition",
                from_state=DeferralState.IDLE.value,
                to_state=DeferralState.FIRST_IN_FLIGHT.value,
            )
        try:
            return await call()
        finally:
            if is_first:
                self._first_completed = True
                self._log.debug(
                    "state_transition",
                    from_state=DeferralState.FIRST_IN_FLIGHT.value,
                    to_state=self.state.value,
                )
            self._drain()

    def begin_login(self) -> None:
        """Enter LOGIN_IN_FLIGHT.

        Raises:
            DeferralStateTransitionError: If a login is already running.
        """
        if self._login_running:
            raise DeferralStateTransitionError(self.state, "begin_login")
        old_state = self.state
        self._login_running = True
        self._log.info(
            "state_transition",
            from_state=old_state.value,
            to_state=DeferralState.LOGIN_IN_FLIGHT.value,
        )

    def end_login(self) -> None:
        """Leave LOGIN_IN_FLIGHT and release parked requests.

        Raises:
            DeferralStateTransitionError: If no login is running.
        """
        if not self._login_running:
            raise DeferralStateTransitionError(self.state, "end_login")
        self._login_running = False
        self._log.info(
            "state_transition",
            from_state=DeferralState.LOGIN_IN_FLIGHT.value,
            to_state=self.state.value,
        )
        self._drain()

    def _drain(self) -> None:
        if self.is_blocked:
            return
        released = 0
        while self._pending:
            gate = self._pending.pop()
            if not gate.done():
                gate.set_result(None)
                released += 1
        if released:
            self._log.debug("deferred_requests_released", count=released)
