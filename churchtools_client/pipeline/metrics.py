"""Metrics collection for the request pipeline."""

from dataclasses import dataclass, field


@dataclass
class PipelineMetrics:
    """Metrics for one client's request pipeline.

    Tracks request counts by status, transport failures, re-login
    attempts, rate-limit waits and deferred calls.
    """

    http_requests_total: dict[int, int] = field(default_factory=dict)
    http_transport_errors_total: int = 0
    http_duration_ms_total: float = 0.0
    http_request_count: int = 0
    relogin_attempts_total: int = 0
    relogin_failures_total: int = 0
    rate_limited_total: int = 0
    deferred_calls_total: int = 0
    unauthenticated_notifications_total: int = 0

    def record_request(self, status_code: int, duration_ms: float) -> None:
        """Record a completed HTTP request.

        Args:
            status_code: HTTP status code.
            duration_ms: Duration in milliseconds.
        """
        self.http_requests_total[status_code] = (
            self.http_requests_total.get(status_code, 0) + 1
        )
        self.http_duration_ms_total += duration_ms
        self.http_request_count += 1

    def record_transport_error(self) -> None:
        """Record a request that failed without a response."""
        self.http_transport_errors_total += 1

    def record_relogin(self, success: bool) -> None:
        """Record a re-login attempt.

        Args:
            success: Whether the re-login succeeded.
        """
        self.relogin_attempts_total += 1
        if not success:
            self.relogin_failures_total += 1

    def record_rate_limited(self) -> None:
        """Record a 429 followed by a backoff wait."""
        self.rate_limited_total += 1

    def record_deferred(self) -> None:
        """Record a request parked by the deferral queue."""
        self.deferred_calls_total += 1

    def record_unauthenticated(self) -> None:
        """Record an unauthenticated notification."""
        self.unauthenticated_notifications_total += 1

    def to_dict(self) -> dict[str, int | float | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "http_requests_total": dict(self.http_requests_total),
            "http_transport_errors_total": self.http_transport_errors_total,
            "http_duration_ms_total": self.http_duration_ms_total,
            "http_request_count": self.http_request_count,
            "relogin_attempts_total": self.relogin_attempts_total,
            "relogin_failures_total": self.relogin_failures_total,
            "rate_limited_total": self.rate_limited_total,
            "deferred_calls_total": self.deferred_calls_total,
            "unauthenticated_notifications_total": (
                self.unauthenticated_notifications_total
            ),
        }

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average request duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.http_request_count == 0:
            return 0.0
        return self.http_duration_ms_total / self.http_request_count
