"""Unit tests for pipeline metrics."""

from churchtools_client.pipeline.metrics import PipelineMetrics


class TestPipelineMetrics:
    """Tests for PipelineMetrics."""

    def test_initial_values(self) -> None:
        """Test that metrics start at zero."""
        metrics = PipelineMetrics()

        assert metrics.http_requests_total == {}
        assert metrics.relogin_attempts_total == 0
        assert metrics.avg_duration_ms == 0.0

    def test_record_request(self) -> None:
        """Test recording requests by status."""
        metrics = PipelineMetrics()

        metrics.record_request(200, 10.0)
        metrics.record_request(200, 30.0)
        metrics.record_request(401, 5.0)

        assert metrics.http_requests_total == {200: 2, 401: 1}
        assert metrics.avg_duration_ms == 15.0

    def test_record_relogin(self) -> None:
        """Test that failures are counted as attempts too."""
        metrics = PipelineMetrics()

        metrics.record_relogin(success=True)
        metrics.record_relogin(success=False)

        assert metrics.relogin_attempts_total == 2
        assert metrics.relogin_failures_total == 1

    def test_to_dict(self) -> None:
        """Test dictionary export."""
        metrics = PipelineMetrics()
        metrics.record_rate_limited()
        metrics.record_deferred()
        metrics.record_unauthenticated()
        metrics.record_transport_error()

        result = metrics.to_dict()

        assert result["rate_limited_total"] == 1
        assert result["deferred_calls_total"] == 1
        assert result["unauthenticated_notifications_total"] == 1
        assert result["http_transport_errors_total"] == 1
