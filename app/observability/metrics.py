"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class SessionMetrics:
    """
    Centralized metrics for the avatar minutes API.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Session transitions (start, terminate, sweep)
    - Vendor calls (rate, duration, failures)
    - Payments (applied, replayed, rejected)
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "avatar_minutes_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "avatar_minutes_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "avatar_minutes_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "avatar_minutes_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Session Metrics
        # ====================================================================
        self.session_starts_total = Counter(
            "avatar_minutes_session_starts_total",
            "Session start attempts by outcome",
            [MetricLabels.OUTCOME],
        )

        self.session_reserved_minutes = Histogram(
            "avatar_minutes_session_reserved_minutes",
            "Minutes reserved per started session",
            buckets=(1, 5, 10, 15, 30, 60, 120),
        )

        self.session_transitions_total = Counter(
            "avatar_minutes_session_transitions_total",
            "Terminal session transitions (terminated, cleaned, lost_race)",
            [MetricLabels.OUTCOME],
        )

        self.session_minutes_used = Histogram(
            "avatar_minutes_session_minutes_used",
            "Minutes recorded as used when a session ends",
            buckets=(1, 2, 5, 10, 15, 30, 60, 120),
        )

        self.sweep_runs_total = Counter(
            "avatar_minutes_sweep_runs_total",
            "Cleanup passes executed",
        )

        self.sweep_expired_sessions = Gauge(
            "avatar_minutes_sweep_expired_sessions",
            "Expired sessions found by the last cleanup pass",
        )

        # ====================================================================
        # Vendor Metrics
        # ====================================================================
        self.vendor_requests_total = Counter(
            "avatar_minutes_vendor_requests_total",
            "LiveAvatar API calls",
            [MetricLabels.OPERATION, MetricLabels.OUTCOME],
        )

        self.vendor_request_duration_seconds = Histogram(
            "avatar_minutes_vendor_request_duration_seconds",
            "LiveAvatar API call duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # ====================================================================
        # Payment Metrics
        # ====================================================================
        self.payments_total = Counter(
            "avatar_minutes_payments_total",
            "Payment callbacks by outcome (applied, duplicate, rejected, failed)",
            [MetricLabels.OUTCOME],
        )

        self.payment_minutes = Histogram(
            "avatar_minutes_payment_minutes",
            "Minutes credited per applied payment",
            buckets=(5, 10, 15, 30, 60, 120, 300),
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "avatar_minutes_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_session_start(self, outcome: str, minutes: int | None = None) -> None:
        """Record a start attempt; minutes only for successful starts."""
        self.session_starts_total.labels(outcome=outcome).inc()
        if minutes is not None:
            self.session_reserved_minutes.observe(minutes)

    def record_session_transition(self, outcome: str, minutes_used: int | None = None) -> None:
        """Record a terminal transition or a lost race."""
        self.session_transitions_total.labels(outcome=outcome).inc()
        if minutes_used is not None:
            self.session_minutes_used.observe(minutes_used)

    def record_sweep(self, total_expired: int) -> None:
        """Record a cleanup pass."""
        self.sweep_runs_total.inc()
        self.sweep_expired_sessions.set(total_expired)

    def record_vendor_call(self, operation: str, outcome: str, duration: float) -> None:
        """Record a LiveAvatar API call."""
        self.vendor_requests_total.labels(operation=operation, outcome=outcome).inc()
        self.vendor_request_duration_seconds.labels(operation=operation).observe(duration)

    def record_payment(self, outcome: str, minutes: int | None = None) -> None:
        """Record a payment callback."""
        self.payments_total.labels(outcome=outcome).inc()
        if minutes is not None:
            self.payment_minutes.observe(minutes)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = SessionMetrics()
