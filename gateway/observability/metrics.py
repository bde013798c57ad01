"""
Metrics Collection with Prometheus.

Exposes control-plane and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from gateway.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    LIMITER = "limiter"
    GENERATION_TYPE = "generation_type"
    ERROR_TYPE = "error_type"


class GatewayMetrics:
    """
    Centralized metrics for the gateway.

    Minimum viable metrics covering:
    - HTTP requests (rate, duration, errors)
    - Auth events (login, register, refresh, outcome)
    - Credit deductions and additions
    - Rate limit rejections per limiter
    - Provider calls (rate, duration, failures)
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "gateway_service",
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
            "gateway_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "gateway_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.http_requests_in_progress = Gauge(
            "gateway_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Auth Metrics
        # ====================================================================
        self.auth_events_total = Counter(
            "gateway_auth_events_total",
            "Authentication events by operation and outcome",
            [MetricLabels.OPERATION, MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Credit Metrics
        # ====================================================================
        self.credits_deducted_total = Counter(
            "gateway_credits_deducted_total",
            "Total credits deducted for usage",
            [MetricLabels.GENERATION_TYPE],
        )

        self.credits_added_total = Counter(
            "gateway_credits_added_total",
            "Total credits added to accounts",
            [MetricLabels.OPERATION],
        )

        self.credit_rejections_total = Counter(
            "gateway_credit_rejections_total",
            "Operations rejected for insufficient credits",
        )

        # ====================================================================
        # Rate Limit Metrics
        # ====================================================================
        self.rate_limited_total = Counter(
            "gateway_rate_limited_total",
            "Requests rejected by a rate limiter",
            [MetricLabels.LIMITER],
        )

        # ====================================================================
        # Provider Metrics
        # ====================================================================
        self.provider_calls_total = Counter(
            "gateway_provider_calls_total",
            "Generation provider calls",
            [MetricLabels.OUTCOME],
        )

        self.provider_call_duration_seconds = Histogram(
            "gateway_provider_call_duration_seconds",
            "Generation provider call duration in seconds",
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0),
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "gateway_errors_total",
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

    def record_auth_event(self, operation: str, success: bool) -> None:
        """Record a login/register/refresh/logout outcome."""
        self.auth_events_total.labels(
            operation=operation, outcome="success" if success else "failure"
        ).inc()

    def record_deduction(self, generation_type: str, amount: int) -> None:
        """Record credits spent."""
        self.credits_deducted_total.labels(generation_type=generation_type).inc(amount)

    def record_credit_addition(self, operation: str, amount: int) -> None:
        """Record credits added (grant or plan reset)."""
        self.credits_added_total.labels(operation=operation).inc(amount)

    def record_rate_limited(self, limiter: str) -> None:
        """Record a rate limit rejection."""
        self.rate_limited_total.labels(limiter=limiter).inc()

    def record_provider_call(self, success: bool, duration: float) -> None:
        """Record a generation provider call."""
        self.provider_calls_total.labels(outcome="success" if success else "failure").inc()
        self.provider_call_duration_seconds.observe(duration)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = GatewayMetrics()
