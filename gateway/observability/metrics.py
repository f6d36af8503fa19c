"""
Metrics Collection with Prometheus.

Exposes gateway and collaborator metrics for monitoring.
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
    POLICY = "policy"
    ERROR_TYPE = "error_type"


class GatewayMetrics:
    """
    Centralized metrics for the PayFlow gateway.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - Authentication attempts by outcome
    - Transfers by outcome and ledger call latency
    - Balance cache effectiveness
    - Admission rejections per policy
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
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "gateway_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Auth Metrics
        # ====================================================================
        self.auth_attempts_total = Counter(
            "gateway_auth_attempts_total",
            "Authentication attempts",
            [MetricLabels.OPERATION, MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Transfer Metrics
        # ====================================================================
        self.transfers_total = Counter(
            "gateway_transfers_total",
            "Transfers by outcome",
            [MetricLabels.OUTCOME],
        )

        self.ledger_request_duration_seconds = Histogram(
            "gateway_ledger_request_duration_seconds",
            "Ledger collaborator call duration in seconds",
            buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # ====================================================================
        # Cache Metrics
        # ====================================================================
        self.balance_cache_lookups_total = Counter(
            "gateway_balance_cache_lookups_total",
            "Balance cache lookups by result (hit, miss, error)",
            ["result"],
        )

        # ====================================================================
        # Admission Metrics
        # ====================================================================
        self.admission_rejections_total = Counter(
            "gateway_admission_rejections_total",
            "Requests rejected by admission control",
            [MetricLabels.POLICY],
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

    def record_auth_attempt(self, operation: str, outcome: str) -> None:
        """Record a login/register/refresh outcome."""
        self.auth_attempts_total.labels(operation=operation, outcome=outcome).inc()

    def record_transfer(self, outcome: str, ledger_duration: float | None = None) -> None:
        """Record a transfer outcome and, when the ledger was called, its latency."""
        self.transfers_total.labels(outcome=outcome).inc()
        if ledger_duration is not None:
            self.ledger_request_duration_seconds.observe(ledger_duration)

    def record_cache_lookup(self, result: str) -> None:
        """Record a balance cache hit, miss or error."""
        self.balance_cache_lookups_total.labels(result=result).inc()

    def record_admission_rejection(self, policy: str) -> None:
        """Record a rejected request."""
        self.admission_rejections_total.labels(policy=policy).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = GatewayMetrics()
