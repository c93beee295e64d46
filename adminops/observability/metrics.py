"""
Metrics Collection with Prometheus.

Exposes command, audit and store metrics for monitoring.
"""

from enum import Enum

from prometheus_client import REGISTRY, Counter, Histogram, Info, generate_latest


class MetricLabels(str, Enum):
    """Standard metric label names."""

    COMMAND = "command"
    OUTCOME = "outcome"
    OPERATION = "operation"
    REASON = "reason"


class AdminMetrics:
    """
    Centralized metrics for the admin command executor.

    Covers:
    - Commands (rate, duration, outcome)
    - Authorization denials
    - Audit writes and other best-effort side calls
    - Store operations (query duration)
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "adminops_service",
            "Service information",
        )

        # ====================================================================
        # Command Metrics
        # ====================================================================
        self.commands_total = Counter(
            "adminops_commands_total",
            "Total administrative commands executed",
            [MetricLabels.COMMAND, MetricLabels.OUTCOME],
        )

        self.command_duration_seconds = Histogram(
            "adminops_command_duration_seconds",
            "Command duration in seconds",
            [MetricLabels.COMMAND],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
        )

        self.authorization_denials_total = Counter(
            "adminops_authorization_denials_total",
            "Total rejected authorization attempts",
            [MetricLabels.REASON],
        )

        # ====================================================================
        # Audit / Best-effort Metrics
        # ====================================================================
        self.audit_writes_total = Counter(
            "adminops_audit_writes_total",
            "Total audit log writes attempted",
            ["success"],
        )

        self.best_effort_failures_total = Counter(
            "adminops_best_effort_failures_total",
            "Side calls that failed without failing their command",
            [MetricLabels.OPERATION],
        )

        # ====================================================================
        # Store Metrics
        # ====================================================================
        self.db_queries_total = Counter(
            "adminops_db_queries_total",
            "Total store queries",
            [MetricLabels.OPERATION, "success"],
        )

        self.db_query_duration_seconds = Histogram(
            "adminops_db_query_duration_seconds",
            "Store query duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def set_service_info(self, service_name: str, version: str) -> None:
        """Publish service name and version."""
        self.service_info.info({"service_name": service_name, "version": version})

    def record_command(self, command: str, outcome: str, duration: float) -> None:
        """Record command metrics. ``outcome`` is "success", "cancelled" or an error kind."""
        self.commands_total.labels(command=command, outcome=outcome).inc()
        self.command_duration_seconds.labels(command=command).observe(duration)

    def record_authorization_denial(self, reason: str) -> None:
        self.authorization_denials_total.labels(reason=reason).inc()

    def record_audit_write(self, success: bool) -> None:
        self.audit_writes_total.labels(success=str(success)).inc()

    def record_best_effort_failure(self, operation: str) -> None:
        self.best_effort_failures_total.labels(operation=operation).inc()

    def record_db_query(self, operation: str, success: bool, duration: float) -> None:
        """Record store query metrics."""
        self.db_queries_total.labels(operation=operation, success=str(success)).inc()
        self.db_query_duration_seconds.labels(operation=operation).observe(duration)


# Global metrics instance
metrics = AdminMetrics()


def render_metrics() -> bytes:
    """Prometheus text exposition of the default registry."""
    return generate_latest(REGISTRY)
