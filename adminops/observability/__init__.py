"""
Observability module - Logging, Metrics, and Tracing.
"""

from adminops.observability.logging import get_logger, log_context, setup_logging
from adminops.observability.metrics import metrics
from adminops.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
    "trace_operation",
]
