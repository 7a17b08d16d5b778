"""Utility modules for the voice tutor."""

from .performance_metrics import PerformanceMetrics
from .retry import RetryExhaustedError, with_retry

__all__ = [
    "PerformanceMetrics",
    "RetryExhaustedError",
    "with_retry",
]
