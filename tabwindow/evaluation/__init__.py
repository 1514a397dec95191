"""Evaluation metrics."""

from tabwindow.evaluation.metrics import MetricsCalculator, MetricsResult

__all__ = [
    "MetricsCalculator",
    "MetricsResult",
]
