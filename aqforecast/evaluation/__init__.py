"""Forecast scoring, model comparison and plotting."""

from aqforecast.evaluation.metrics import (
    MetricsCalculator,
    MetricsResult,
    ase,
    confidence_score,
    mape,
    score_forecast,
)
from aqforecast.evaluation.comparison import ModelComparator, compare_scores

__all__ = [
    "MetricsCalculator",
    "MetricsResult",
    "ase",
    "confidence_score",
    "mape",
    "score_forecast",
    "ModelComparator",
    "compare_scores",
]
