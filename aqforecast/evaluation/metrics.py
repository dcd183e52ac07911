"""Forecast scoring: ASE, MAPE and interval violation rate."""

from dataclasses import dataclass
from typing import Any, Dict, Sequence, Union
import logging

import numpy as np
import pandas as pd
from sklearn.metrics import mean_squared_error, mean_absolute_error

from aqforecast.data.structs import ForecastResult
from aqforecast.utils.error_handling import LengthMismatchError, NotComputableError

logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


def _aligned(*arrays: ArrayLike) -> list:
    converted = [np.asarray(a, dtype=float).ravel() for a in arrays]
    lengths = {len(a) for a in converted}
    if len(lengths) != 1:
        raise LengthMismatchError(
            f"Score inputs must have equal lengths, got {[len(a) for a in converted]}"
        )
    if converted[0].size == 0:
        raise LengthMismatchError("Score inputs are empty")
    return converted


def ase(predicted: ArrayLike, actual: ArrayLike) -> float:
    """Average squared error: mean((actual - predicted)^2)."""
    predicted, actual = _aligned(predicted, actual)
    return float(mean_squared_error(actual, predicted))


def mape(predicted: ArrayLike, actual: ArrayLike) -> float:
    """
    Mean absolute percentage error: 100 * mean(|(actual - predicted) / actual|).

    Exact hits contribute zero even where actual is zero.

    Raises:
        NotComputableError: If a non-zero error meets a zero actual value
    """
    predicted, actual = _aligned(predicted, actual)
    errors = actual - predicted
    with np.errstate(divide="ignore", invalid="ignore"):
        terms = np.where(errors == 0, 0.0, np.abs(errors / actual))
    value = 100.0 * float(np.mean(terms))
    if not np.isfinite(value):
        raise NotComputableError("MAPE is undefined: actual series contains zeros")
    return value


def confidence_score(lower: ArrayLike, upper: ArrayLike, actual: ArrayLike) -> float:
    """
    Percentage of actual values outside [lower, upper].

    This is a violation rate: 0 means every value was covered.
    """
    lower, upper, actual = _aligned(lower, upper, actual)
    outside = (actual < lower) | (actual > upper)
    return 100.0 * float(np.count_nonzero(outside)) / len(actual)


def score_forecast(result: ForecastResult, actual: ArrayLike) -> Dict[str, float]:
    """
    Score any forecast against ground truth.

    A non-computable MAPE is reported as NaN rather than aborting the
    aggregate; the interval score is present only when the forecast has one.
    """
    scores = {"ase": ase(result.point, actual)}
    try:
        scores["mape"] = mape(result.point, actual)
    except NotComputableError as e:
        logger.warning(f"{result.model_name or 'forecast'}: {e}")
        scores["mape"] = np.nan
    if result.has_interval:
        scores["confidence_score"] = confidence_score(result.lower, result.upper, actual)
    return scores


@dataclass
class MetricsResult:
    """Container for evaluation metrics."""
    metrics: Dict[str, float]
    model_name: str
    metadata: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "metrics": self.metrics,
            "model_name": self.model_name,
            "metadata": self.metadata,
        }


class MetricsCalculator:
    """Calculate evaluation metrics for forecasts."""

    def calculate_forecast_metrics(
        self,
        result: ForecastResult,
        actual: ArrayLike,
    ) -> Dict[str, float]:
        """
        Calculate the scoring protocol plus RMSE and MAE for reporting.

        Args:
            result: Forecast to score
            actual: Ground truth aligned with the forecast

        Returns:
            Dictionary of metric names to values
        """
        metrics = score_forecast(result, actual)
        predicted, truth = _aligned(result.point, actual)
        metrics["rmse"] = float(np.sqrt(metrics["ase"]))
        metrics["mae"] = float(mean_absolute_error(truth, predicted))
        return metrics

    def get_all_metrics(self, result: ForecastResult, actual: ArrayLike) -> MetricsResult:
        """
        Calculate all metrics for a forecast.

        Returns:
            MetricsResult containing all calculated metrics
        """
        return MetricsResult(
            metrics=self.calculate_forecast_metrics(result, actual),
            model_name=result.model_name,
            metadata={
                "n_samples": result.horizon,
                "has_interval": result.has_interval,
            },
        )
