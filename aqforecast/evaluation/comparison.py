"""Model comparison across the scoring protocol."""

import logging
from typing import Dict, Mapping

import pandas as pd

from aqforecast.data.structs import ForecastResult
from aqforecast.evaluation.metrics import MetricsCalculator

logger = logging.getLogger(__name__)


class ModelComparator:
    """
    Collects forecasts from several models and ranks them against one truth.
    """

    def __init__(self):
        self.forecasts: Dict[str, ForecastResult] = {}
        self._calculator = MetricsCalculator()

    def add_forecast(self, name: str, result: ForecastResult) -> None:
        """
        Register a forecast for comparison.

        Args:
            name: Identifier for the model
            result: Its forecast over the comparison window
        """
        self.forecasts[name] = result

    def compare_metrics(self, actual: pd.Series) -> pd.DataFrame:
        """
        Score every registered forecast.

        Args:
            actual: Ground truth over the comparison window

        Returns:
            DataFrame with models as rows and metrics as columns, ranked by ASE
        """
        rows = {
            name: self._calculator.calculate_forecast_metrics(result, actual)
            for name, result in self.forecasts.items()
        }
        return compare_scores(rows)


def compare_scores(scores: Mapping[str, Mapping[str, float]]) -> pd.DataFrame:
    """
    Rank models by ASE, breaking ties by MAPE.

    Args:
        scores: Mapping of model name to its metric dictionary

    Returns:
        DataFrame indexed by model name with a 1-based 'rank' column
    """
    if not scores:
        return pd.DataFrame()
    table = pd.DataFrame.from_dict(scores, orient="index")
    sort_by = [c for c in ("ase", "mape") if c in table.columns]
    table = table.sort_values(sort_by, na_position="last")
    table["rank"] = range(1, len(table) + 1)
    table.index.name = "model"
    return table
