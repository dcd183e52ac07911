"""Multi-seasonal decomposition with an ARIMA model on the adjusted series."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging
import warnings

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.arima.model import ARIMA
from statsmodels.tsa.seasonal import MSTL

from aqforecast.data.structs import TimeSeriesData
from aqforecast.models.base_model import BaseForecaster, ModelState
from aqforecast.models.sarima import INTERVAL_ALPHA

logger = logging.getLogger(__name__)


@dataclass
class MSTLFit:
    """Fitted decomposition: the seasonal components and the ARIMA on the remainder."""
    periods: List[int]
    seasonal: np.ndarray
    arima: Any


def usable_periods(periods: List[int], n_observations: int) -> List[int]:
    """Periods with at least two full cycles in the history."""
    kept = sorted({int(p) for p in periods if 2 <= p and 2 * p < n_observations})
    dropped = sorted(set(int(p) for p in periods) - set(kept))
    if dropped:
        logger.warning(f"MSTL: dropping periods {dropped} for a history of {n_observations} observations")
    return kept


def seasonal_naive(component: np.ndarray, period: int, horizon: int) -> np.ndarray:
    """Repeat the last full cycle of a seasonal component over the horizon."""
    last_cycle = component[-period:]
    reps = int(np.ceil(horizon / period))
    return np.tile(last_cycle, reps)[:horizon]


class MSTLForecaster(BaseForecaster):
    """
    Decomposes the target into several seasonal components plus a remainder.

    Seasonal components are projected seasonal-naively; the seasonally
    adjusted series is forecast by ARIMA, which also supplies the interval.
    Regressors are ignored and refits retrain from scratch.
    """

    @property
    def model_type(self) -> str:
        return "mstl"

    def defaults(self) -> Dict[str, Any]:
        return {
            "periods": [24, 168],
            "arima_order": [1, 1, 1],
        }

    def _fit(self, history: TimeSeriesData) -> Any:
        y = history.target.to_numpy(dtype=float)
        periods = usable_periods(self.hyperparameters["periods"], len(y))

        if periods:
            decomposition = MSTL(y, periods=periods).fit()
            seasonal = np.asarray(decomposition.seasonal, dtype=float).reshape(len(y), -1)
        else:
            seasonal = np.zeros((len(y), 0))
        adjusted = y - seasonal.sum(axis=1)

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            warnings.simplefilter("ignore", UserWarning)
            arima = ARIMA(adjusted, order=tuple(self.hyperparameters["arima_order"])).fit()
        return MSTLFit(periods=periods, seasonal=seasonal, arima=arima)

    def _predict(
        self,
        state: ModelState,
        horizon: int,
        exogenous: Optional[pd.DataFrame],
    ) -> Dict[str, Optional[np.ndarray]]:
        fitted: MSTLFit = state.model_object
        seasonal = np.zeros(horizon)
        for i, period in enumerate(fitted.periods):
            seasonal += seasonal_naive(fitted.seasonal[:, i], period, horizon)

        forecast = fitted.arima.get_forecast(steps=horizon)
        bounds = np.asarray(forecast.conf_int(alpha=INTERVAL_ALPHA))
        return {
            "point": np.asarray(forecast.predicted_mean, dtype=float) + seasonal,
            "lower": bounds[:, 0] + seasonal,
            "upper": bounds[:, 1] + seasonal,
        }
