"""Dynamic harmonic regression: ARMA errors around Fourier terms and regressors."""

from typing import Any, Dict, Optional
import logging

import numpy as np
import pandas as pd

from aqforecast.data.structs import TimeSeriesData
from aqforecast.models.base_model import BaseForecaster, ModelState
from aqforecast.models.sarima import fit_sarimax, forecast_with_interval

logger = logging.getLogger(__name__)


def fourier_terms(start: int, length: int, period: int, order: int) -> np.ndarray:
    """
    Sine/cosine pairs sin(2*pi*k*t/period), cos(2*pi*k*t/period) for k = 1..order.

    Args:
        start: Time position of the first row (0 at the start of history)
        length: Number of rows
        period: Seasonal period in steps
        order: Number of harmonics

    Returns:
        Array of shape (length, 2 * order)
    """
    if order < 1:
        raise ValueError("fourier order must be at least 1")
    if 2 * order > period:
        raise ValueError(f"fourier order {order} is too high for period {period}")
    t = np.arange(start, start + length, dtype=float)
    columns = []
    for k in range(1, order + 1):
        angle = 2.0 * np.pi * k * t / period
        columns.append(np.sin(angle))
        columns.append(np.cos(angle))
    return np.column_stack(columns)


class HarmonicRegressionForecaster(BaseForecaster):
    """
    Regression on Fourier terms plus the exogenous regressors, with ARMA
    errors. Needs future regressor values to forecast.
    """

    requires_exogenous = True
    supports_warm_start = True

    @property
    def model_type(self) -> str:
        return "harmonic"

    def defaults(self) -> Dict[str, Any]:
        return {
            "order": [2, 0, 1],
            "fourier_order": 3,
            "maxiter": 50,
        }

    def _design(self, exogenous: pd.DataFrame, start: int, period: int) -> np.ndarray:
        fourier = fourier_terms(start, len(exogenous), period, self.hyperparameters["fourier_order"])
        return np.column_stack([fourier, exogenous.to_numpy(dtype=float)])

    def _fit(self, history: TimeSeriesData, start_params: Optional[np.ndarray] = None) -> Any:
        exog = self._design(history.exogenous, 0, history.seasonal_period)
        return fit_sarimax(
            history.target.to_numpy(dtype=float),
            exog,
            self.hyperparameters["order"],
            (0, 0, 0, 0),
            self.hyperparameters["maxiter"],
            start_params=start_params,
        )

    def _refit(self, state: ModelState, history: TimeSeriesData) -> Any:
        return self._fit(history, start_params=state.model_object.params)

    def _predict(
        self,
        state: ModelState,
        horizon: int,
        exogenous: Optional[pd.DataFrame],
    ) -> Dict[str, Optional[np.ndarray]]:
        exog = self._design(exogenous, state.n_observations, state.metadata["seasonal_period"])
        return forecast_with_interval(state.model_object, horizon, exog)
