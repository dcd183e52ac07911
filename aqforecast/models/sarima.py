"""Seasonal ARIMA on the target series alone."""

from typing import Any, Dict, Optional
import logging
import warnings

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.statespace.sarimax import SARIMAX

from aqforecast.data.structs import TimeSeriesData
from aqforecast.models.base_model import BaseForecaster, ModelState

logger = logging.getLogger(__name__)

INTERVAL_ALPHA = 0.05


def fit_sarimax(
    endog: np.ndarray,
    exog: Optional[np.ndarray],
    order,
    seasonal_order,
    maxiter: int,
    start_params: Optional[np.ndarray] = None,
):
    """
    Fit a SARIMAX model with convergence warnings silenced.

    Args:
        endog: Target values
        exog: Regressor matrix aligned with endog (optional)
        order: (p, d, q)
        seasonal_order: (P, D, Q, s)
        maxiter: Optimizer iteration cap
        start_params: Parameters of a previous fit to warm-start from

    Returns:
        Fitted SARIMAXResults
    """
    model = SARIMAX(
        endog,
        exog=exog,
        order=tuple(order),
        seasonal_order=tuple(seasonal_order),
        enforce_stationarity=False,
        enforce_invertibility=False,
    )
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        warnings.simplefilter("ignore", UserWarning)
        return model.fit(start_params=start_params, disp=False, maxiter=maxiter)


def forecast_with_interval(fitted, horizon: int, exog: Optional[np.ndarray] = None) -> Dict[str, np.ndarray]:
    """Mean forecast and 95% interval from a fitted state-space model."""
    forecast = fitted.get_forecast(steps=horizon, exog=exog)
    bounds = np.asarray(forecast.conf_int(alpha=INTERVAL_ALPHA))
    return {
        "point": np.asarray(forecast.predicted_mean, dtype=float),
        "lower": bounds[:, 0],
        "upper": bounds[:, 1],
    }


class SarimaForecaster(BaseForecaster):
    """
    SARIMA(p,d,q)(P,D,Q,s) on the target only; regressors are ignored.

    Refits warm-start from the previous parameter estimates.
    """

    supports_warm_start = True

    @property
    def model_type(self) -> str:
        return "sarima"

    def defaults(self) -> Dict[str, Any]:
        return {
            "order": [1, 0, 1],
            "seasonal_order": [1, 0, 1],
            "maxiter": 50,
        }

    def _seasonal_order(self, history: TimeSeriesData):
        seasonal = list(self.hyperparameters["seasonal_order"])
        period = seasonal[3] if len(seasonal) == 4 else history.seasonal_period
        return (*seasonal[:3], period)

    def _fit(self, history: TimeSeriesData, start_params: Optional[np.ndarray] = None) -> Any:
        return fit_sarimax(
            history.target.to_numpy(dtype=float),
            None,
            self.hyperparameters["order"],
            self._seasonal_order(history),
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
        return forecast_with_interval(state.model_object, horizon)
