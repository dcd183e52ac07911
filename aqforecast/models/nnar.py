"""Neural network autoregression on lagged target values."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import copy
import logging
import warnings

import numpy as np
import pandas as pd
from sklearn.exceptions import ConvergenceWarning
from sklearn.neural_network import MLPRegressor
from sklearn.preprocessing import StandardScaler

from aqforecast.data.structs import TimeSeriesData
from aqforecast.models.base_model import BaseForecaster, ModelState

logger = logging.getLogger(__name__)


@dataclass
class NNARFit:
    network: MLPRegressor
    scaler: StandardScaler
    lags: List[int]
    tail: np.ndarray


def lag_positions(lags: int, seasonal_lags: int, period: int) -> List[int]:
    """Non-seasonal lags 1..lags plus seasonal lags period, 2*period, ..."""
    positions = set(range(1, lags + 1))
    positions.update(period * k for k in range(1, seasonal_lags + 1))
    return sorted(positions)


def lag_matrix(series: np.ndarray, lags: List[int]):
    """Design matrix of lagged values and the aligned targets."""
    max_lag = max(lags)
    if len(series) <= max_lag:
        raise ValueError(f"Series of length {len(series)} is too short for lag {max_lag}")
    X = np.column_stack([series[max_lag - lag:len(series) - lag] for lag in lags])
    return X, series[max_lag:]


class NNARForecaster(BaseForecaster):
    """
    Feed-forward network on lagged (scaled) target values, forecasting
    recursively. No interval. Refits continue training the previous
    network on the extended window.
    """

    supports_warm_start = True

    @property
    def model_type(self) -> str:
        return "nnar"

    def defaults(self) -> Dict[str, Any]:
        return {
            "lags": 24,
            "seasonal_lags": 1,
            "hidden_layer_sizes": [12],
            "max_iter": 500,
            "refit_max_iter": 100,
        }

    def _train(self, network: MLPRegressor, history: TimeSeriesData, scaler: StandardScaler, lags: List[int]) -> NNARFit:
        scaled = scaler.transform(history.target.to_numpy(dtype=float).reshape(-1, 1)).ravel()
        X, y = lag_matrix(scaled, lags)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            network.fit(X, y)
        return NNARFit(network=network, scaler=scaler, lags=lags, tail=scaled[-max(lags):])

    def _fit(self, history: TimeSeriesData) -> Any:
        lags = lag_positions(
            self.hyperparameters["lags"], self.hyperparameters["seasonal_lags"], history.seasonal_period
        )
        scaler = StandardScaler().fit(history.target.to_numpy(dtype=float).reshape(-1, 1))
        network = MLPRegressor(
            hidden_layer_sizes=tuple(self.hyperparameters["hidden_layer_sizes"]),
            max_iter=self.hyperparameters["max_iter"],
            random_state=self.random_state,
        )
        return self._train(network, history, scaler, lags)

    def _refit(self, state: ModelState, history: TimeSeriesData) -> Any:
        previous: NNARFit = state.model_object
        network = copy.deepcopy(previous.network)
        network.set_params(warm_start=True, max_iter=self.hyperparameters["refit_max_iter"])
        return self._train(network, history, previous.scaler, previous.lags)

    def _predict(
        self,
        state: ModelState,
        horizon: int,
        exogenous: Optional[pd.DataFrame],
    ) -> Dict[str, Optional[np.ndarray]]:
        fitted: NNARFit = state.model_object
        buffer = list(fitted.tail)
        predictions = []
        for _ in range(horizon):
            features = np.array([[buffer[-lag] for lag in fitted.lags]])
            value = float(fitted.network.predict(features)[0])
            predictions.append(value)
            buffer.append(value)
        point = fitted.scaler.inverse_transform(np.array(predictions).reshape(-1, 1)).ravel()
        return {"point": point}
