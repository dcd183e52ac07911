"""Vector autoregression over the target and its numeric regressors."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

import numpy as np
import pandas as pd
from statsmodels.tsa.api import VAR

from aqforecast.data.structs import TimeSeriesData
from aqforecast.models.base_model import BaseForecaster, ModelState
from aqforecast.models.sarima import INTERVAL_ALPHA

logger = logging.getLogger(__name__)


@dataclass
class VARFit:
    """Fitted VAR plus the column roles needed to build forecast inputs."""
    results: Any
    endog_columns: List[str]
    deterministic_columns: List[str]
    last_values: np.ndarray


class VARForecaster(BaseForecaster):
    """
    Joint autoregression of the target and the numeric regressors.

    Deterministic regressors (e.g. the day/night indicator) enter as
    exogenous terms and must be supplied for the horizon. The lag order is
    chosen by information criterion; refits retrain from scratch.
    """

    requires_exogenous = True

    @property
    def model_type(self) -> str:
        return "var"

    def defaults(self) -> Dict[str, Any]:
        return {
            "maxlags": 24,
            "ic": "aic",
            "deterministic_columns": ["day_night"],
        }

    def _split_columns(self, history: TimeSeriesData):
        deterministic = [
            c for c in self.hyperparameters["deterministic_columns"]
            if c in history.exogenous_columns
        ]
        endog = history.to_frame().drop(columns=deterministic)
        constant = [c for c in endog.columns[1:] if endog[c].nunique() <= 1]
        if constant:
            logger.warning(f"VAR: dropping constant regressors {constant}")
            endog = endog.drop(columns=constant)
        return endog, deterministic

    def _fit(self, history: TimeSeriesData) -> Any:
        endog, deterministic = self._split_columns(history)
        exog = history.exogenous[deterministic].to_numpy(dtype=float) if deterministic else None
        model = VAR(endog.to_numpy(dtype=float), exog=exog)

        n_obs, k = endog.shape
        maxlags = max(1, min(int(self.hyperparameters["maxlags"]), n_obs // (k + 1) - 1))
        results = model.fit(maxlags=maxlags, ic=self.hyperparameters["ic"])
        if results.k_ar == 0:
            logger.info("VAR: information criterion selected zero lags, using one")
            results = model.fit(1)
        logger.debug(f"VAR selected lag order {results.k_ar}")

        return VARFit(
            results=results,
            endog_columns=endog.columns.tolist(),
            deterministic_columns=deterministic,
            last_values=endog.to_numpy(dtype=float)[-results.k_ar:],
        )

    def _predict(
        self,
        state: ModelState,
        horizon: int,
        exogenous: Optional[pd.DataFrame],
    ) -> Dict[str, Optional[np.ndarray]]:
        fitted: VARFit = state.model_object
        exog_future = None
        if fitted.deterministic_columns:
            exog_future = exogenous[fitted.deterministic_columns].to_numpy(dtype=float)

        point, lower, upper = fitted.results.forecast_interval(
            fitted.last_values, steps=horizon, alpha=INTERVAL_ALPHA, exog_future=exog_future,
        )
        # Column 0 is the target
        return {"point": point[:, 0], "lower": lower[:, 0], "upper": upper[:, 0]}
