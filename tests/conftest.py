"""Pytest configuration and shared fixtures."""

from typing import Any, Dict, Optional

import pytest
import pandas as pd
import numpy as np

from aqforecast.data.structs import StackingTable, TimeSeriesData
from aqforecast.models.base_model import BaseForecaster, ModelState


def make_sine_frame(n: int = 1000, period: int = 24, seed: int = 42) -> pd.DataFrame:
    """Hourly sine wave around 50 plus three regressors, one of them day/night."""
    rng = np.random.default_rng(seed)
    index = pd.date_range("2023-01-01", periods=n, freq="h")
    t = np.arange(n)
    phase = 2 * np.pi * t / period
    concentration = 50 + 10 * np.sin(phase) + rng.normal(0, 0.5, n)
    return pd.DataFrame({
        "concentration": concentration,
        "temperature": 15 + 5 * np.sin(phase - 1.0) + rng.normal(0, 0.3, n),
        "humidity": 60 - 10 * np.sin(phase) + rng.normal(0, 1.0, n),
        "day_night": (index.hour.isin(range(6, 18))).astype(float),
    }, index=index)


@pytest.fixture
def sine_frame():
    return make_sine_frame()


@pytest.fixture
def sine_history(sine_frame):
    """1000 hourly observations of the synthetic sine series."""
    return TimeSeriesData.from_frame(sine_frame, "concentration")


@pytest.fixture
def short_history():
    """400 hourly observations, enough for every base model with small settings."""
    return TimeSeriesData.from_frame(make_sine_frame(n=400), "concentration")


@pytest.fixture
def linear_stacking():
    """Stacking table where the truth is 2 * model_a plus noise, with a disjoint test window."""
    rng = np.random.default_rng(0)
    n_train, n_test = 200, 72
    a = rng.uniform(0, 10, n_train + n_test)
    b = rng.uniform(0, 10, n_train + n_test)
    truth = 2 * a + rng.normal(0, 0.1, n_train + n_test)
    frame = pd.DataFrame({"model_a": a, "model_b": b, "true_value": truth})
    table = StackingTable(frame.iloc[:n_train].reset_index(drop=True))
    test = frame.iloc[n_train:].reset_index(drop=True)
    return table, test[["model_a", "model_b"]], test["true_value"]


@pytest.fixture
def six_model_stacking():
    """72-row stacking table with six base-model columns; truth is 2 * model_1 plus noise."""
    rng = np.random.default_rng(7)
    n = 72
    columns = [f"model_{i}" for i in range(1, 7)]

    def block():
        features = pd.DataFrame(rng.uniform(0, 10, size=(n, 6)), columns=columns)
        truth = 2 * features["model_1"] + rng.normal(0, 0.1, n)
        return features, truth

    train_features, train_truth = block()
    table = StackingTable(train_features.assign(true_value=train_truth))
    test_features, test_truth = block()
    return table, test_features, test_truth


@pytest.fixture
def fast_config() -> Dict[str, Any]:
    """Configuration overrides that keep pipeline runs short."""
    return {
        "models": {
            "enabled": ["sarima", "nnar"],
            "sarima": {"maxiter": 10},
            "nnar": {"lags": 24, "max_iter": 200, "refit_max_iter": 20},
        },
        "meta": {
            "param_grid": {
                "n_estimators": [20, 50],
                "max_depth": [1, 2],
                "learning_rate": [0.1],
            },
        },
        "bootstrap": {
            "n_resamples": 50,
            "min_resamples": 10,
            "block_size": 25,
        },
        "parallel": {"base_model_jobs": 1, "bootstrap_jobs": 1},
    }


class SeasonalNaiveForecaster(BaseForecaster):
    """Repeats the last seasonal cycle; used to exercise the pipeline quickly."""

    def __init__(self, name: Optional[str] = None, offset: float = 0.0, fail_on_fit: bool = False, **kwargs):
        super().__init__(name, **kwargs)
        self.offset = offset
        self.fail_on_fit = fail_on_fit
        self.fit_lengths = []

    @property
    def model_type(self) -> str:
        return "seasonal_naive"

    def _fit(self, history: TimeSeriesData) -> Any:
        self.fit_lengths.append(len(history))
        if self.fail_on_fit:
            raise RuntimeError("singular matrix")
        return history.target.to_numpy()[-history.seasonal_period:]

    def _predict(self, state: ModelState, horizon: int, exogenous) -> Dict[str, Optional[np.ndarray]]:
        cycle = state.model_object
        point = np.tile(cycle, int(np.ceil(horizon / len(cycle))))[:horizon] + self.offset
        return {"point": point, "lower": point - 1.0, "upper": point + 1.0}


@pytest.fixture
def naive_forecasters():
    return [
        SeasonalNaiveForecaster("naive_a"),
        SeasonalNaiveForecaster("naive_b", offset=0.5),
    ]


@pytest.fixture
def naive_forecaster_cls():
    return SeasonalNaiveForecaster
