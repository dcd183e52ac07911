"""Tests for the six base forecasters and the registry."""

import numpy as np
import pandas as pd
import pytest

from aqforecast.evaluation.metrics import ase
from aqforecast.models.harmonic import HarmonicRegressionForecaster, fourier_terms
from aqforecast.models.mstl_model import MSTLForecaster, seasonal_naive, usable_periods
from aqforecast.models.nnar import NNARForecaster, lag_matrix, lag_positions
from aqforecast.models.registry import build_forecasters, forecaster_class
from aqforecast.models.sarima import SarimaForecaster
from aqforecast.models.var_model import VARForecaster
from aqforecast.utils.error_handling import BaseModelFitFailure, LengthMismatchError

HORIZON = 72

FAST_SETTINGS = {
    "sarima": (SarimaForecaster, {"maxiter": 10}),
    "harmonic": (HarmonicRegressionForecaster, {"maxiter": 10, "fourier_order": 2}),
    "mstl": (MSTLForecaster, {"periods": [24]}),
    "var": (VARForecaster, {"maxlags": 24}),
    "nnar": (NNARForecaster, {"max_iter": 200, "refit_max_iter": 20}),
}


@pytest.fixture
def split(short_history):
    return short_history.split_tail(HORIZON)


@pytest.fixture(params=sorted(FAST_SETTINGS))
def forecaster(request):
    cls, params = FAST_SETTINGS[request.param]
    return cls(name=request.param, hyperparameters=params, random_state=0)


def test_fit_predict_contract(forecaster, split):
    train, test = split
    state = forecaster.fit(train)

    assert state.train_end == train.index[-1]
    assert state.n_observations == len(train)
    assert not state.warm_started

    result = forecaster.predict(state, HORIZON, exogenous=test.exogenous, index=test.index)
    assert result.horizon == HORIZON
    assert result.model_name == forecaster.name
    assert result.index.equals(test.index)
    assert np.all(np.isfinite(result.point))
    if result.has_interval:
        assert np.all(result.lower <= result.upper)


def test_beats_mean_forecast(forecaster, split):
    train, test = split
    state = forecaster.fit(train)
    result = forecaster.predict(state, HORIZON, exogenous=test.exogenous)
    naive = np.full(HORIZON, train.target.mean())
    assert ase(result.point, test.target) < ase(naive, test.target)


def test_refit_extends_window(forecaster, split, short_history):
    train, _ = split
    state = forecaster.fit(train)
    refit = forecaster.refit(state, short_history)

    assert refit.n_observations == len(short_history)
    assert refit.train_end == short_history.index[-1]
    assert refit.warm_started == forecaster.supports_warm_start
    # The original state is untouched
    assert state.n_observations == len(train)

    future_exog = None
    if forecaster.requires_exogenous:
        future_exog = short_history.exogenous.iloc[-HORIZON:].set_axis(short_history.future_index(HORIZON))
    result = forecaster.predict(refit, HORIZON, exogenous=future_exog)
    assert result.index[0] > short_history.index[-1]


def test_exogenous_required_and_length_checked(split):
    train, test = split
    model = HarmonicRegressionForecaster(hyperparameters={"maxiter": 5})
    state = model.fit(train)
    with pytest.raises(ValueError):
        model.predict(state, HORIZON)
    with pytest.raises(LengthMismatchError):
        model.predict(state, HORIZON, exogenous=test.exogenous.iloc[:-1])


def test_fit_failure_is_translated(split):
    train, _ = split
    model = SarimaForecaster(hyperparameters={"order": [1, 0, 1], "seasonal_order": [1, 0, 1, 1]})
    with pytest.raises(BaseModelFitFailure) as excinfo:
        model.fit(train)
    assert excinfo.value.model_name == "sarima"


def test_fourier_terms():
    terms = fourier_terms(0, 48, 24, 2)
    assert terms.shape == (48, 4)
    np.testing.assert_allclose(terms[:24], terms[24:], atol=1e-12)
    with pytest.raises(ValueError):
        fourier_terms(0, 10, 4, 3)


def test_mstl_helpers():
    assert usable_periods([24, 168], 300) == [24]
    np.testing.assert_array_equal(seasonal_naive(np.arange(10.0), 4, 6), [6, 7, 8, 9, 6, 7])


def test_nnar_lags():
    assert lag_positions(3, 1, 24) == [1, 2, 3, 24]
    X, y = lag_matrix(np.arange(10.0), [1, 3])
    np.testing.assert_array_equal(X[0], [2.0, 0.0])
    assert y[0] == 3.0
    with pytest.raises(ValueError):
        lag_matrix(np.arange(3.0), [3])


def test_var_drops_deterministic_from_endog(split):
    train, test = split
    model = VARForecaster(hyperparameters={"maxlags": 2})
    state = model.fit(train)
    assert state.model_object.deterministic_columns == ["day_night"]
    assert "day_night" not in state.model_object.endog_columns
    assert state.model_object.endog_columns[0] == "concentration"


def test_registry_builds_enabled_models():
    config = {
        "random_state": 7,
        "models": {"enabled": ["var", "sarima"], "sarima": {"maxiter": 3}},
    }
    forecasters = build_forecasters(config)
    assert [f.name for f in forecasters] == ["var", "sarima"]
    assert forecasters[1].hyperparameters["maxiter"] == 3
    assert forecasters[1].hyperparameters["order"] == [1, 0, 1]
    assert forecasters[0].random_state == 7


def test_registry_rejects_unknown_and_duplicates():
    with pytest.raises(ValueError):
        forecaster_class("prophet")
    with pytest.raises(ValueError):
        build_forecasters({"models": {"enabled": ["var", "var"]}})
