"""
Tests for the Keras LSTM forecaster.
"""

import numpy as np
import pytest

from aqforecast.models.lstm_model import LSTMForecaster
from aqforecast.utils.cancellation import CancellationToken
from aqforecast.utils.error_handling import PipelineCancelled

HORIZON = 24

SMALL = {
    "lookback": 24,
    "units": 8,
    "epochs": 2,
    "refit_epochs": 1,
    "batch_size": 16,
    "interval_passes": 10,
}


@pytest.fixture
def split(short_history):
    return short_history.split_tail(HORIZON)


def test_lstm_fit_predict_with_interval(split):
    train, test = split
    model = LSTMForecaster(hyperparameters=SMALL, random_state=0)
    state = model.fit(train)

    assert state.model_object.columns[0] == "concentration"
    assert state.model_object.window.shape == (24, 4)

    result = model.predict(state, HORIZON, exogenous=test.exogenous, index=test.index)
    assert result.horizon == HORIZON
    assert np.all(np.isfinite(result.point))
    assert result.has_interval
    assert np.all(result.lower <= result.upper)


def test_lstm_without_dropout_has_no_interval(split):
    train, test = split
    model = LSTMForecaster(hyperparameters={**SMALL, "dropout": 0.0}, random_state=0)
    state = model.fit(train)
    result = model.predict(state, HORIZON, exogenous=test.exogenous)
    assert not result.has_interval


def test_lstm_refit_warm_starts(split, short_history):
    train, _ = split
    model = LSTMForecaster(hyperparameters=SMALL, random_state=0)
    state = model.fit(train)
    refit = model.refit(state, short_history)

    assert refit.warm_started
    assert refit.model_object.network is not state.model_object.network
    assert refit.model_object.scaler is state.model_object.scaler


def test_lstm_training_observes_cancellation(split):
    train, _ = split
    token = CancellationToken()
    token.cancel("test")
    model = LSTMForecaster(hyperparameters=SMALL, cancellation=token)
    with pytest.raises(PipelineCancelled):
        model.fit(train)


def test_validation_batch_covers_held_out_rows_every_epoch(short_history):
    model = LSTMForecaster(hyperparameters={**SMALL, "validation_fraction": 0.1}, random_state=0)
    data = short_history.to_frame().to_numpy(dtype=float)
    train, validation = model._samplers(data, np.random.default_rng(0))

    n_val = int(len(data) * 0.1)
    assert train.max_index == len(data) - n_val - 1
    assert validation.first_row == len(data) - n_val
    assert validation.usable_rows == validation.batch_size == n_val
    assert validation.steps_per_epoch == 1

    first_epoch = validation.next_rows()
    second_epoch = validation.next_rows()
    np.testing.assert_array_equal(first_epoch, second_epoch)
    np.testing.assert_array_equal(first_epoch, np.arange(len(data) - n_val, len(data)))


def test_no_validation_sampler_without_held_out_fraction(short_history):
    model = LSTMForecaster(hyperparameters={**SMALL, "validation_fraction": 0.0}, random_state=0)
    data = short_history.to_frame().to_numpy(dtype=float)
    _, validation = model._samplers(data, np.random.default_rng(0))
    assert validation is None
