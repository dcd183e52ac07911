"""Tests for the forecast orchestrator, using fast seasonal-naive base models."""

import json

import numpy as np
import pandas as pd
import pytest

from aqforecast.pipeline.orchestrator import ForecastOrchestrator, PipelineStage, project_exogenous
from aqforecast.utils.error_handling import BaseModelFitFailure, PipelineStateError
from aqforecast.utils.serialization import load_forecast_csv

HORIZON = 72


@pytest.fixture
def orchestrator(fast_config, naive_forecasters):
    return ForecastOrchestrator(fast_config, forecasters=naive_forecasters, run_id="test-run")


def test_backtest_produces_scored_forecast(orchestrator, sine_history):
    result = orchestrator.train_and_backtest(sine_history, HORIZON)

    assert orchestrator.stage is PipelineStage.BACKTEST
    assert result.forecast.horizon == HORIZON
    assert result.forecast.index.equals(sine_history.index[-HORIZON:])
    assert result.forecast.has_interval
    assert set(result.scores.index) == {"naive_a", "naive_b", "meta"}
    assert {"ase", "mape", "confidence_score", "rank"} <= set(result.scores.columns)
    assert len(result.grid.trials) == 4
    assert result.interval.k == 2


def test_backtest_never_trains_on_test_rows(orchestrator, sine_history, naive_forecasters):
    orchestrator.train_and_backtest(sine_history, HORIZON)
    training_rows = len(sine_history) - HORIZON
    for forecaster in naive_forecasters:
        # Stacking fit, then the refit on the whole training split
        assert forecaster.fit_lengths == [training_rows - HORIZON, training_rows]


def test_forecast_future_after_backtest(orchestrator, sine_history, tmp_path):
    orchestrator.config["output"]["forecast_path"] = str(tmp_path / "forecast.csv")
    orchestrator.train_and_backtest(sine_history, HORIZON)
    forecast = orchestrator.forecast_future(sine_history, HORIZON)

    assert orchestrator.stage is PipelineStage.PRODUCTION
    assert forecast.horizon == HORIZON
    assert forecast.index[0] == sine_history.index[-1] + pd.Timedelta(hours=1)
    assert forecast.index.is_monotonic_increasing
    assert np.all(forecast.lower <= forecast.upper)

    written = load_forecast_csv(tmp_path / "forecast.csv")
    assert written.columns.tolist() == ["timestamp", "point", "upper", "lower"]
    assert len(written) == HORIZON


def test_forecast_future_accepts_supplied_regressors(orchestrator, sine_history):
    orchestrator.train_and_backtest(sine_history, HORIZON)
    future = project_exogenous(sine_history, HORIZON)
    forecast = orchestrator.forecast_future(sine_history, HORIZON, future_exogenous=future)
    assert forecast.index.equals(future.index)


def test_stage_order_enforced(orchestrator, sine_history):
    with pytest.raises(PipelineStateError):
        orchestrator.forecast_future(sine_history)
    orchestrator.train_and_backtest(sine_history, HORIZON)
    with pytest.raises(PipelineStateError):
        orchestrator.train_and_backtest(sine_history, HORIZON)
    orchestrator.forecast_future(sine_history)
    with pytest.raises(PipelineStateError):
        orchestrator.forecast_future(sine_history)


def test_history_too_short(orchestrator, sine_history):
    with pytest.raises(ValueError):
        orchestrator.train_and_backtest(sine_history.tail(140), HORIZON)


def test_refit_failure_drops_model_in_backtest(fast_config, sine_history, naive_forecaster_cls):
    class FailsOnRefit(naive_forecaster_cls):
        def _fit(self, history):
            if self.fit_lengths:
                raise RuntimeError("did not converge")
            return super()._fit(history)

    forecasters = [naive_forecaster_cls("steady"), FailsOnRefit("flaky")]
    orchestrator = ForecastOrchestrator(fast_config, forecasters=forecasters)
    result = orchestrator.train_and_backtest(sine_history, HORIZON)

    assert "flaky" in result.stacking.table.model_columns
    assert orchestrator.meta_model.feature_names == ["steady"]
    assert "flaky" not in result.scores.index


def test_production_failure_is_fatal_and_logged(orchestrator, sine_history, naive_forecasters, caplog):
    orchestrator.train_and_backtest(sine_history, HORIZON)
    naive_forecasters[1].fail_on_fit = True
    with pytest.raises(BaseModelFitFailure):
        orchestrator.forecast_future(sine_history)
    assert "failed during production" in caplog.text
    assert orchestrator.stage is PipelineStage.BACKTEST


def test_report_written(fast_config, naive_forecasters, sine_history, tmp_path):
    fast_config["output"] = {"report_path": str(tmp_path / "report.json")}
    orchestrator = ForecastOrchestrator(fast_config, forecasters=naive_forecasters)
    orchestrator.train_and_backtest(sine_history, HORIZON)

    with open(tmp_path / "report.json") as f:
        report = json.load(f)
    assert report["meta_features"] == ["naive_a", "naive_b"]
    assert len(report["forecast"]) == HORIZON


def test_project_exogenous_repeats_last_cycle(sine_history):
    projected = project_exogenous(sine_history, 30)
    last_cycle = sine_history.exogenous.iloc[-24:].to_numpy()
    np.testing.assert_array_equal(projected.to_numpy()[:24], last_cycle)
    np.testing.assert_array_equal(projected.to_numpy()[24:], last_cycle[:6])
    assert projected.index[0] == sine_history.index[-1] + pd.Timedelta(hours=1)


def test_load_history_follows_data_config(fast_config, naive_forecasters, sine_frame):
    fast_config["data"] = {
        "target_column": "concentration",
        "exogenous_columns": ["temperature", "day_night"],
        "frequency": "h",
        "seasonal_period": 12,
    }
    orchestrator = ForecastOrchestrator(fast_config, forecasters=naive_forecasters)
    history = orchestrator.load_history(sine_frame)

    assert history.exogenous_columns == ["temperature", "day_night"]
    assert history.seasonal_period == 12
    assert history.frequency == "h"
    assert len(history) == len(sine_frame)


def test_load_history_all_other_columns_when_regressors_unset(fast_config, naive_forecasters, sine_frame):
    fast_config["data"] = {"target_column": "concentration", "exogenous_columns": None, "seasonal_period": 24}
    history = ForecastOrchestrator(fast_config, forecasters=naive_forecasters).load_history(sine_frame)
    assert history.exogenous_columns == ["temperature", "humidity", "day_night"]


def test_load_history_rejects_missing_regressors(naive_forecasters, sine_frame):
    # Packaged defaults name station columns (pressure, wind_run) the synthetic frame lacks
    orchestrator = ForecastOrchestrator(forecasters=naive_forecasters)
    with pytest.raises(ValueError, match="pressure"):
        orchestrator.load_history(sine_frame)
