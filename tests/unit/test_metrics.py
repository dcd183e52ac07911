"""Tests for the shared scoring protocol."""

import numpy as np
import pandas as pd
import pytest

from aqforecast.data.structs import ForecastResult
from aqforecast.evaluation.comparison import ModelComparator, compare_scores
from aqforecast.evaluation.metrics import (
    MetricsCalculator,
    ase,
    confidence_score,
    mape,
    score_forecast,
)
from aqforecast.utils.error_handling import LengthMismatchError, NotComputableError


def test_ase_simple():
    assert ase([1.0, 2.0, 3.0], [1.0, 2.0, 5.0]) == pytest.approx(4.0 / 3.0)


def test_mape_simple():
    # |(100 - 90) / 100| and |(200 - 220) / 200| -> 10% each
    assert mape([90.0, 220.0], [100.0, 200.0]) == pytest.approx(10.0)


def test_mape_exact_hit_on_zero_actual():
    assert mape([0.0, 5.0], [0.0, 5.0]) == 0.0


def test_mape_zero_actual_with_error_is_not_computable():
    with pytest.raises(NotComputableError):
        mape([1.0, 5.0], [0.0, 5.0])


def test_length_mismatch():
    with pytest.raises(LengthMismatchError):
        ase([1.0, 2.0], [1.0])
    with pytest.raises(ValueError):
        confidence_score([0.0], [1.0, 2.0], [0.5])


def test_empty_inputs_rejected():
    with pytest.raises(LengthMismatchError):
        ase([], [])


def test_confidence_score_bounds():
    actual = np.array([1.0, 2.0, 3.0])
    assert confidence_score(actual - 1, actual + 1, actual) == 0.0
    assert confidence_score(actual + 1, actual + 2, actual) == 100.0
    assert confidence_score([0, 0, 10], [5, 5, 20], actual) == pytest.approx(100.0 / 3.0)


def test_score_forecast_reports_nan_mape():
    index = pd.RangeIndex(3)
    result = ForecastResult(index=index, point=np.array([1.0, 2.0, 3.0]), model_name="m")
    scores = score_forecast(result, [0.0, 2.0, 3.0])
    assert np.isnan(scores["mape"])
    assert scores["ase"] == pytest.approx(1.0 / 3.0)
    assert "confidence_score" not in scores


def test_metrics_calculator_adds_rmse_and_mae():
    result = ForecastResult(
        index=pd.RangeIndex(2), point=np.array([1.0, 3.0]),
        lower=np.array([0.0, 2.0]), upper=np.array([2.0, 4.0]),
    )
    metrics = MetricsCalculator().calculate_forecast_metrics(result, [1.0, 1.0])
    assert metrics["ase"] == pytest.approx(2.0)
    assert metrics["rmse"] == pytest.approx(np.sqrt(2.0))
    assert metrics["mae"] == pytest.approx(1.0)
    assert metrics["confidence_score"] == pytest.approx(50.0)


def test_compare_scores_ranks_by_ase_then_mape():
    table = compare_scores({
        "a": {"ase": 2.0, "mape": 1.0},
        "b": {"ase": 1.0, "mape": 5.0},
        "c": {"ase": 1.0, "mape": 3.0},
    })
    assert table.index.tolist() == ["c", "b", "a"]
    assert table["rank"].tolist() == [1, 2, 3]


def test_model_comparator():
    actual = pd.Series([10.0, 20.0, 30.0])
    comparator = ModelComparator()
    comparator.add_forecast("good", ForecastResult(index=actual.index, point=actual.to_numpy() + 0.1))
    comparator.add_forecast("bad", ForecastResult(index=actual.index, point=actual.to_numpy() + 5.0))
    table = comparator.compare_metrics(actual)
    assert table.index[0] == "good"


def test_plots_draw_without_display():
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
    from aqforecast.evaluation.plotting import plot_forecast, plot_score_comparison

    index = pd.date_range("2024-01-01", periods=3, freq="h")
    result = ForecastResult(index=index, point=[1.0, 2.0, 3.0], lower=[0.0, 1.0, 2.0],
                            upper=[2.0, 3.0, 4.0], model_name="meta")
    ax = plot_forecast(result, actual=pd.Series([1.5, 2.0, 2.5], index=index))
    assert ax.get_title() == "meta: 3-step forecast"

    table = compare_scores({"a": {"ase": 2.0, "mape": 1.0}, "b": {"ase": 1.0, "mape": 5.0}})
    ax = plot_score_comparison(table)
    assert ax.get_title() == "Backtest scores (lower is better)"
    plt.close("all")
