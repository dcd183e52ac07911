"""Plots shared by every forecaster: forecast bands and score comparisons."""

import logging
from typing import Any, Optional

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

from aqforecast.data.structs import ForecastResult

logger = logging.getLogger(__name__)


def plot_forecast(
    result: ForecastResult,
    history: Optional[pd.Series] = None,
    actual: Optional[pd.Series] = None,
    ax=None,
    history_tail: int = 240,
) -> Any:
    """
    Plot a forecast with its interval band against history and truth.

    Args:
        result: Forecast to draw
        history: Observations preceding the forecast (optional)
        actual: Ground truth over the forecast window (optional)
        ax: Matplotlib axes (optional)
        history_tail: Number of trailing history points to show

    Returns:
        Matplotlib axes object
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(12, 5))

    if history is not None:
        shown = history.iloc[-history_tail:]
        ax.plot(shown.index, shown.to_numpy(), color="black", linewidth=1.0, label="History")

    if actual is not None:
        ax.plot(actual.index, actual.to_numpy(), color="black", linestyle="--", label="Actual")

    label = result.model_name or "Forecast"
    ax.plot(result.index, result.point, color="tab:blue", label=label)
    if result.has_interval:
        ax.fill_between(
            result.index, result.lower, result.upper,
            color="tab:blue", alpha=0.2, label="95% interval",
        )

    ax.set_title(f"{label}: {result.horizon}-step forecast")
    ax.set_ylabel("Concentration")
    ax.legend(loc="upper left")
    ax.grid(True, alpha=0.3)
    return ax


def plot_score_comparison(scores: pd.DataFrame, ax=None) -> Any:
    """
    Heatmap of per-model scores, each metric column normalised to [0, 1].

    Args:
        scores: Output of compare_scores
        ax: Matplotlib axes (optional)

    Returns:
        Matplotlib axes object
    """
    metrics = scores.drop(columns=["rank"], errors="ignore").astype(float)
    spread = (metrics.max() - metrics.min()).replace(0, np.nan)
    normalised = ((metrics - metrics.min()) / spread).fillna(0.0)

    if ax is None:
        fig, ax = plt.subplots(figsize=(1.5 * len(metrics.columns) + 3, 0.5 * len(metrics) + 2))

    sns.heatmap(
        normalised, annot=metrics.round(2), fmt="", cmap="RdYlGn_r",
        cbar=False, ax=ax, linewidths=0.5,
    )
    ax.set_title("Backtest scores (lower is better)")
    return ax
