"""End-to-end orchestration of the stacked forecaster."""

from aqforecast.pipeline.orchestrator import (
    BacktestResult,
    ForecastOrchestrator,
    PipelineStage,
    forecast_future,
    train_and_backtest,
)

__all__ = [
    "BacktestResult",
    "ForecastOrchestrator",
    "PipelineStage",
    "forecast_future",
    "train_and_backtest",
]
