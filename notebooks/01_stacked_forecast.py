# 01_stacked_forecast.py
import marimo

__generated_with = "0.1.0"
app = marimo.App(width="medium")

@app.cell
def __():
    import marimo as mo
    from pathlib import Path
    import pandas as pd
    import numpy as np
    import logging
    import matplotlib.pyplot as plt

    from aqforecast.pipeline.orchestrator import ForecastOrchestrator
    from aqforecast.evaluation.plotting import plot_forecast, plot_score_comparison
    from aqforecast.utils.logging_config import setup_logging_from_config

    logger = logging.getLogger("notebook_01")

    project_root = Path(__file__).parent.parent.resolve()

    mo.md("# Stacked 72-hour Air-Quality Forecast")
    return ForecastOrchestrator, Path, logger, logging, mo, np, pd, plot_forecast, plot_score_comparison, plt, project_root, setup_logging_from_config


@app.cell
def __(mo):
    mo.md("## 1. Configuration & Data Loading")
    return


@app.cell
def __(project_root):
    CONFIG = {
        "data_path": project_root / "data/raw/station_hourly.csv",
        "timestamp_col": "timestamp",
    }

    # Overrides merged over aqforecast/config/pipeline_config.yaml
    PIPELINE_OVERRIDES = {
        "output": {
            "forecast_path": str(project_root / "outputs/forecast.csv"),
            "report_path": str(project_root / "outputs/backtest_report.json"),
        },
        "logging": {"level": "INFO", "log_dir": str(project_root / "logs")},
    }
    return CONFIG, PIPELINE_OVERRIDES


@app.cell
def __(ForecastOrchestrator, PIPELINE_OVERRIDES, setup_logging_from_config):
    orchestrator = ForecastOrchestrator(PIPELINE_OVERRIDES)
    setup_logging_from_config(orchestrator.config)
    return orchestrator,


@app.cell
def __(CONFIG, mo, orchestrator, pd):
    if not CONFIG["data_path"].exists():
        mo.md(f"**Error**: Data file not found at {CONFIG['data_path']}.")
        raise FileNotFoundError(f"Data file not found: {CONFIG['data_path']}")

    df = pd.read_csv(CONFIG["data_path"], parse_dates=[CONFIG["timestamp_col"]])
    df = df.set_index(CONFIG["timestamp_col"]).sort_index()
    # Target, regressors, frequency and seasonal period come from the `data` config section
    history = orchestrator.load_history(df)
    return df, history


@app.cell
def __(mo):
    mo.md("## 2. Backtest on the last 72 hours")
    return


@app.cell
def __(history, orchestrator):
    backtest = orchestrator.train_and_backtest(history)

    print("Excluded base models:", backtest.stacking.excluded or "none")
    print("Best meta-model parameters:", backtest.grid.best_params)
    backtest.scores
    return backtest,


@app.cell
def __(backtest, history, plot_forecast, plot_score_comparison, plt):
    fig, axes = plt.subplots(2, 1, figsize=(12, 10))
    plot_forecast(
        backtest.forecast,
        history=history.target.iloc[:-len(backtest.test_actual)],
        actual=backtest.test_actual,
        ax=axes[0],
    )
    plot_score_comparison(backtest.scores, ax=axes[1])
    plt.tight_layout()
    fig
    return axes, fig


@app.cell
def __(mo):
    mo.md("## 3. Production forecast")
    return


@app.cell
def __(history, orchestrator, plot_forecast, plt):
    forecast = orchestrator.forecast_future(history)

    fig_future, ax_future = plt.subplots(figsize=(12, 5))
    plot_forecast(forecast, history=history.target, ax=ax_future)
    forecast.to_frame()
    return ax_future, fig_future, forecast


if __name__ == "__main__":
    app.run()
