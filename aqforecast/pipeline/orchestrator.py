"""
Stacked forecast orchestration: walk-forward stacking, meta-model selection,
bootstrap intervals and the production forecast.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
import logging
import uuid

import numpy as np
import pandas as pd

from aqforecast.data.structs import ForecastResult, StackingTable, TimeSeriesData
from aqforecast.ensemble.bootstrap import BootstrapInterval, BootstrapIntervalEstimator
from aqforecast.ensemble.stacking import StackingResult, WalkForwardStackingBuilder
from aqforecast.evaluation.comparison import compare_scores
from aqforecast.evaluation.metrics import score_forecast
from aqforecast.models.base_model import BaseForecaster, ModelState
from aqforecast.models.meta_model import GridSearchResult, MetaModel, MetaModelTrainer, PruningReport
from aqforecast.models.registry import build_forecasters
from aqforecast.utils.cancellation import CancellationToken
from aqforecast.utils.config_manager import load_pipeline_config
from aqforecast.utils.error_handling import (
    BaseModelFitFailure,
    ForecastingError,
    LengthMismatchError,
    PipelineStateError,
    log_failure,
)
from aqforecast.utils.serialization import save_forecast_csv, save_json

logger = logging.getLogger(__name__)


class PipelineStage(Enum):
    INIT = "init"
    BACKTEST = "backtest"
    PRODUCTION = "production"


@dataclass
class BacktestResult:
    """Everything produced by the backtest stage."""
    scores: pd.DataFrame
    forecast: ForecastResult
    base_forecasts: Dict[str, ForecastResult]
    stacking: StackingResult
    grid: GridSearchResult
    pruning: PruningReport
    interval: BootstrapInterval
    test_actual: pd.Series

    def to_dict(self) -> Dict[str, Any]:
        """Report-friendly summary (no model objects)."""
        return {
            "scores": self.scores.reset_index().to_dict(orient="records"),
            "forecast": self.forecast.to_frame().to_dict(orient="records"),
            "meta_features": list(self.stacking.table.model_columns),
            "excluded_models": self.stacking.excluded,
            "best_params": self.grid.best_params,
            "grid_trials": self.grid.trials.to_dict(orient="records"),
            "pruning": {
                "kept": self.pruning.kept,
                "dropped": self.pruning.dropped,
                "baseline_ase": self.pruning.baseline_ase,
                "final_ase": self.pruning.final_ase,
            },
            "interval": self.interval.to_dict(),
        }


def project_exogenous(history: TimeSeriesData, horizon: int) -> pd.DataFrame:
    """
    Seasonal-naive projection of the regressors: the last seasonal cycle
    repeated over the horizon.
    """
    if history.exogenous is None:
        raise ValueError("History has no exogenous regressors to project")
    period = min(history.seasonal_period, len(history))
    last_cycle = history.exogenous.iloc[-period:].to_numpy()
    reps = int(np.ceil(horizon / period))
    values = np.tile(last_cycle, (reps, 1))[:horizon]
    return pd.DataFrame(values, index=history.future_index(horizon), columns=history.exogenous.columns)


class ForecastOrchestrator:
    """
    Runs the two strictly ordered stages of the stacked forecaster.

    `train_and_backtest` fits and scores everything on the history minus a
    trailing test window; `forecast_future` then refits the surviving base
    models on the full history and emits the final forecast.

    Example:
        >>> orchestrator = ForecastOrchestrator()
        >>> backtest = orchestrator.train_and_backtest(history)
        >>> forecast = orchestrator.forecast_future(history)
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        forecasters: Optional[Sequence[BaseForecaster]] = None,
        cancellation: Optional[CancellationToken] = None,
        run_id: Optional[str] = None,
    ):
        """
        Args:
            config: Overrides deep-merged over the packaged configuration
            forecasters: Base forecasters (default: built from `models.enabled`)
            cancellation: Token checked by the long-running stages
            run_id: Identifier attached to failure logs
        """
        self.config = load_pipeline_config(config)
        self.cancellation = cancellation or CancellationToken()
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.horizon = self.config.get("horizon", 72)
        self.random_state = self.config.get("random_state", 42)
        self.rng = np.random.default_rng(self.random_state)

        if forecasters is None:
            forecasters = build_forecasters(self.config, cancellation=self.cancellation)
        self.forecasters: Dict[str, BaseForecaster] = {f.name: f for f in forecasters}
        if len(self.forecasters) != len(forecasters):
            raise ValueError("Base forecaster names must be unique")

        meta_config = self.config.get("meta", {})
        self.trainer = MetaModelTrainer(meta_config.get("param_grid"), random_state=self.random_state)
        self.prune_features = meta_config.get("prune_features", False)

        self.stage = PipelineStage.INIT
        self.states: Dict[str, ModelState] = {}
        self.table: Optional[StackingTable] = None
        self.meta_model: Optional[MetaModel] = None
        self.estimator: Optional[BootstrapIntervalEstimator] = None

    def load_history(self, frame: pd.DataFrame) -> TimeSeriesData:
        """Build the history from a timestamp-indexed frame per the `data` config section."""
        history = TimeSeriesData.from_config(frame, self.config.get("data", {}))
        logger.info(
            f"Run {self.run_id}: {len(history)} rows of '{history.target.name}', "
            f"regressors {history.exogenous_columns}, seasonal period {history.seasonal_period}"
        )
        return history

    def _advance(self, expected: PipelineStage, new: PipelineStage) -> None:
        if self.stage is not expected:
            raise PipelineStateError(
                f"Cannot move to {new.value} from {self.stage.value}; expected {expected.value}"
            )
        logger.info(f"Run {self.run_id}: {self.stage.value} -> {new.value}")
        self.stage = new

    def _forecast_all(
        self,
        states: Dict[str, ModelState],
        history: TimeSeriesData,
        horizon: int,
        exogenous: Optional[pd.DataFrame],
        index: pd.Index,
        tolerate_failures: bool,
    ):
        """Refit each state on `history` and forecast the next `horizon` steps."""
        refit_states: Dict[str, ModelState] = {}
        forecasts: Dict[str, ForecastResult] = {}
        failed: List[str] = []
        for name, state in states.items():
            self.cancellation.raise_if_cancelled(f"refit of {name}")
            forecaster = self.forecasters[name]
            try:
                refit_states[name] = forecaster.refit(state, history)
                forecasts[name] = forecaster.predict(
                    refit_states[name], horizon, exogenous=exogenous, index=index
                )
            except BaseModelFitFailure as e:
                if not tolerate_failures:
                    raise
                logger.warning(f"Dropping {name} after refit failure: {e}")
                failed.append(name)
                refit_states.pop(name, None)
        return refit_states, forecasts, failed

    def train_and_backtest(
        self,
        history: TimeSeriesData,
        test_horizon: Optional[int] = None,
    ) -> BacktestResult:
        """
        Fit the full stack on `history` minus its last `test_horizon` rows and
        score it on those rows.

        Args:
            history: Complete observed history
            test_horizon: Test window length (default: configured horizon)

        Returns:
            BacktestResult
        """
        try:
            return self._train_and_backtest(history, test_horizon or self.horizon)
        except Exception as e:
            log_failure(self.run_id, e, stage="backtest", log=logger)
            raise

    def _train_and_backtest(self, history: TimeSeriesData, test_horizon: int) -> BacktestResult:
        if self.stage is not PipelineStage.INIT:
            raise PipelineStateError(f"Backtest already run (stage {self.stage.value})")
        if len(history) <= test_horizon + self.horizon:
            raise ValueError(
                f"History of {len(history)} rows cannot hold a {self.horizon}-step validation "
                f"window and a {test_horizon}-step test window"
            )
        self.estimator = BootstrapIntervalEstimator.from_config(
            self.config, rng=self.rng, cancellation=self.cancellation
        )

        training, test = history.split_tail(test_horizon)
        logger.info(
            f"Run {self.run_id}: backtest on {len(training)} training rows, "
            f"test window {test.index[0]} .. {test.index[-1]}"
        )

        builder = WalkForwardStackingBuilder(
            n_jobs=self.config.get("parallel", {}).get("base_model_jobs", 1)
        )
        stacking = builder.build(training, list(self.forecasters.values()), self.horizon)

        states, base_forecasts, failed = self._forecast_all(
            stacking.states, training, test_horizon, test.exogenous, test.index,
            tolerate_failures=True,
        )
        if not states:
            raise ForecastingError("Every base model failed to refit on the training split")
        table = stacking.table.drop_models(failed) if failed else stacking.table

        test_features = pd.DataFrame(
            {name: base_forecasts[name].point for name in table.model_columns}, index=test.index
        )
        grid = self.trainer.grid_search(table, test_features, test.target)
        pruning = self.trainer.evaluate_feature_pruning(
            table, grid.best_params, test_features, test.target
        )
        if self.prune_features and pruning.dropped:
            logger.info(f"Pruning meta features {pruning.dropped}")
            table = table.select_models(pruning.kept)
            test_features = test_features[pruning.kept]
            for name in pruning.dropped:
                states.pop(name)

        meta_model = self.trainer.fit(table, grid.best_params)
        point = meta_model.predict(test_features)
        interval = self.estimator.estimate(table, grid.best_params, test_features, point)
        forecast = interval.to_forecast(test.index)

        scores = {
            name: score_forecast(result, test.target) for name, result in base_forecasts.items()
        }
        scores["meta"] = score_forecast(forecast, test.target)
        score_table = compare_scores(scores)
        logger.info(f"Backtest scores:\n{score_table}")

        self.states = states
        self.table = table
        self.meta_model = meta_model
        self._advance(PipelineStage.INIT, PipelineStage.BACKTEST)

        result = BacktestResult(
            scores=score_table,
            forecast=forecast,
            base_forecasts=base_forecasts,
            stacking=stacking,
            grid=grid,
            pruning=pruning,
            interval=interval,
            test_actual=test.target,
        )
        report_path = self.config.get("output", {}).get("report_path")
        if report_path:
            save_json(result.to_dict(), report_path)
        return result

    def forecast_future(
        self,
        full_history: TimeSeriesData,
        horizon: Optional[int] = None,
        future_exogenous: Optional[pd.DataFrame] = None,
    ) -> ForecastResult:
        """
        Forecast the `horizon` steps after `full_history` with the trained stack.

        Args:
            full_history: Every observation, including the backtest test window
            horizon: Steps to forecast (default: configured horizon)
            future_exogenous: Regressors for the forecast steps; projected
                seasonal-naively from the last cycle when omitted

        Returns:
            ForecastResult with point, lower and upper for every step
        """
        try:
            return self._forecast_future(full_history, horizon or self.horizon, future_exogenous)
        except Exception as e:
            log_failure(self.run_id, e, stage="production", log=logger)
            raise

    def _forecast_future(
        self,
        full_history: TimeSeriesData,
        horizon: int,
        future_exogenous: Optional[pd.DataFrame],
    ) -> ForecastResult:
        if self.stage is not PipelineStage.BACKTEST:
            raise PipelineStateError(
                f"forecast_future requires a completed backtest (stage {self.stage.value})"
            )

        if full_history.exogenous is not None:
            if future_exogenous is None:
                logger.info("No future regressors supplied; projecting the last seasonal cycle")
                future_exogenous = project_exogenous(full_history, horizon)
            if len(future_exogenous) != horizon:
                raise LengthMismatchError(
                    f"future_exogenous has {len(future_exogenous)} rows for a horizon of {horizon}"
                )
            future_exogenous = future_exogenous[full_history.exogenous_columns]
            index = future_exogenous.index
            if index[0] <= full_history.index[-1]:
                raise ValueError("future_exogenous must start after the end of the history")
        else:
            index = full_history.future_index(horizon)

        states, forecasts, _ = self._forecast_all(
            self.states, full_history, horizon, future_exogenous, index,
            tolerate_failures=False,
        )
        features = pd.DataFrame(
            {name: forecasts[name].point for name in self.meta_model.feature_names}, index=index
        )
        point = self.meta_model.predict(features)
        interval = self.estimator.estimate(self.table, self.meta_model.params, features, point)
        result = interval.to_forecast(index)

        self.states = states
        self._advance(PipelineStage.BACKTEST, PipelineStage.PRODUCTION)

        forecast_path = self.config.get("output", {}).get("forecast_path")
        if forecast_path:
            save_forecast_csv(result, forecast_path)
        return result


def train_and_backtest(
    history: TimeSeriesData,
    test_window: int = 72,
    config: Optional[Dict[str, Any]] = None,
) -> BacktestResult:
    """Backtest the stacked forecaster with a fresh orchestrator."""
    return ForecastOrchestrator(config).train_and_backtest(history, test_window)


def forecast_future(
    full_history: TimeSeriesData,
    horizon: int = 72,
    future_exogenous: Optional[pd.DataFrame] = None,
    config: Optional[Dict[str, Any]] = None,
    test_window: int = 72,
) -> ForecastResult:
    """
    Backtest then forecast the `horizon` steps after `full_history`.

    The meta-model must be trained before it can forecast, so this runs
    both stages on a fresh orchestrator.
    """
    orchestrator = ForecastOrchestrator(config)
    orchestrator.train_and_backtest(full_history, test_window)
    return orchestrator.forecast_future(full_history, horizon, future_exogenous)
