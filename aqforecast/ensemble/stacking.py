"""Walk-forward construction of the stacking table from base-model forecasts."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from joblib import Parallel, delayed

from aqforecast.data.splitters import SplitIndices, TimeSeriesSplitter
from aqforecast.data.structs import ForecastResult, StackingTable, TimeSeriesData
from aqforecast.models.base_model import BaseForecaster, ModelState
from aqforecast.utils.error_handling import (
    BaseModelFitFailure,
    ForecastingError,
    LeakageViolationError,
)

logger = logging.getLogger(__name__)


@dataclass
class StackingResult:
    """Stacking table plus the states and forecasts that produced it."""
    table: StackingTable
    states: Dict[str, ModelState]
    forecasts: Dict[str, ForecastResult]
    split: SplitIndices
    excluded: Dict[str, str] = field(default_factory=dict)


def _fit_and_forecast(
    forecaster: BaseForecaster,
    train: TimeSeriesData,
    horizon: int,
    validation: TimeSeriesData,
) -> Tuple[ModelState, ForecastResult]:
    state = forecaster.fit(train)
    forecast = forecaster.predict(
        state, horizon, exogenous=validation.exogenous, index=validation.index
    )
    return state, forecast


def _attempt(
    forecaster: BaseForecaster,
    train: TimeSeriesData,
    horizon: int,
    validation: TimeSeriesData,
):
    try:
        return forecaster.name, _fit_and_forecast(forecaster, train, horizon, validation), None
    except BaseModelFitFailure as e:
        return forecaster.name, None, e


class WalkForwardStackingBuilder:
    """
    Fits every base forecaster on the history before the validation window,
    forecasts the window and tabulates the forecasts next to the truth.

    A forecaster that fails to fit is logged and excluded; a state whose
    training window reaches into the validation window is fatal.
    """

    def __init__(self, n_jobs: int = 1, splitter: Optional[TimeSeriesSplitter] = None):
        """
        Args:
            n_jobs: Concurrent base-model fits (joblib threads)
            splitter: Splitter used to cut the validation window
        """
        self.n_jobs = n_jobs
        self.splitter = splitter or TimeSeriesSplitter()

    def build(
        self,
        history: TimeSeriesData,
        forecasters: Sequence[BaseForecaster],
        horizon: int = 72,
    ) -> StackingResult:
        """
        Build the stacking table over the last `horizon` rows of `history`.

        Args:
            history: Training history (no test rows)
            forecasters: Base forecasters with unique names
            horizon: Validation window length

        Returns:
            StackingResult

        Raises:
            LeakageViolationError: If any base model saw validation rows
            ForecastingError: If every base model failed
        """
        names = [f.name for f in forecasters]
        if len(set(names)) != len(names):
            raise ValueError(f"Base forecaster names must be unique, got {names}")
        if not forecasters:
            raise ValueError("At least one base forecaster is required")

        split = self.splitter.walk_forward_split(history.index, horizon)
        valid, issues = self.splitter.validate_no_leakage(history.index, split)
        if not valid:
            raise LeakageViolationError(f"Walk-forward split leaks validation rows: {issues}")
        train, validation = history.split_tail(horizon)
        logger.info(
            f"Building stacking table: {len(forecasters)} models, {len(train)} training rows, "
            f"validation {split.metadata['validation_start']} .. {split.metadata['validation_end']}"
        )

        outcomes = Parallel(n_jobs=self.n_jobs, prefer="threads")(
            delayed(_attempt)(forecaster, train, horizon, validation)
            for forecaster in forecasters
        )

        states: Dict[str, ModelState] = {}
        forecasts: Dict[str, ForecastResult] = {}
        excluded: Dict[str, str] = {}
        for name, output, failure in outcomes:
            if failure is not None:
                logger.warning(f"Excluding {name} from the stacking table: {failure}")
                excluded[name] = str(failure)
                continue
            states[name], forecasts[name] = output

        self.check_leakage(states, validation, len(train))

        if not forecasts:
            raise ForecastingError(f"Every base model failed: {excluded}")

        table = StackingTable.from_forecasts(forecasts, validation.target)
        logger.info(f"Stacking table ready: {table!r}")
        return StackingResult(
            table=table, states=states, forecasts=forecasts, split=split, excluded=excluded,
        )

    @staticmethod
    def check_leakage(
        states: Dict[str, ModelState],
        validation: TimeSeriesData,
        max_observations: int,
    ) -> None:
        """Raise if any state was trained on or after the first validation row."""
        first_validation = validation.index[0]
        for name, state in states.items():
            if state.train_end >= first_validation or state.n_observations > max_observations:
                raise LeakageViolationError(
                    f"{name} was trained through {state.train_end} ({state.n_observations} rows); "
                    f"validation starts at {first_validation}"
                )
