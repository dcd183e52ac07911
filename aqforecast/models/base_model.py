"""Base interface for all base forecasters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
import logging
import time

import numpy as np
import pandas as pd

from aqforecast.data.structs import ForecastResult, TimeSeriesData, extend_index
from aqforecast.evaluation.metrics import score_forecast
from aqforecast.utils.error_handling import (
    BaseModelFitFailure,
    ForecastingError,
    LengthMismatchError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ModelState:
    """Immutable result of fitting a base forecaster."""
    model_name: str
    model_type: str
    model_object: Any
    hyperparameters: Dict[str, Any]
    train_start: Any
    train_end: Any
    n_observations: int
    training_time: float = 0.0
    warm_started: bool = False
    training_metrics: Dict[str, float] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert state metadata to dictionary (excludes model object)."""
        return {
            "model_name": self.model_name,
            "model_type": self.model_type,
            "hyperparameters": self.hyperparameters,
            "train_start": str(self.train_start),
            "train_end": str(self.train_end),
            "n_observations": self.n_observations,
            "training_time": self.training_time,
            "warm_started": self.warm_started,
            "training_metrics": self.training_metrics,
            "created_at": self.created_at.isoformat(),
            "metadata": self.metadata,
        }


class BaseForecaster(ABC):
    """
    Abstract base class for the base forecasters.

    Subclasses implement `_fit`, `_predict` and optionally `_refit`; the
    public methods wrap them with input validation, timing, failure
    translation and bookkeeping of the training window.
    """

    #: Whether `predict` needs exogenous rows for the forecast horizon
    requires_exogenous: bool = False
    #: Whether `_refit` warm-starts (False means it retrains from scratch)
    supports_warm_start: bool = False

    def __init__(
        self,
        name: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        random_state: int = 42,
    ):
        """
        Initialize base forecaster.

        Args:
            name: Identifier used as the stacking column name
            hyperparameters: Model hyperparameters (merged over `defaults`)
            random_state: Seed for any randomness in fitting
        """
        self.name = name or self.model_type
        self.hyperparameters = {**self.defaults(), **(hyperparameters or {})}
        self.random_state = random_state

    @property
    @abstractmethod
    def model_type(self) -> str:
        """Return the model type identifier."""
        pass

    def defaults(self) -> Dict[str, Any]:
        """Default hyperparameters."""
        return {}

    @abstractmethod
    def _fit(self, history: TimeSeriesData) -> Any:
        """Fit the underlying model and return its fitted object."""
        pass

    def _refit(self, state: ModelState, history: TimeSeriesData) -> Any:
        """Update a fitted object on an extended window. Defaults to a full retrain."""
        return self._fit(history)

    @abstractmethod
    def _predict(
        self,
        state: ModelState,
        horizon: int,
        exogenous: Optional[pd.DataFrame],
    ) -> Dict[str, Optional[np.ndarray]]:
        """Return {'point': ..., 'lower': ..., 'upper': ...} for `horizon` steps."""
        pass

    def fit(self, history: TimeSeriesData) -> ModelState:
        """
        Fit the model on every row of `history`.

        Args:
            history: Target and regressors up to the cutoff

        Returns:
            Immutable ModelState

        Raises:
            BaseModelFitFailure: If the underlying model fails to fit
        """
        self._check_history(history)
        start = time.time()
        logger.info(f"Fitting {self.name} on {len(history)} observations")
        model_object = self._guarded(self._fit, history)
        return self._make_state(model_object, history, time.time() - start, warm_started=False)

    def refit(self, state: ModelState, new_history: TimeSeriesData) -> ModelState:
        """
        Update a fitted model on an extended window.

        Warm-starts where `supports_warm_start` is true, otherwise retrains.

        Args:
            state: State returned by a previous fit
            new_history: The extended window

        Returns:
            New ModelState; `state` is left untouched
        """
        self._check_history(new_history)
        start = time.time()
        mode = "warm-start" if self.supports_warm_start else "full retrain"
        logger.info(f"Refitting {self.name} ({mode}) on {len(new_history)} observations")
        model_object = self._guarded(self._refit, state, new_history)
        return self._make_state(
            model_object, new_history, time.time() - start,
            warm_started=self.supports_warm_start,
        )

    def predict(
        self,
        state: ModelState,
        horizon: int,
        exogenous: Optional[pd.DataFrame] = None,
        index: Optional[pd.Index] = None,
    ) -> ForecastResult:
        """
        Forecast `horizon` steps past the end of the fitted window.

        Args:
            state: Fitted state
            horizon: Number of steps to forecast
            exogenous: Future regressors, exactly `horizon` rows when required
            index: Timestamps of the forecast steps (defaults to exogenous.index
                   or the continuation of the training index)

        Returns:
            ForecastResult with no missing values
        """
        if horizon < 1:
            raise ValueError("horizon must be positive")
        if self.requires_exogenous:
            if exogenous is None:
                raise ValueError(f"{self.name} requires exogenous regressors for prediction")
            if len(exogenous) != horizon:
                raise LengthMismatchError(
                    f"{self.name}: exogenous has {len(exogenous)} rows for a horizon of {horizon}"
                )
            exogenous = exogenous[state.metadata.get("exogenous_columns", list(exogenous.columns))]
        else:
            exogenous = None

        if index is None:
            index = exogenous.index if exogenous is not None else future_index(state, horizon)

        output = self._guarded(self._predict, state, horizon, exogenous)
        point = np.asarray(output["point"], dtype=float)
        if point.shape != (horizon,) or not np.all(np.isfinite(point)):
            raise BaseModelFitFailure(self.name, "forecast is incomplete or non-finite")

        result = ForecastResult(
            index=index,
            point=point,
            lower=output.get("lower"),
            upper=output.get("upper"),
            model_name=self.name,
        )
        return result.clamp_inversions()

    def score(self, result: ForecastResult, actual: pd.Series) -> Dict[str, float]:
        """Score a forecast with the shared scoring protocol."""
        return score_forecast(result, actual)

    def _guarded(self, func, *args):
        """Translate underlying library failures into BaseModelFitFailure."""
        try:
            return func(*args)
        except ForecastingError:
            raise
        except Exception as e:
            logger.error(f"{self.name} failed in {func.__name__}: {e}")
            raise BaseModelFitFailure(self.name, f"{type(e).__name__}: {e}") from e

    def _check_history(self, history: TimeSeriesData) -> None:
        if len(history) == 0:
            raise ValueError("history cannot be empty")
        if self.requires_exogenous and history.exogenous is None:
            raise ValueError(f"{self.name} requires exogenous regressors")

    def _make_state(
        self,
        model_object: Any,
        history: TimeSeriesData,
        training_time: float,
        warm_started: bool,
    ) -> ModelState:
        return ModelState(
            model_name=self.name,
            model_type=self.model_type,
            model_object=model_object,
            hyperparameters=dict(self.hyperparameters),
            train_start=history.index[0],
            train_end=history.index[-1],
            n_observations=len(history),
            training_time=training_time,
            warm_started=warm_started,
            metadata={
                "exogenous_columns": history.exogenous_columns,
                "index_tail": history.index[-3:],
                "frequency": history.frequency,
                "seasonal_period": history.seasonal_period,
            },
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


def future_index(state: ModelState, horizon: int) -> pd.Index:
    """Timestamps of the `horizon` steps following a state's training window."""
    return extend_index(state.metadata["index_tail"], horizon, state.metadata.get("frequency"))
