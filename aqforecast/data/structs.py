"""Core data structures for the forecasting pipeline."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import warnings

import numpy as np
import pandas as pd
from pandas.tseries.frequencies import to_offset

from aqforecast.utils.error_handling import (
    ForecastingError,
    IntervalInversionWarning,
    LengthMismatchError,
)

logger = logging.getLogger(__name__)

TRUE_VALUE_COLUMN = "true_value"


def extend_index(index: pd.Index, steps: int, frequency: Optional[str] = None) -> pd.Index:
    """
    Index for the `steps` positions following the end of `index`.

    Args:
        index: Strictly increasing DatetimeIndex or integer index
        steps: Number of positions to add
        frequency: Fallback frequency when the index carries none

    Returns:
        DatetimeIndex continuing at the same frequency, or a RangeIndex
    """
    if isinstance(index, pd.DatetimeIndex):
        freq = index.freq or frequency
        if freq is None and len(index) >= 3:
            freq = pd.infer_freq(index)
        if freq is None:
            raise ValueError("Cannot infer frequency to extend a DatetimeIndex")
        offset = to_offset(freq)
        return pd.date_range(index[-1] + offset, periods=steps, freq=offset)
    start = int(index[-1]) + 1
    return pd.RangeIndex(start, start + steps)


@dataclass
class TimeSeriesData:
    """
    Container for the target series and its aligned exogenous regressors.

    Attributes:
        target: Target observations indexed by timestamp
        exogenous: Optional regressors sharing the target index
        frequency: Sampling frequency string (e.g. 'h')
        seasonal_period: Dominant seasonal period in steps
        metadata: Free-form metadata (source, units, ...)
    """
    target: pd.Series
    exogenous: Optional[pd.DataFrame] = None
    frequency: Optional[str] = None
    seasonal_period: int = 24
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate consistency after initialization."""
        index = self.target.index
        if index.has_duplicates:
            raise ValueError("Target index contains duplicate timestamps")
        if not index.is_monotonic_increasing:
            raise ValueError("Target index must be strictly increasing")
        if self.target.isnull().any():
            raise ValueError("Target contains missing values; impute before forecasting")
        if self.exogenous is not None:
            if len(self.exogenous) != len(self.target):
                raise LengthMismatchError(
                    f"Length mismatch: target ({len(self.target)}) vs exogenous ({len(self.exogenous)})"
                )
            if not self.exogenous.index.equals(index):
                raise ValueError("Exogenous index must equal the target index")
        if self.frequency is None and isinstance(index, pd.DatetimeIndex) and len(index) > 2:
            self.frequency = pd.infer_freq(index)

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        target_column: str,
        exogenous_columns: Optional[Sequence[str]] = None,
        frequency: Optional[str] = None,
        seasonal_period: int = 24,
    ) -> "TimeSeriesData":
        """
        Build from a timestamp-indexed frame.

        Args:
            frame: Observations with one column per variable
            target_column: Column to forecast
            exogenous_columns: Regressor columns (default: every other column)
            frequency: Sampling frequency (inferred when omitted)
            seasonal_period: Dominant seasonal period in steps
        """
        if target_column not in frame.columns:
            raise ValueError(f"Target column '{target_column}' not found")
        if exogenous_columns is None:
            exogenous_columns = [c for c in frame.columns if c != target_column]
        missing = [c for c in exogenous_columns if c not in frame.columns]
        if missing:
            raise ValueError(f"Exogenous columns not found: {missing}")
        return cls(
            target=frame[target_column].astype(float),
            exogenous=frame[list(exogenous_columns)].astype(float) if exogenous_columns else None,
            frequency=frequency,
            seasonal_period=seasonal_period,
        )

    @classmethod
    def from_config(cls, frame: pd.DataFrame, data_config: Dict[str, Any]) -> "TimeSeriesData":
        """
        Build from a frame using the `data` section of the pipeline configuration
        (target_column, exogenous_columns, frequency, seasonal_period).
        """
        return cls.from_frame(
            frame,
            data_config.get("target_column", "concentration"),
            exogenous_columns=data_config.get("exogenous_columns"),
            frequency=data_config.get("frequency"),
            seasonal_period=data_config.get("seasonal_period", 24),
        )

    def __len__(self) -> int:
        return len(self.target)

    @property
    def index(self) -> pd.Index:
        return self.target.index

    @property
    def exogenous_columns(self) -> List[str]:
        return [] if self.exogenous is None else self.exogenous.columns.tolist()

    def _subset(self, rows: slice) -> "TimeSeriesData":
        return replace(
            self,
            target=self.target.iloc[rows],
            exogenous=None if self.exogenous is None else self.exogenous.iloc[rows],
            metadata=dict(self.metadata),
        )

    def head(self, n: int) -> "TimeSeriesData":
        """First n observations."""
        return self._subset(slice(0, n))

    def tail(self, n: int) -> "TimeSeriesData":
        """Last n observations."""
        return self._subset(slice(len(self) - n, len(self)))

    def split_tail(self, n: int) -> Tuple["TimeSeriesData", "TimeSeriesData"]:
        """Split into (everything but the last n rows, last n rows)."""
        if not 0 < n < len(self):
            raise ValueError(f"Cannot split {n} rows from a series of length {len(self)}")
        cut = len(self) - n
        return self._subset(slice(0, cut)), self._subset(slice(cut, len(self)))

    def to_frame(self) -> pd.DataFrame:
        """Target as the first column followed by the regressors."""
        name = self.target.name if self.target.name is not None else "target"
        frame = self.target.rename(name).to_frame()
        if self.exogenous is not None:
            frame = pd.concat([frame, self.exogenous], axis=1)
        return frame

    def future_index(self, steps: int) -> pd.Index:
        """Index for the `steps` observations following the last one."""
        return extend_index(self.index, steps, self.frequency)


@dataclass(frozen=True, eq=False)
class ForecastResult:
    """Point forecast with an optional interval, aligned to `index`."""
    index: pd.Index
    point: np.ndarray
    lower: Optional[np.ndarray] = None
    upper: Optional[np.ndarray] = None
    model_name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "point", np.asarray(self.point, dtype=float))
        if (self.lower is None) != (self.upper is None):
            raise ValueError("lower and upper must be provided together")
        for name in ("lower", "upper"):
            values = getattr(self, name)
            if values is not None:
                object.__setattr__(self, name, np.asarray(values, dtype=float))
        for name in ("lower", "upper"):
            values = getattr(self, name)
            if values is not None and len(values) != len(self.point):
                raise LengthMismatchError(
                    f"{name} has length {len(values)}, point has {len(self.point)}"
                )
        if len(self.index) != len(self.point):
            raise LengthMismatchError(
                f"index has length {len(self.index)}, point has {len(self.point)}"
            )

    @property
    def horizon(self) -> int:
        return len(self.point)

    @property
    def has_interval(self) -> bool:
        return self.lower is not None

    def clamp_inversions(self) -> "ForecastResult":
        """
        Return a copy where every step with upper < lower is collapsed onto
        the point forecast.
        """
        if not self.has_interval:
            return self
        inverted = self.upper < self.lower
        if not inverted.any():
            return self
        n_inverted = int(inverted.sum())
        message = f"{self.model_name or 'forecast'}: clamped {n_inverted} inverted interval step(s)"
        logger.warning(message)
        warnings.warn(message, IntervalInversionWarning, stacklevel=2)
        lower = np.where(inverted, self.point, self.lower)
        upper = np.where(inverted, self.point, self.upper)
        return replace(self, lower=lower, upper=upper)

    def to_frame(self) -> pd.DataFrame:
        """Tabular form with columns timestamp, point, upper, lower."""
        nan = np.full(self.horizon, np.nan)
        return pd.DataFrame({
            "timestamp": self.index,
            "point": self.point,
            "upper": self.upper if self.has_interval else nan,
            "lower": self.lower if self.has_interval else nan,
        })

    def to_series(self) -> pd.Series:
        return pd.Series(self.point, index=self.index, name=self.model_name or "point")


class StackingTable:
    """
    Base-model forecasts over the walk-forward validation window.

    Rows are time steps; one column per base model plus `true_value`.
    """

    def __init__(self, frame: pd.DataFrame):
        if TRUE_VALUE_COLUMN not in frame.columns:
            raise ValueError(f"Stacking table requires a '{TRUE_VALUE_COLUMN}' column")
        if frame.columns.has_duplicates:
            raise ValueError("Stacking table has duplicate model columns")
        if len(frame.columns) < 2:
            raise ValueError("Stacking table needs at least one base-model column")
        missing = frame.columns[frame.isnull().any()].tolist()
        if missing:
            raise ForecastingError(f"Stacking table has missing values in {missing}")
        self.frame = frame

    @classmethod
    def from_forecasts(
        cls, forecasts: Dict[str, ForecastResult], actual: pd.Series
    ) -> "StackingTable":
        """Assemble the table from per-model forecasts aligned with `actual`."""
        columns = {}
        for name, result in forecasts.items():
            if result.horizon != len(actual):
                raise LengthMismatchError(
                    f"{name} forecast has {result.horizon} steps, validation window has {len(actual)}"
                )
            columns[name] = result.point
        frame = pd.DataFrame(columns, index=actual.index)
        frame[TRUE_VALUE_COLUMN] = actual.to_numpy(dtype=float)
        return cls(frame)

    def __len__(self) -> int:
        return len(self.frame)

    def __repr__(self) -> str:
        return f"StackingTable(rows={len(self)}, models={self.model_columns})"

    @property
    def model_columns(self) -> List[str]:
        return [c for c in self.frame.columns if c != TRUE_VALUE_COLUMN]

    @property
    def features(self) -> pd.DataFrame:
        return self.frame[self.model_columns]

    @property
    def target(self) -> pd.Series:
        return self.frame[TRUE_VALUE_COLUMN]

    def drop_models(self, names: Sequence[str]) -> "StackingTable":
        """Copy of the table without the given model columns."""
        return StackingTable(self.frame.drop(columns=list(names)))

    def select_models(self, names: Sequence[str]) -> "StackingTable":
        """Copy of the table restricted to the given model columns."""
        return StackingTable(self.frame[list(names) + [TRUE_VALUE_COLUMN]])

    def resample(self, rows: np.ndarray) -> "StackingTable":
        """Rows taken by position (with repetition) for bootstrap resampling."""
        return StackingTable(self.frame.iloc[rows])
