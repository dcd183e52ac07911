"""Data containers, walk-forward splitting and windowed batch sampling."""

from .structs import ForecastResult, StackingTable, TimeSeriesData, TRUE_VALUE_COLUMN
from .splitters import TimeSeriesSplitter, SplitIndices
from .sampler import WindowedSequenceSampler

__all__ = [
    "ForecastResult",
    "StackingTable",
    "TimeSeriesData",
    "TRUE_VALUE_COLUMN",
    "TimeSeriesSplitter",
    "SplitIndices",
    "WindowedSequenceSampler",
]
