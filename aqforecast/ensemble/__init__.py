"""Walk-forward stacking and bootstrap intervals."""

from aqforecast.ensemble.bootstrap import (
    BootstrapInterval,
    BootstrapIntervalEstimator,
    empirical_interval,
)
from aqforecast.ensemble.stacking import StackingResult, WalkForwardStackingBuilder

__all__ = [
    "BootstrapInterval",
    "BootstrapIntervalEstimator",
    "empirical_interval",
    "StackingResult",
    "WalkForwardStackingBuilder",
]
