"""Bootstrap prediction intervals for the meta-model forecast."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
import logging
import warnings

import numpy as np
import pandas as pd
from joblib import Parallel, delayed, effective_n_jobs

from aqforecast.data.structs import ForecastResult, StackingTable
from aqforecast.models.meta_model import build_regressor
from aqforecast.utils.cancellation import CancellationToken
from aqforecast.utils.error_handling import (
    InsufficientResamplesError,
    IntervalInversionWarning,
    LengthMismatchError,
)

logger = logging.getLogger(__name__)


def empirical_interval(samples: np.ndarray, confidence: float = 0.95) -> Tuple[np.ndarray, np.ndarray]:
    """
    Per-step percentile interval over sample paths.

    Args:
        samples: Array of shape (n_samples, horizon)
        confidence: Central coverage, e.g. 0.95 for the 2.5/97.5 percentiles

    Returns:
        (lower, upper) arrays of length horizon
    """
    if not 0 < confidence < 1:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")
    samples = np.asarray(samples, dtype=float)
    if samples.ndim != 2 or samples.shape[0] < 2:
        raise ValueError(f"samples must have shape (n_samples >= 2, horizon), got {samples.shape}")
    tail = 100.0 * (1.0 - confidence) / 2.0
    lower = np.percentile(samples, tail, axis=0)
    upper = np.percentile(samples, 100.0 - tail, axis=0)
    return lower, upper


def _fit_block(
    X: np.ndarray,
    y: np.ndarray,
    eval_X: np.ndarray,
    params: Dict[str, Any],
    rows: np.ndarray,
    seeds: np.ndarray,
) -> np.ndarray:
    """Refit the meta-model on each resample in a block and predict the eval rows."""
    predictions = np.empty((len(rows), len(eval_X)))
    for i, (sample, seed) in enumerate(zip(rows, seeds)):
        regressor = build_regressor(params, random_state=int(seed))
        regressor.fit(X[sample], y[sample], verbose=False)
        predictions[i] = regressor.predict(eval_X)
    return predictions


@dataclass
class BootstrapInterval:
    """Interval around the meta-model point forecast."""
    point: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    raw_half_widths: np.ndarray
    ordered_half_widths: np.ndarray
    scaled_half_widths: np.ndarray
    n_resamples: int
    k: int
    confidence: float

    def to_forecast(self, index: pd.Index, model_name: str = "meta") -> ForecastResult:
        return ForecastResult(
            index=index, point=self.point, lower=self.lower, upper=self.upper, model_name=model_name,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_resamples": self.n_resamples,
            "k": self.k,
            "confidence": self.confidence,
            "raw_half_widths": self.raw_half_widths.tolist(),
            "scaled_half_widths": self.scaled_half_widths.tolist(),
        }


class BootstrapIntervalEstimator:
    """
    Resamples StackingTable rows with replacement, refits the meta-model
    on each resample and turns the spread of its forecasts into an interval.

    Half-widths are ordered ascending across steps when `order_half_widths`
    is set and then multiplied by the number of base-model columns.
    """

    def __init__(
        self,
        n_resamples: int = 10000,
        confidence: float = 0.95,
        min_resamples: int = 1000,
        allow_insufficient: bool = False,
        rng: Optional[np.random.Generator] = None,
        n_jobs: int = -1,
        block_size: int = 500,
        order_half_widths: bool = True,
        cancellation: Optional[CancellationToken] = None,
    ):
        """
        Args:
            n_resamples: Number of bootstrap replicates R
            confidence: Central coverage of the percentile interval
            min_resamples: Reliability floor for R
            allow_insufficient: Warn instead of raising when R < min_resamples
            rng: Generator for resample indices and replicate seeds
            n_jobs: joblib workers
            block_size: Replicates per joblib task; cancellation is checked between blocks
            order_half_widths: Sort half-widths ascending across steps before scaling
            cancellation: Token checked between blocks
        """
        if n_resamples < 2:
            raise ValueError("n_resamples must be at least 2")
        if block_size < 1:
            raise ValueError("block_size must be positive")
        if n_resamples < min_resamples:
            message = f"{n_resamples} bootstrap resamples is below the floor of {min_resamples}"
            if not allow_insufficient:
                raise InsufficientResamplesError(message)
            logger.warning(f"{message}; intervals may be unreliable")

        self.n_resamples = n_resamples
        self.confidence = confidence
        self.min_resamples = min_resamples
        self.allow_insufficient = allow_insufficient
        self.rng = rng if rng is not None else np.random.default_rng()
        self.n_jobs = n_jobs
        self.block_size = block_size
        self.order_half_widths = order_half_widths
        self.cancellation = cancellation

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        rng: Optional[np.random.Generator] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> "BootstrapIntervalEstimator":
        """Build from the `bootstrap` and `parallel` config sections."""
        section = config.get("bootstrap", {})
        return cls(
            n_resamples=section.get("n_resamples", 10000),
            confidence=section.get("confidence", 0.95),
            min_resamples=section.get("min_resamples", 1000),
            allow_insufficient=section.get("allow_insufficient", False),
            rng=rng,
            n_jobs=config.get("parallel", {}).get("bootstrap_jobs", -1),
            block_size=section.get("block_size", 500),
            order_half_widths=section.get("order_half_widths", True),
            cancellation=cancellation,
        )

    def draw_resamples(self, n_rows: int) -> Tuple[np.ndarray, np.ndarray]:
        """All resample row indices (R, n_rows) and one seed per replicate."""
        rows = self.rng.integers(0, n_rows, size=(self.n_resamples, n_rows))
        seeds = self.rng.integers(0, 2**31 - 1, size=self.n_resamples)
        return rows, seeds

    def replicate_forecasts(
        self,
        table: StackingTable,
        params: Dict[str, Any],
        eval_features: pd.DataFrame,
    ) -> np.ndarray:
        """Meta-model forecasts of the eval rows, one row per replicate."""
        X = table.features.to_numpy(dtype=float)
        y = table.target.to_numpy(dtype=float)
        eval_X = eval_features[table.model_columns].to_numpy(dtype=float)
        rows, seeds = self.draw_resamples(len(table))

        blocks: List[np.ndarray] = []
        starts = range(0, self.n_resamples, self.block_size)
        logger.info(
            f"Bootstrapping {self.n_resamples} meta-model refits in {len(starts)} block(s)"
        )
        with Parallel(n_jobs=self.n_jobs) as parallel:
            # Dispatch a worker-sized batch of blocks per round to check cancellation between rounds
            per_round = effective_n_jobs(self.n_jobs)
            starts = list(starts)
            for r in range(0, len(starts), per_round):
                if self.cancellation is not None:
                    self.cancellation.raise_if_cancelled("bootstrap")
                batch = starts[r:r + per_round]
                blocks.extend(parallel(
                    delayed(_fit_block)(
                        X, y, eval_X, params,
                        rows[s:s + self.block_size], seeds[s:s + self.block_size],
                    )
                    for s in batch
                ))
        return np.vstack(blocks)

    def interval_from_samples(self, samples: np.ndarray, point: np.ndarray, k: int) -> BootstrapInterval:
        """Turn replicate forecasts into the scaled interval around `point`."""
        point = np.asarray(point, dtype=float)
        if samples.shape[1] != len(point):
            raise LengthMismatchError(
                f"Bootstrap samples cover {samples.shape[1]} steps, point forecast has {len(point)}"
            )
        lower, upper = empirical_interval(samples, self.confidence)
        raw = (upper - lower) / 2.0
        ordered = np.sort(raw) if self.order_half_widths else raw.copy()
        scaled = k * ordered

        negative = scaled < 0
        if negative.any():
            message = f"Clamped {int(negative.sum())} negative bootstrap half-width(s) to zero"
            logger.warning(message)
            warnings.warn(message, IntervalInversionWarning, stacklevel=2)
            scaled = np.where(negative, 0.0, scaled)

        return BootstrapInterval(
            point=point,
            lower=point - scaled,
            upper=point + scaled,
            raw_half_widths=raw,
            ordered_half_widths=ordered,
            scaled_half_widths=scaled,
            n_resamples=samples.shape[0],
            k=k,
            confidence=self.confidence,
        )

    def estimate(
        self,
        table: StackingTable,
        params: Dict[str, Any],
        eval_features: pd.DataFrame,
        point: np.ndarray,
    ) -> BootstrapInterval:
        """
        Bootstrap interval for the meta-model forecast of `eval_features`.

        Args:
            table: Stacking table the meta-model was fit on
            params: Meta-model hyperparameters
            eval_features: Base-model forecasts for the steps being predicted
            point: Meta-model point forecast of those steps

        Returns:
            BootstrapInterval with lower <= point <= upper at every step
        """
        samples = self.replicate_forecasts(table, params, eval_features)
        interval = self.interval_from_samples(samples, point, k=len(table.model_columns))
        logger.info(
            f"Bootstrap interval: k={interval.k}, "
            f"mean half-width {float(interval.scaled_half_widths.mean()):.4f}"
        )
        return interval
