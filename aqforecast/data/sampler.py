"""Sliding-window batch source for sequence models."""

import logging
import math
from typing import Iterator, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class WindowedSequenceSampler:
    """
    Endless (samples, targets) batch source over a 2-D time-ordered array.

    Each sample is the `lookback` rows preceding a target row, sub-sampled
    every `step` rows; its target is the `target_column` value `delay` rows
    after that target row. Windows are cut on demand, never materialised all
    at once.

    Sequential mode walks the usable rows with a cursor and wraps back to the
    first usable row, so batches are always full and an epoch of
    `steps_per_epoch` calls visits every usable row exactly once before any
    repeat. Shuffled mode draws rows uniformly with replacement.

    Example:
        >>> sampler = WindowedSequenceSampler(data, lookback=72, batch_size=32)
        >>> samples, targets = sampler.next_batch()
        >>> model.fit(sampler.batches(), steps_per_epoch=sampler.steps_per_epoch)
    """

    def __init__(
        self,
        data: np.ndarray,
        lookback: int,
        delay: int = 0,
        step: int = 1,
        batch_size: int = 32,
        shuffle: bool = False,
        min_index: int = 0,
        max_index: Optional[int] = None,
        target_column: int = 0,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Args:
            data: Array of shape (n_steps, n_channels)
            lookback: Rows of history per sample
            delay: Rows past the target row at which the target is read
            step: Stride inside the lookback window
            batch_size: Samples per batch
            shuffle: Draw rows at random instead of sequentially
            min_index: First row the windows may read
            max_index: Last usable target row (default len(data) - delay - 1)
            target_column: Channel holding the target
            rng: Generator used in shuffled mode
        """
        data = np.asarray(data, dtype=np.float32)
        if data.ndim != 2:
            raise ValueError(f"data must be 2-D (steps, channels), got shape {data.shape}")
        if lookback < 1 or step < 1 or batch_size < 1:
            raise ValueError("lookback, step and batch_size must be positive")
        if delay < 0:
            raise ValueError("delay must be non-negative")
        if not 0 <= target_column < data.shape[1]:
            raise ValueError(f"target_column {target_column} out of range for {data.shape[1]} channels")

        if max_index is None:
            max_index = len(data) - delay - 1
        if max_index + delay >= len(data):
            raise ValueError(
                f"max_index ({max_index}) + delay ({delay}) exceeds the data length ({len(data)})"
            )

        self.data = data
        self.lookback = lookback
        self.delay = delay
        self.step = step
        self.batch_size = batch_size
        self.shuffle = shuffle
        self.min_index = min_index
        self.max_index = max_index
        self.target_column = target_column
        self.rng = rng if rng is not None else np.random.default_rng()

        self.first_row = min_index + lookback
        self.usable_rows = max_index - self.first_row + 1
        if self.usable_rows < 1:
            raise ValueError(
                f"No usable rows: lookback {lookback} from index {min_index} "
                f"passes max_index {max_index}"
            )
        if batch_size > self.usable_rows and not shuffle:
            logger.debug(
                f"batch_size {batch_size} exceeds {self.usable_rows} usable rows; batches wrap"
            )
        self._cursor = 0

    @property
    def window_length(self) -> int:
        """Time steps per sample after striding."""
        return math.ceil(self.lookback / self.step)

    @property
    def n_channels(self) -> int:
        return self.data.shape[1]

    @property
    def steps_per_epoch(self) -> int:
        """Calls needed to visit every usable row once."""
        return math.ceil(self.usable_rows / self.batch_size)

    def reset(self) -> None:
        """Rewind the sequential cursor to the first usable row."""
        self._cursor = 0

    def next_rows(self) -> np.ndarray:
        """Target rows for the next batch (advances the cursor in sequential mode)."""
        if self.shuffle:
            return self.rng.integers(self.first_row, self.max_index + 1, size=self.batch_size)

        offsets = (self._cursor + np.arange(self.batch_size)) % self.usable_rows
        self._cursor = (self._cursor + self.batch_size) % self.usable_rows
        return self.first_row + offsets

    def batch_for_rows(self, rows: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Cut the windows and targets for explicit target rows."""
        samples = np.empty((len(rows), self.window_length, self.n_channels), dtype=np.float32)
        targets = np.empty(len(rows), dtype=np.float32)
        for j, row in enumerate(rows):
            samples[j] = self.data[row - self.lookback:row:self.step]
            targets[j] = self.data[row + self.delay, self.target_column]
        return samples, targets

    def next_batch(self) -> Tuple[np.ndarray, np.ndarray]:
        """Produce one (samples, targets) batch."""
        return self.batch_for_rows(self.next_rows())

    def batches(self) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        """Infinite generator of batches, suitable for keras.Model.fit."""
        while True:
            yield self.next_batch()

    def __iter__(self) -> "WindowedSequenceSampler":
        return self

    def __next__(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.next_batch()
