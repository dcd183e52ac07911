"""Walk-forward splitting utilities."""

from typing import List, Dict, Any, Tuple
from dataclasses import dataclass, field
import logging

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass
class SplitIndices:
    """Container for train/validation split positions with metadata."""
    train_indices: List[int]
    validation_indices: List[int]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "train_indices": self.train_indices,
            "validation_indices": self.validation_indices,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SplitIndices":
        """Create from dictionary."""
        return cls(
            train_indices=data["train_indices"],
            validation_indices=data["validation_indices"],
            metadata=data.get("metadata", {}),
        )


class TimeSeriesSplitter:
    """Time-series aware splitting that never lets validation rows precede training rows."""

    def walk_forward_split(self, index: pd.Index, horizon: int) -> SplitIndices:
        """
        Hold out the trailing `horizon` rows as the validation window.

        Args:
            index: Strictly increasing index of the full history
            horizon: Number of trailing rows to hold out

        Returns:
            SplitIndices with every earlier row in the training part
        """
        n = len(index)
        if horizon <= 0:
            raise ValueError("horizon must be positive")
        if horizon >= n:
            raise ValueError(
                f"Validation horizon ({horizon}) must be shorter than the history ({n})"
            )

        cut = n - horizon
        train_indices = list(range(cut))
        validation_indices = list(range(cut, n))

        metadata = {
            "split_type": "walk_forward",
            "horizon": horizon,
            "total_samples": n,
            "train_samples": len(train_indices),
            "validation_samples": len(validation_indices),
            "train_start": str(index[0]),
            "train_end": str(index[cut - 1]),
            "validation_start": str(index[cut]),
            "validation_end": str(index[-1]),
        }
        logger.debug(f"Walk-forward split: {metadata}")

        return SplitIndices(
            train_indices=train_indices,
            validation_indices=validation_indices,
            metadata=metadata,
        )

    def validate_no_leakage(
        self,
        index: pd.Index,
        split: SplitIndices,
    ) -> Tuple[bool, List[str]]:
        """
        Validate that split has no temporal data leakage.

        Args:
            index: Index the split positions refer to
            split: SplitIndices to validate

        Returns:
            Tuple of (is_valid, list of issues)
        """
        issues: List[str] = []

        train_times = index[split.train_indices]
        val_times = index[split.validation_indices]

        overlap = set(split.train_indices) & set(split.validation_indices)
        if overlap:
            issues.append(f"{len(overlap)} rows appear in both training and validation")

        if len(train_times) > 0 and len(val_times) > 0:
            if train_times.max() >= val_times.min():
                issues.append(
                    f"Training data ({train_times.max()}) overlaps with "
                    f"validation data ({val_times.min()})"
                )

        return len(issues) == 0, issues
