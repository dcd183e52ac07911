"""
Serialization utilities for the forecasting pipeline.
Handles the forecast CSV artifact and JSON reports.
"""

import json
import logging
from pathlib import Path
from typing import Any, Union
from datetime import datetime
import pandas as pd
import numpy as np

from aqforecast.data.structs import ForecastResult

logger = logging.getLogger(__name__)

FORECAST_COLUMNS = ["timestamp", "point", "upper", "lower"]


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime, numpy and pandas types."""
    def default(self, obj):
        if isinstance(obj, (datetime, pd.Timestamp)):
            return obj.isoformat()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, pd.DataFrame):
            return obj.reset_index().to_dict(orient="records")
        if isinstance(obj, pd.Series):
            return obj.to_dict()
        return super().default(obj)


def save_json(data: Any, path: Union[str, Path], **kwargs) -> None:
    """Save data to JSON with datetime support."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(data, f, cls=DateTimeEncoder, indent=2, **kwargs)
    logger.debug(f"Saved JSON to {path}")


def load_json(path: Union[str, Path]) -> Any:
    """Load data from JSON."""
    with open(path, 'r') as f:
        return json.load(f)


def save_forecast_csv(result: ForecastResult, path: Union[str, Path]) -> Path:
    """
    Write a forecast as CSV: one chronological row per step with columns
    timestamp, point, upper, lower.

    Args:
        result: Forecast to persist
        path: Destination file

    Returns:
        The written path
    """
    frame = result.to_frame()[FORECAST_COLUMNS]
    if not pd.Index(frame["timestamp"]).is_monotonic_increasing:
        raise ValueError("Forecast timestamps must be in chronological order")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index=False)
    logger.info(f"Saved {len(frame)}-step forecast to {path}")
    return path


def load_forecast_csv(path: Union[str, Path]) -> pd.DataFrame:
    """Load a forecast CSV written by save_forecast_csv."""
    frame = pd.read_csv(path, parse_dates=["timestamp"])
    missing = [c for c in FORECAST_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"Forecast file {path} is missing columns {missing}")
    return frame[FORECAST_COLUMNS]
