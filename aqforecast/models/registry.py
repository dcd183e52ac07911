"""Builds the enabled base forecasters from the pipeline configuration."""

from typing import Any, Dict, List, Optional, Type
import logging

from aqforecast.models.base_model import BaseForecaster
from aqforecast.models.harmonic import HarmonicRegressionForecaster
from aqforecast.models.mstl_model import MSTLForecaster
from aqforecast.models.nnar import NNARForecaster
from aqforecast.models.sarima import SarimaForecaster
from aqforecast.models.var_model import VARForecaster
from aqforecast.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def _lstm_class() -> Type[BaseForecaster]:
    # Deferred so that keras is only imported when the LSTM is enabled
    from aqforecast.models.lstm_model import LSTMForecaster
    return LSTMForecaster


FORECASTERS: Dict[str, Any] = {
    "sarima": SarimaForecaster,
    "harmonic": HarmonicRegressionForecaster,
    "mstl": MSTLForecaster,
    "var": VARForecaster,
    "nnar": NNARForecaster,
    "lstm": _lstm_class,
}


def forecaster_class(name: str) -> Type[BaseForecaster]:
    """Resolve a forecaster name to its class."""
    if name not in FORECASTERS:
        raise ValueError(f"Unknown forecaster '{name}'. Available: {sorted(FORECASTERS)}")
    entry = FORECASTERS[name]
    return entry() if entry is _lstm_class else entry


def build_forecasters(
    config: Dict[str, Any],
    cancellation: Optional[CancellationToken] = None,
) -> List[BaseForecaster]:
    """
    Instantiate every forecaster listed in `models.enabled`.

    Args:
        config: Full pipeline configuration
        cancellation: Token handed to forecasters that train iteratively

    Returns:
        Forecasters in the configured order
    """
    models_config = config.get("models", {})
    enabled = models_config.get("enabled", list(FORECASTERS))
    if len(set(enabled)) != len(enabled):
        raise ValueError(f"Duplicate forecaster names in models.enabled: {enabled}")

    random_state = config.get("random_state", 42)
    forecasters = []
    for name in enabled:
        cls = forecaster_class(name)
        kwargs = {
            "name": name,
            "hyperparameters": models_config.get(name, {}),
            "random_state": random_state,
        }
        if name == "lstm":
            kwargs["cancellation"] = cancellation
        forecasters.append(cls(**kwargs))

    logger.info(f"Built {len(forecasters)} base forecasters: {enabled}")
    return forecasters
