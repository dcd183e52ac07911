"""Base forecasters and the stacking meta-model."""

from aqforecast.models.base_model import BaseForecaster, ModelState

__all__ = ["BaseForecaster", "ModelState"]
