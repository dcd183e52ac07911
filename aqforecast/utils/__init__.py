"""Configuration, logging, error handling and serialization utilities."""

from aqforecast.utils.config_manager import ConfigManager, load_pipeline_config
from aqforecast.utils.logging_config import setup_logging, setup_logging_from_config

__all__ = ["ConfigManager", "load_pipeline_config", "setup_logging", "setup_logging_from_config"]
