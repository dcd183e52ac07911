"""Stacked multi-model forecaster for hourly air-quality series."""

__version__ = "0.1.0"
