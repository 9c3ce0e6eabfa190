"""Topological clustering, forecasting and Fréchet comparison for one stock series."""

__version__ = "0.1.0"
