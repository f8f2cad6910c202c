"""Republish Ghost content as static sites rebuilt on per-site schedules."""

__version__ = "0.1.0"

__all__ = ["__version__"]
