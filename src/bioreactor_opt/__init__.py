"""Bioreactor performance prediction and operating-parameter optimization."""

__version__ = "0.1.0"

__all__ = ["__version__"]
