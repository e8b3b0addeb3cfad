"""Locum staffing rate calculation and self-billing invoice engine."""

__version__ = "0.1.0"
