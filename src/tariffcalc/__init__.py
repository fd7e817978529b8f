"""Electricity tariff cost calculation with cached period summaries."""

__version__ = "0.1.0"
