"""Cruise parking occupancy backend."""

__version__ = "1.0.0"
