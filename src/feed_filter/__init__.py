"""Preference-driven feed filtering with cached oracle classification."""

__version__ = "0.1.0"
