"""Unified task list aggregated from several task backends."""

__version__ = "1.0.0"
