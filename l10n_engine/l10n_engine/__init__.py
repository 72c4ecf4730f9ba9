"""Localization commit import and readiness tracking."""

__version__ = "0.1.0"
