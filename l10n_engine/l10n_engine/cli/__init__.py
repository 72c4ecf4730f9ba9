"""Command-line interface for the l10n engine."""

from l10n_engine.cli.app import app

__all__ = ["app"]
