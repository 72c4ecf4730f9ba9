"""Manifest exporters and the precompiled manifest cache."""

from l10n_engine.exporters.base import (
    BaseExporter,
    JSONExporter,
    Manifest,
    YAMLExporter,
    default_exporters,
)
from l10n_engine.exporters.cache import ManifestCache

__all__ = [
    "BaseExporter",
    "JSONExporter",
    "Manifest",
    "ManifestCache",
    "YAMLExporter",
    "default_exporters",
]
