"""String extractors and their registry."""

from l10n_engine.extractors.base import (
    BaseExtractor,
    ExtractedString,
    ExtractionContext,
    ExtractionError,
)
from l10n_engine.extractors.registry import ExtractorRegistry, default_registry

__all__ = [
    "BaseExtractor",
    "ExtractedString",
    "ExtractionContext",
    "ExtractionError",
    "ExtractorRegistry",
    "default_registry",
]
