"""Extractor registry for discovering and managing extractor implementations.

Provides a central registry where extractors are registered and looked up
by their ``ident``.
"""

from __future__ import annotations

import logging

from l10n_engine.extractors.base import BaseExtractor

logger = logging.getLogger(__name__)


class ExtractorRegistry:
    """Registry for extractor implementations.

    The dispatcher iterates :meth:`get_all` for every blob; callers must not
    rely on the iteration order.
    """

    def __init__(self) -> None:
        self._extractors: dict[str, BaseExtractor] = {}

    def register(self, extractor: BaseExtractor) -> None:
        """Register an extractor implementation.

        Raises
        ------
        ValueError
            If the extractor has no ident or one with the same ident is
            already registered.
        """
        if not extractor.ident:
            raise ValueError(f"{type(extractor).__name__} does not declare an ident.")
        if extractor.ident in self._extractors:
            raise ValueError(
                f"Extractor {extractor.ident} is already registered. "
                f"Unregister the existing extractor first."
            )
        self._extractors[extractor.ident] = extractor
        logger.debug("Registered extractor: %s", extractor.ident)

    def unregister(self, ident: str) -> None:
        """Remove an extractor from the registry.

        Raises
        ------
        KeyError
            If the ident is not registered.
        """
        if ident not in self._extractors:
            raise KeyError(f"Extractor {ident} is not registered.")
        del self._extractors[ident]
        logger.debug("Unregistered extractor: %s", ident)

    def get(self, ident: str) -> BaseExtractor | None:
        """Look up an extractor by ident, or ``None`` if unknown."""
        return self._extractors.get(ident)

    def get_all(self, exclude: list[str] | None = None) -> list[BaseExtractor]:
        """Return registered extractors, minus the idents in *exclude*."""
        skipped = set(exclude or ())
        return [ext for ident, ext in sorted(self._extractors.items()) if ident not in skipped]

    def get_idents(self) -> list[str]:
        """Return all registered idents, sorted."""
        return sorted(self._extractors)

    def __len__(self) -> int:
        return len(self._extractors)

    def __contains__(self, ident: str) -> bool:
        return ident in self._extractors


def default_registry() -> ExtractorRegistry:
    """Return a registry holding every built-in extractor."""
    from l10n_engine.extractors.json_extractor import JSONExtractor
    from l10n_engine.extractors.properties_extractor import PropertiesExtractor
    from l10n_engine.extractors.yaml_extractor import YAMLExtractor

    registry = ExtractorRegistry()
    registry.register(YAMLExtractor())
    registry.register(JSONExtractor())
    registry.register(PropertiesExtractor())
    return registry
