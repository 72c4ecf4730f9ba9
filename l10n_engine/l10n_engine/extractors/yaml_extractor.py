"""Extractor for Rails-style YAML locale files.

Files are expected to have a single top-level key naming the locale::

    en:
      greeting:
        hello: "Hello"

which yields the key ``greeting.hello``.  Lists become indexed keys
(``days[0]``); non-string scalars are ignored.
"""

from __future__ import annotations

from posixpath import basename
from typing import Any

import yaml

from l10n_engine.extractors.base import BaseExtractor, ExtractedString, ExtractionError


def flatten_strings(node: Any, prefix: str = "") -> list[ExtractedString]:
    """Flatten nested mappings and lists into dotted keys."""
    found: list[ExtractedString] = []
    stack: list[tuple[str, Any]] = [(prefix, node)]
    while stack:
        path, value = stack.pop()
        if isinstance(value, dict):
            for name, child in value.items():
                stack.append((f"{path}.{name}" if path else str(name), child))
        elif isinstance(value, list):
            for index, child in enumerate(value):
                stack.append((f"{path}[{index}]", child))
        elif isinstance(value, str) and path:
            found.append(ExtractedString(key=path, source_copy=value))
    found.sort(key=lambda s: s.key)
    return found


class YAMLExtractor(BaseExtractor):
    ident = "yaml"
    file_patterns = ("*.yml", "*.yaml")

    def for_locale(self, path: str, locale: str, base_locale: str) -> bool:
        # config/locales/en.yml, config/locales/views/en.yml, fr.yml ...
        stem = basename(path).rsplit(".", 1)[0]
        return stem == locale or stem.endswith(f".{locale}") or stem.endswith(f"_{locale}")

    def parse(self, text: str, locale: str) -> list[ExtractedString]:
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ExtractionError(f"invalid YAML: {exc}") from exc
        if not isinstance(document, dict) or locale not in document:
            return []
        return flatten_strings(document[locale])
