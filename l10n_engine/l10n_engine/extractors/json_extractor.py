"""Extractor for JSON locale files named after their locale (``en.json``).

Nested objects are flattened into dotted keys.  A document whose only
top-level key is the locale itself is unwrapped first.
"""

from __future__ import annotations

import json
from posixpath import basename

from l10n_engine.extractors.base import BaseExtractor, ExtractedString, ExtractionError
from l10n_engine.extractors.yaml_extractor import flatten_strings


class JSONExtractor(BaseExtractor):
    ident = "json"
    file_patterns = ("*.json",)

    def for_locale(self, path: str, locale: str, base_locale: str) -> bool:
        return basename(path) == f"{locale}.json"

    def parse(self, text: str, locale: str) -> list[ExtractedString]:
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ExtractionError(f"invalid JSON: {exc}") from exc
        if not isinstance(document, dict):
            return []
        if list(document) == [locale] and isinstance(document[locale], dict):
            document = document[locale]
        return flatten_strings(document)
