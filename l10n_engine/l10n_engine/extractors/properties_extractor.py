"""Extractor for Java ``.properties`` resource bundles.

``messages.properties`` holds the base locale; ``messages_fr.properties``
holds French.  Supports ``=``, ``:`` and whitespace separators, ``#``/``!``
comments, backslash line continuations and ``\\uXXXX`` escapes.
"""

from __future__ import annotations

import re
from posixpath import basename

from l10n_engine.extractors.base import BaseExtractor, ExtractedString

_SEPARATOR_RE = re.compile(r"(?<!\\)(?:\s*[=:]\s*|\s+)")
_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_LOCALE_SUFFIX_RE = re.compile(r"_([a-z]{2,3}(?:_[A-Z]{2}|_\d{3})?)$")


def _unescape(value: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(value):
        char = value[i]
        if char != "\\" or i + 1 == len(value):
            out.append(char)
            i += 1
            continue
        nxt = value[i + 1]
        if nxt == "u" and i + 6 <= len(value):
            try:
                out.append(chr(int(value[i + 2 : i + 6], 16)))
                i += 6
                continue
            except ValueError:
                pass
        out.append(_ESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def _logical_lines(text: str) -> list[str]:
    """Join backslash-continued physical lines."""
    lines: list[str] = []
    pending = ""
    for raw in text.splitlines():
        line = raw.lstrip() if pending else raw
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending += line[:-1]
            continue
        lines.append(pending + line)
        pending = ""
    if pending:
        lines.append(pending)
    return lines


class PropertiesExtractor(BaseExtractor):
    ident = "properties"
    file_patterns = ("*.properties",)

    def for_locale(self, path: str, locale: str, base_locale: str) -> bool:
        stem = basename(path).rsplit(".", 1)[0]
        match = _LOCALE_SUFFIX_RE.search(stem)
        file_locale = match.group(1).replace("_", "-") if match else None
        wanted = locale.replace("_", "-").lower()
        if file_locale is None:
            # unsuffixed bundle holds the project's base locale
            return wanted == base_locale.replace("_", "-").lower()
        return file_locale.lower() == wanted

    def parse(self, text: str, locale: str) -> list[ExtractedString]:
        found: dict[str, str] = {}
        for line in _logical_lines(text):
            stripped = line.strip()
            if not stripped or stripped[0] in "#!":
                continue
            parts = _SEPARATOR_RE.split(stripped, maxsplit=1)
            key = _unescape(parts[0])
            value = _unescape(parts[1]) if len(parts) > 1 else ""
            found[key] = value
        return [ExtractedString(key=k, source_copy=v) for k, v in sorted(found.items())]
