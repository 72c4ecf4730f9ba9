"""Exporters render a commit's approved translations into a manifest file."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod

import yaml

# ``{locale: {key: copy}}``
Manifest = dict[str, dict[str, str]]


class BaseExporter(ABC):
    """Abstract base class for manifest formats."""

    ident: str = ""
    file_extension: str = ""

    @abstractmethod
    def render(self, manifest: Manifest) -> str:
        """Return the manifest serialized in this format."""


class JSONExporter(BaseExporter):
    ident = "json"
    file_extension = "json"

    def render(self, manifest: Manifest) -> str:
        return json.dumps(manifest, sort_keys=True, ensure_ascii=False, indent=2) + "\n"


class YAMLExporter(BaseExporter):
    ident = "yaml"
    file_extension = "yml"

    def render(self, manifest: Manifest) -> str:
        return yaml.safe_dump(manifest, allow_unicode=True, sort_keys=True, default_flow_style=False)


def default_exporters() -> dict[str, BaseExporter]:
    """Return the built-in exporters keyed by ident."""
    exporters: list[BaseExporter] = [JSONExporter(), YAMLExporter()]
    return {exporter.ident: exporter for exporter in exporters}
