"""Unit tests for manifest exporters and the manifest cache."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from l10n_engine.exporters import JSONExporter, ManifestCache, YAMLExporter, default_exporters

MANIFEST = {"fr": {"greeting": "Bonjour", "farewell": "Au revoir"}, "en": {"greeting": "Hello"}}


class TestExporters:
    def test_json_is_sorted_and_unescaped(self):
        rendered = JSONExporter().render({"fr": {"b": "é", "a": "à"}})
        assert rendered.index('"a"') < rendered.index('"b"')
        assert "é" in rendered
        assert json.loads(rendered) == {"fr": {"a": "à", "b": "é"}}

    def test_yaml_round_trips(self):
        assert yaml.safe_load(YAMLExporter().render(MANIFEST)) == MANIFEST

    def test_default_exporters(self):
        exporters = default_exporters()
        assert sorted(exporters) == ["json", "yaml"]
        assert exporters["yaml"].file_extension == "yml"


class TestManifestCache:
    @pytest.fixture
    def cache(self, tmp_path: Path) -> ManifestCache:
        return ManifestCache(tmp_path)

    def test_path_is_deterministic(self, cache: ManifestCache, tmp_path: Path):
        assert cache.path(7, JSONExporter()) == tmp_path / "manifests" / "7" / "manifest.json.json"
        assert cache.path(7, YAMLExporter()).name == "manifest.yaml.yml"

    def test_write_then_read(self, cache: ManifestCache):
        path = cache.write(7, JSONExporter(), "{}\n")
        assert path.exists()
        assert cache.read(7, JSONExporter()) == "{}\n"
        assert cache.read(7, YAMLExporter()) is None

    def test_write_leaves_no_temp_files(self, cache: ManifestCache):
        path = cache.write(7, JSONExporter(), "one")
        cache.write(7, JSONExporter(), "two")
        assert [p.name for p in path.parent.iterdir()] == [path.name]
        assert cache.read(7, JSONExporter()) == "two"

    def test_clear_counts_existing_files(self, cache: ManifestCache):
        exporters = list(default_exporters().values())
        cache.write(7, exporters[0], "x")
        cache.write(8, exporters[0], "y")

        assert cache.clear(7, exporters) == 1
        assert cache.clear(7, exporters) == 0
        assert cache.read(8, exporters[0]) == "y"
