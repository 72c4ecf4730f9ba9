"""On-disk cache of precompiled manifests.

Paths are a pure function of ``(commit_id, exporter)`` so that any process
can invalidate a commit's cache without knowing who wrote it.

TODO: the cache lives on the local filesystem and is not shared between
hosts; point ``cache_dir`` at shared storage when running several workers.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

from l10n_engine.exporters.base import BaseExporter

logger = logging.getLogger(__name__)


class ManifestCache:
    """Reads, writes and invalidates cached manifest files."""

    def __init__(self, cache_dir: Path | str) -> None:
        self._root = Path(cache_dir)

    def path(self, commit_id: int, exporter: BaseExporter) -> Path:
        """Return the cache file for *commit_id* rendered by *exporter*."""
        return self._root / "manifests" / str(commit_id) / f"manifest.{exporter.ident}.{exporter.file_extension}"

    def clear(self, commit_id: int, exporters: Iterable[BaseExporter]) -> int:
        """Delete every cached manifest of *commit_id*; return how many existed."""
        removed = 0
        for exporter in exporters:
            try:
                self.path(commit_id, exporter).unlink()
                removed += 1
            except FileNotFoundError:
                continue
        if removed:
            logger.info("Cleared %d cached manifest(s) for commit %d", removed, commit_id)
        return removed

    def write(self, commit_id: int, exporter: BaseExporter, content: str) -> Path:
        """Atomically write *content* as the cached manifest."""
        target = self.path(commit_id, exporter)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".manifest-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("Cached %s manifest for commit %d at %s", exporter.ident, commit_id, target)
        return target

    def read(self, commit_id: int, exporter: BaseExporter) -> str | None:
        """Return the cached manifest, or ``None`` if it is absent."""
        try:
            return self.path(commit_id, exporter).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
