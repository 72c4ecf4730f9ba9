"""Unit tests for the JSON formatter and logging setup."""

from __future__ import annotations

import json
import logging
import sys

import pytest
from l10n_engine.config import Settings
from l10n_engine.logging_config import JSONFormatter, configure_logging


def _record(msg: str = "commit %s finished loading", *args: object, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="l10n_engine.importing.worker_registry",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args or ("abc123",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_core_fields(self):
        payload = json.loads(JSONFormatter().format(_record()))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "l10n_engine.importing.worker_registry"
        assert payload["message"] == "commit abc123 finished loading"
        assert payload["timestamp"].endswith("+00:00")

    def test_context_fields_from_extra(self):
        payload = json.loads(JSONFormatter().format(_record(revision="abc123", job_id="j1")))
        assert payload["revision"] == "abc123"
        assert payload["job_id"] == "j1"
        assert "project_id" not in payload

    def test_exception_is_included(self):
        try:
            raise RuntimeError("kaput")
        except RuntimeError:
            record = logging.LogRecord(
                name="l10n_engine",
                level=logging.ERROR,
                pathname=__file__,
                lineno=1,
                msg="failed",
                args=(),
                exc_info=sys.exc_info(),
            )
        payload = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: kaput" in payload["exc_info"]


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def _restore(self):
        root = logging.getLogger("l10n_engine")
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_installs_single_handler(self):
        configure_logging(Settings(log_level="DEBUG"))
        configure_logging(Settings(log_level="WARNING"))

        root = logging.getLogger("l10n_engine")
        managed = [h for h in root.handlers if getattr(h, "_l10n_managed", False)]
        assert len(managed) == 1
        assert root.level == logging.WARNING

    def test_structured_mode_uses_json(self):
        configure_logging(Settings(structured_logging=True))
        root = logging.getLogger("l10n_engine")
        managed = [h for h in root.handlers if getattr(h, "_l10n_managed", False)]
        assert isinstance(managed[0].formatter, JSONFormatter)
