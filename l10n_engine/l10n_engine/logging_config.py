"""Logging setup for the engine and its CLI.

Two output modes are supported:

* plain text (default) -- ``timestamp level logger: message`` lines.
* structured -- each record rendered as a single-line JSON object by
  :class:`JSONFormatter`, enabled with ``L10N_STRUCTURED_LOGGING=true``.

Output schema per line in structured mode::

    {
        "timestamp": "2025-05-15T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "l10n_engine.importing.worker_registry",
        "message": "commit abc123 finished loading",
        "revision": "abc123...",    // present when passed via ``extra``
        "job_id": "...",            // present when passed via ``extra``
        "exc_info": "Traceback ..."  // present only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from l10n_engine.config import Settings

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Attributes copied from ``extra={...}`` into the JSON payload.
_CONTEXT_FIELDS = ("revision", "job_id", "project_id", "importer", "path")


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Render *record* as a single JSON line."""
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(settings: Settings) -> None:
    """Install a single stream handler on the ``l10n_engine`` logger tree.

    Calling this more than once replaces the previously installed handler,
    so tests and the CLI can reconfigure freely.
    """
    root = logging.getLogger("l10n_engine")
    for handler in list(root.handlers):
        if getattr(handler, "_l10n_managed", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    if settings.structured_logging:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    handler._l10n_managed = True  # type: ignore[attr-defined]

    root.addHandler(handler)
    root.setLevel(settings.log_level)
