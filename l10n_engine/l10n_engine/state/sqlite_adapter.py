"""Local SQLite backend.

The same ORM tables back both databases.  On SQLite the commit-row lock
taken by the worker registry is a no-op; writers are serialized by the
database file lock, and within one process by the registry's per-commit
``asyncio.Lock``.  Use a file path rather than ``:memory:`` whenever more
than one session must see the same data.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA foreign_keys=ON",
    "PRAGMA busy_timeout=10000",
)


def get_local_engine(db_path: Path | str = ".l10n/state.db") -> AsyncEngine:
    """Open (or create) the SQLite database at *db_path*.

    Missing parent directories are created.  ``":memory:"`` gives a private
    in-memory database.
    """
    if str(db_path) == ":memory:":
        url = "sqlite+aiosqlite://"
    else:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite+aiosqlite:///{path}"

    engine = create_async_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn: object, _record: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        try:
            for pragma in _PRAGMAS:
                cursor.execute(pragma)
        finally:
            cursor.close()

    logger.debug("Opened SQLite state store at %s", url)
    return engine


async def create_local_tables(engine: AsyncEngine) -> None:
    """Create any missing tables.  Existing tables are left untouched."""
    from l10n_engine.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("State tables ready on %s", engine.url)
