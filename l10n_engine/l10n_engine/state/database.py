"""Engine construction and transaction scopes for the state store.

The backend is chosen from the URL:

  - ``postgresql+asyncpg://...`` pooled engine; commit rows are locked with
    ``SELECT ... FOR UPDATE`` while their worker set changes
  - ``sqlite+aiosqlite:///path`` local file (see :mod:`.sqlite_adapter`)

Every unit of work opens its own transaction through :func:`session_scope`.
Background jobs are handed the session factory, never a live session.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)

# One factory per live engine; dropped again by dispose_engine().
_session_factories: dict[int, async_sessionmaker[AsyncSession]] = {}

# Server-side guards for PostgreSQL connections, in milliseconds.
_PG_STATEMENT_TIMEOUT_MS = 60_000
_PG_LOCK_TIMEOUT_MS = 15_000


def is_sqlite(target: AsyncEngine | str) -> bool:
    """Return True when *target* (an engine or URL) uses the SQLite backend."""
    url = target.url if isinstance(target, AsyncEngine) else make_url(target)
    return url.get_backend_name() == "sqlite"


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Build the async engine for *database_url*.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL.  SQLite URLs are delegated to
        :func:`~l10n_engine.state.sqlite_adapter.get_local_engine`; an empty
        database part means an in-memory database.
    pool_size:
        Persistent PostgreSQL connections.  Unused for SQLite.
    max_overflow:
        Extra PostgreSQL connections allowed above *pool_size*.  Unused for
        SQLite.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        from l10n_engine.state.sqlite_adapter import get_local_engine

        return get_local_engine(url.database or ":memory:")

    engine = create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        connect_args={
            "server_settings": {
                "statement_timeout": str(_PG_STATEMENT_TIMEOUT_MS),
                "lock_timeout": str(_PG_LOCK_TIMEOUT_MS),
                "application_name": "l10n_engine",
            }
        },
    )
    logger.info(
        "Connected to %s (pool_size=%d, max_overflow=%d)",
        url.render_as_string(hide_password=True),
        pool_size,
        max_overflow,
    )
    return engine


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return the session factory for *engine*, creating it on first use.

    Sessions keep attribute values after commit so rows loaded in one step
    can still be read once the transaction has closed.
    """
    factory = _session_factories.get(id(engine))
    if factory is None:
        factory = _session_factories[id(engine)] = async_sessionmaker(engine, expire_on_commit=False)
    return factory


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Run one transaction: commit when the block exits cleanly, otherwise
    roll back and re-raise."""
    async with factory() as session:
        try:
            yield session
        except BaseException:
            await session.rollback()
            raise
        await session.commit()


async def dispose_engine(engine: AsyncEngine) -> None:
    """Close every pooled connection of *engine* and drop its factory."""
    _session_factories.pop(id(engine), None)
    await engine.dispose()
