"""Connection session for one backup run.

Provides ``MySQLSession``, a small pooled query interface built on
SQLAlchemy's async engine with the ``aiomysql`` driver, plus
``open_session()``, the scoped acquisition used by the orchestrator.  The
pool belongs to exactly one run and is disposed when the run ends, on
success or failure.

Usage:
    from db_backup.session import open_session

    async with open_session(request, settings) as session:
        await session.verify()
        rows = await session.query(
            "SELECT TABLE_NAME FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = :schema",
            {"schema": "shop"},
        )
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from db_backup.config.models import BackupSettings
from db_backup.errors import BackupConnectionError, QueryError
from db_backup.escaping import Row
from db_backup.models import BackupRequest

logger = logging.getLogger(__name__)

DRIVER = "mysql+aiomysql"


class Session(Protocol):
    """Query interface the exporters depend on.

    All methods are async -- callers must ``await`` every operation.
    """

    async def verify(self) -> None:
        """Round-trip a trivial query.

        Raises:
            BackupConnectionError: On timeout, auth failure or unreachable host.
        """
        ...

    async def query(self, sql: str, params: dict[str, Any] | None = None) -> list[Row]:
        """Run a statement and return its rows as ``(column, value)`` pairs.

        Raises:
            QueryError: If the statement fails.
        """
        ...

    async def close(self) -> None:
        """Release all pooled connections.  Safe to call twice."""
        ...


def build_url(request: BackupRequest) -> URL:
    """Connection URL for a request; credentials are never string-spliced."""
    return URL.create(
        DRIVER,
        username=request.user,
        password=request.password or None,
        host=request.host,
        port=request.port,
        database=request.database,
        query={"charset": "utf8mb4"},
    )


def create_async_engine_pooled(url: URL, **kwargs: Any) -> AsyncEngine:
    """Create an async SQLAlchemy engine with a small fixed-size pool.

    Default pool settings:

    - ``pool_size=4``: One run never needs more.
    - ``max_overflow=0``: The pool is bounded.
    - ``pool_pre_ping=True``: Validate connections before checkout.
    - ``connect_args={"connect_timeout": 10}``: Fail fast on dead hosts.

    Args:
        url: ``mysql+aiomysql`` connection URL.
        **kwargs: Additional keyword arguments forwarded to
            ``create_async_engine``.

    Returns:
        Configured ``AsyncEngine``.
    """
    defaults: dict[str, Any] = {
        "pool_size": 4,
        "max_overflow": 0,
        "pool_pre_ping": True,
        "connect_args": {"connect_timeout": 10},
        "echo": False,
    }
    # Caller kwargs override defaults
    merged = {**defaults, **kwargs}

    return create_async_engine(url, **merged)


class MySQLSession:
    """Pooled MySQL session implementing the ``Session`` protocol.

    Args:
        engine: Engine owned by this session; disposed on ``close()``.
        database: Name of the database being dumped (used in messages).
    """

    def __init__(self, engine: AsyncEngine, database: str) -> None:
        self._engine: AsyncEngine | None = engine
        self.database = database

    @classmethod
    def create(cls, request: BackupRequest, settings: BackupSettings) -> "MySQLSession":
        """Build the pool for ``request``.

        Raises:
            BackupConnectionError: If the engine cannot be created (bad URL,
                missing driver).
        """
        try:
            engine = create_async_engine_pooled(
                build_url(request),
                pool_size=settings.pool_size,
                connect_args={"connect_timeout": settings.connect_timeout},
            )
        except (SQLAlchemyError, ImportError, ValueError) as e:
            raise BackupConnectionError(f"Could not create connection pool: {e}") from e
        logger.debug(
            "Created pool for %s@%s:%s/%s (size=%s)",
            request.user, request.host, request.port, request.database,
            settings.pool_size,
        )
        return cls(engine, request.database)

    @property
    def closed(self) -> bool:
        return self._engine is None

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise BackupConnectionError("Session is closed")
        return self._engine

    async def verify(self) -> None:
        """Run ``SELECT 1`` to confirm the server is reachable."""
        engine = self._require_engine()
        try:
            async with engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                result.scalar()
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            raise BackupConnectionError(f"Cannot connect to database: {_describe(e)}") from e

    async def query(self, sql: str, params: dict[str, Any] | None = None) -> list[Row]:
        """Execute ``sql`` and return every row as ordered column/value pairs.

        Statements without ``params`` are sent verbatim: colons are escaped
        so quoted identifiers are never parsed as bind names.
        """
        engine = self._require_engine()
        statement = text(sql) if params else text(sql.replace(":", "\\:"))
        try:
            async with engine.connect() as conn:
                result = await conn.execute(statement, params or {})
                col_names = list(result.keys())
                return [tuple(zip(col_names, row)) for row in result.fetchall()]
        except DBAPIError as e:
            if e.connection_invalidated:
                raise BackupConnectionError(f"Lost connection: {_describe(e)}") from e
            raise QueryError(f"Query failed: {_describe(e)}", sql=sql) from e
        except SQLAlchemyError as e:
            raise QueryError(f"Query failed: {_describe(e)}", sql=sql) from e
        except (OSError, asyncio.TimeoutError) as e:
            raise BackupConnectionError(f"Lost connection: {_describe(e)}") from e

    async def close(self) -> None:
        """Dispose of the pool.  Idempotent."""
        engine, self._engine = self._engine, None
        if engine is not None:
            await engine.dispose()
            logger.debug("Disposed pool for %s", self.database)


def _describe(exc: BaseException) -> str:
    """Driver message without SQLAlchemy's statement/background trailer."""
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc) or exc.__class__.__name__


@asynccontextmanager
async def open_session(
    request: BackupRequest, settings: BackupSettings
) -> AsyncIterator[MySQLSession]:
    """Scoped session: the pool is always disposed on exit."""
    session = MySQLSession.create(request, settings)
    try:
        yield session
    finally:
        await session.close()
