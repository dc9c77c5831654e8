"""Async engine and session lifecycle.

The engine and session factory are built once by the application lifespan
and carried in the ``CellContext``; nothing here keeps module-level state.
Cells open a unit of work with ``session_scope(factory)``, which commits on
success and rolls back on any exception.

When SQL logging is enabled, cursor event listeners time each statement and
warn about slow queries with sanitized parameters.
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from weakref import WeakKeyDictionary

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.engine.interfaces import DBAPICursor, ExecutionContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cellgate.core.config import Settings, get_settings
from cellgate.core.constants import MILLISECONDS_PER_SECOND
from cellgate.core.context import RequestContext
from cellgate.core.error_context import sanitize_sql_params

POOL_RECYCLE_SECONDS = 3600
COMMAND_TIMEOUT_SECONDS = 60
MAX_LOGGED_STATEMENT_LENGTH = 500

_query_start_times: WeakKeyDictionary[ExecutionContext, float] = WeakKeyDictionary()


def _before_cursor_execute(
    _conn: Connection,
    _cursor: DBAPICursor,
    _statement: str,
    _parameters: dict[str, Any] | list[Any] | tuple[Any, ...] | None,
    context: ExecutionContext,
    _executemany: bool,
) -> None:
    _query_start_times[context] = time.perf_counter()


def _after_cursor_execute(
    _conn: Connection,
    cursor: DBAPICursor,
    statement: str,
    parameters: dict[str, Any] | list[Any] | tuple[Any, ...] | None,
    context: ExecutionContext,
    executemany: bool,
) -> None:
    """Warn about statements slower than the configured threshold."""
    start_time = _query_start_times.pop(context, None)
    if start_time is None:
        return

    duration_ms = (time.perf_counter() - start_time) * MILLISECONDS_PER_SECOND
    threshold_ms = get_settings().log_config.slow_query_threshold_ms
    if duration_ms < threshold_ms:
        return

    clean_statement = " ".join(statement.split())[:MAX_LOGGED_STATEMENT_LENGTH]
    logger.warning(
        "Slow query detected: {}... Duration: {:.2f}ms",
        clean_statement[:100],
        duration_ms,
        query=clean_statement,
        duration_ms=round(duration_ms, 2),
        rows_affected=getattr(cursor, "rowcount", -1),
        parameters=sanitize_sql_params(parameters),
        correlation_id=RequestContext.get_correlation_id(),
        executemany=executemany,
        threshold_ms=threshold_ms,
    )


def create_database_engine(settings: Settings) -> AsyncEngine:
    """Create an async engine with pooling configured from settings.

    Args:
        settings: Application settings.

    Returns:
        AsyncEngine: Configured async engine instance.
    """
    db_config = settings.database_config

    engine = create_async_engine(
        db_config.database_url,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_pre_ping=db_config.pool_pre_ping,
        echo=db_config.echo,
        pool_recycle=POOL_RECYCLE_SECONDS,
        connect_args={
            "server_settings": {"jit": "off"},
            "command_timeout": COMMAND_TIMEOUT_SECONDS,
        },
    )

    if settings.log_config.enable_sql_logging:
        event.listen(engine.sync_engine, "before_cursor_execute", _before_cursor_execute)
        event.listen(engine.sync_engine, "after_cursor_execute", _after_cursor_execute)
        logger.info("Registered slow query event listeners")

    logger.info(
        "Created database engine - pool_size: {}, max_overflow: {}, sql_logging: {}",
        db_config.pool_size,
        db_config.max_overflow,
        settings.log_config.enable_sql_logging,
    )

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to ``engine``."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Open a session that commits on success and rolls back on error.

    Args:
        session_factory: Factory taken from the cell context.

    Yields:
        AsyncGenerator[AsyncSession]: Session for the unit of work.

    Example:
        async with session_scope(context.session_factory) as session:
            group = await GroupRepository(session).get_by_id(tenant_id, group_id)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            logger.debug("Database session rolled back due to error")
            raise


async def check_database_connection(engine: AsyncEngine) -> tuple[bool, str | None]:
    """Check that the database answers a trivial query.

    Returns:
        tuple[bool, str | None]: Health flag and the error message on failure.
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        return False, str(e)
    return True, None
