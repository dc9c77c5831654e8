"""Process-wide resources handed explicitly to every cell."""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from cellgate.core.config import Settings
from cellgate.gateway.router import CellRouter
from cellgate.infrastructure.cache import CacheStore, MemoryCacheStore
from cellgate.infrastructure.database.session import (
    create_database_engine,
    create_session_factory,
)


@dataclass(slots=True)
class CellContext:
    """Resources owned by the application lifespan.

    Cells receive this at construction instead of reaching for module
    globals. ``engine`` is None when the session factory was supplied from
    outside, as tests do.
    """

    settings: Settings
    router: CellRouter
    cache: CacheStore
    session_factory: async_sessionmaker[AsyncSession]
    engine: AsyncEngine | None = None

    async def close(self) -> None:
        """Dispose of the engine if this context created one."""
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database engine disposed")


def build_cell_context(
    settings: Settings,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    cache: CacheStore | None = None,
) -> CellContext:
    """Create the router, cache and database resources for one process.

    Args:
        settings: Application settings.
        session_factory: Use this factory instead of creating an engine.
        cache: Use this cache instead of a fresh in-memory one.

    Returns:
        CellContext: A context with an empty router; cells register later.
    """
    engine: AsyncEngine | None = None
    if session_factory is None:
        engine = create_database_engine(settings)
        session_factory = create_session_factory(engine)

    return CellContext(
        settings=settings,
        router=CellRouter(default_channel=settings.gateway_config.default_channel),
        cache=cache or MemoryCacheStore(max_entries=settings.cache_config.max_entries),
        session_factory=session_factory,
        engine=engine,
    )
