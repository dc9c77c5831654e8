"""Permission grant lookups for the identity cell."""

from typing import Protocol

from loguru import logger
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cellgate.cells.auth.models import UserPermissionGrant
from cellgate.core.exceptions import StoreUnavailableError
from cellgate.infrastructure.database.session import session_scope


def grant_covers(grant: str, permission: str) -> bool:
    """Whether ``grant`` includes ``permission``.

    Examples:
        >>> grant_covers("b2b.*", "b2b.groups.create")
        True
        >>> grant_covers("b2b.groups.view", "b2b.groups.create")
        False
    """
    if grant in ("*", permission):
        return True
    return grant.endswith(".*") and permission.startswith(grant[:-1])


class PermissionStore(Protocol):
    async def list_permissions(self, tenant_id: str, user_id: str) -> list[str]:
        """Permissions granted to ``user_id`` in ``tenant_id``."""
        ...

    async def ping(self) -> None:
        """Raise ``StoreUnavailableError`` if grants cannot be read."""
        ...


class SqlPermissionStore:
    """``PermissionStore`` over the ``user_permission_grants`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_permissions(self, tenant_id: str, user_id: str) -> list[str]:
        stmt = (
            select(UserPermissionGrant.permission)
            .where(
                UserPermissionGrant.tenant_id == tenant_id,
                UserPermissionGrant.user_id == user_id,
            )
            .order_by(UserPermissionGrant.permission)
        )
        try:
            async with session_scope(self._session_factory) as session:
                return list((await session.execute(stmt)).scalars().all())
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Permission grants unavailable: {}", type(e).__name__)
            raise StoreUnavailableError(
                "Permission store is unavailable", context={"tenant_id": tenant_id}, cause=e
            ) from e

    async def ping(self) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError("Permission store is unavailable", cause=e) from e
