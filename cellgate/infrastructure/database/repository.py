"""Generic async repository for tenant-scoped models.

Every business row in the gateway belongs to a tenant, so lookups by ID
always carry the tenant as well; a row from another tenant is reported as
absent rather than returned.
"""

from collections.abc import Mapping

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cellgate.infrastructure.database.base import TenantScopedModel

DEFAULT_PAGINATION_LIMIT = 100


class BaseRepository[T: TenantScopedModel]:
    """Common CRUD operations restricted to one tenant's rows.

    Args:
        session: The async SQLAlchemy session to use for operations.
        model_class: The SQLAlchemy model class this repository manages.

    Example:
        class FeeTierRepository(BaseRepository[FeeStructureTier]):
            def __init__(self, session: AsyncSession) -> None:
                super().__init__(session, FeeStructureTier)
    """

    def __init__(self, session: AsyncSession, model_class: type[T]) -> None:
        self.session = session
        self.model_class = model_class

    async def get_by_id(self, tenant_id: str, entity_id: int) -> T | None:
        """Retrieve a tenant's row by its ID.

        Args:
            tenant_id: Tenant that must own the row.
            entity_id: The primary key ID of the row.

        Returns:
            T | None: The row if found for this tenant, None otherwise.
        """
        logger.debug(
            "Fetching {} by ID: {} for tenant {}",
            self.model_class.__name__,
            entity_id,
            tenant_id,
        )

        stmt = select(self.model_class).where(
            self.model_class.id == entity_id,
            self.model_class.tenant_id == tenant_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, obj: T) -> T:
        """Insert a row and refresh server-generated values.

        Args:
            obj: The model instance to create.

        Returns:
            T: The created row with populated ID and timestamps.
        """
        self.session.add(obj)
        await self.session.flush()
        await self.session.refresh(obj)

        logger.info(
            "Created {} instance with ID: {}", self.model_class.__name__, obj.id
        )

        return obj

    async def update(self, obj: T, data: Mapping[str, object]) -> T:
        """Apply a partial update to a row already loaded in this session.

        Args:
            obj: Row to update.
            data: Column values keyed by attribute name.

        Returns:
            T: The refreshed row.
        """
        for key, value in data.items():
            if hasattr(obj, key):
                setattr(obj, key, value)
            else:
                logger.warning(
                    "Attempted to update non-existent field '{}' on {}",
                    key,
                    self.model_class.__name__,
                )

        await self.session.flush()
        await self.session.refresh(obj)

        logger.info(
            "Updated {} instance ID {} - fields: {}",
            self.model_class.__name__,
            obj.id,
            list(data.keys()),
        )

        return obj

    async def find_one_by(self, tenant_id: str, **kwargs: object) -> T | None:
        """Return the first of a tenant's rows matching the given values."""
        stmt = select(self.model_class).where(self.model_class.tenant_id == tenant_id)
        for field, value in kwargs.items():
            stmt = stmt.where(getattr(self.model_class, field) == value)
        stmt = stmt.order_by(self.model_class.id).limit(1)

        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
