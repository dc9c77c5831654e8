"""Read access to a tenant's stored tax configuration.

``ConfigStore`` is what the resolver depends on. ``SqlConfigStore`` answers
it from PostgreSQL and translates driver and connection failures into
``StoreUnavailableError`` so the resolver can degrade instead of failing.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Protocol

from loguru import logger
from sqlalchemy import Select, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cellgate.cells.tax_and_fee.models import (
    FeeStructureTier,
    ItemTypeTaxAdjustment,
    RegionTaxMultiplier,
)
from cellgate.core.exceptions import StoreUnavailableError
from cellgate.infrastructure.database.session import session_scope


class ConfigTable(StrEnum):
    """Keyed multiplier tables the resolver reads."""

    TAX_REGION_MULTIPLIERS = "tax_region_multipliers"
    ITEM_TYPE_TAX_ADJUSTMENTS = "item_type_tax_adjustments"

    def normalize_key(self, key: str) -> str:
        """Region codes are stored upper-case, item type codes lower-case."""
        key = key.strip()
        if self is ConfigTable.TAX_REGION_MULTIPLIERS:
            return key.upper()
        return key.lower()


type ConfigRow = RegionTaxMultiplier | ItemTypeTaxAdjustment

# Model, key attribute and value attribute for each table
_TABLE_COLUMNS: dict[ConfigTable, tuple[type[ConfigRow], str, str]] = {
    ConfigTable.TAX_REGION_MULTIPLIERS: (
        RegionTaxMultiplier,
        "region_code",
        "tax_multiplier",
    ),
    ConfigTable.ITEM_TYPE_TAX_ADJUSTMENTS: (
        ItemTypeTaxAdjustment,
        "item_type_code",
        "tax_adjustment_multiplier",
    ),
}


@dataclass(frozen=True, slots=True)
class ConfigEntry:
    """A stored multiplier row, detached from its session."""

    key: str
    value: Decimal
    description: str | None = None
    is_default: bool = False


@dataclass(frozen=True, slots=True)
class FeeTier:
    """A fee band; ``max_amount`` None means unbounded."""

    min_amount: Decimal
    max_amount: Decimal | None
    fee_amount: Decimal
    fee_percentage: Decimal | None = None

    def contains(self, amount: Decimal) -> bool:
        return self.min_amount <= amount and (
            self.max_amount is None or amount < self.max_amount
        )


class ConfigStore(Protocol):
    """Tenant-scoped lookups of active configuration rows."""

    async def find_entry(
        self, tenant_id: str, table: ConfigTable, key: str
    ) -> ConfigEntry | None:
        """Active row for ``key``, or None."""
        ...

    async def find_default(self, tenant_id: str, table: ConfigTable) -> ConfigEntry | None:
        """The tenant's active default row, or None."""
        ...

    async def list_fee_tiers(self, tenant_id: str) -> list[FeeTier]:
        """Active fee tiers ordered by ascending lower bound."""
        ...

    async def ping(self) -> None:
        """Raise ``StoreUnavailableError`` if the store cannot answer."""
        ...


class SqlConfigStore:
    """``ConfigStore`` backed by the tenant configuration tables.

    Args:
        session_factory: Factory from the cell context.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_entry(
        self, tenant_id: str, table: ConfigTable, key: str
    ) -> ConfigEntry | None:
        model, key_attr, _ = _TABLE_COLUMNS[table]
        stmt = select(model).where(
            model.tenant_id == tenant_id,
            getattr(model, key_attr) == key,
            model.is_active.is_(True),
        )
        return await self._first_entry(table, stmt)

    async def find_default(self, tenant_id: str, table: ConfigTable) -> ConfigEntry | None:
        model = _TABLE_COLUMNS[table][0]
        stmt = (
            select(model)
            .where(
                model.tenant_id == tenant_id,
                model.is_default.is_(True),
                model.is_active.is_(True),
            )
            .order_by(model.id)
            .limit(1)
        )
        return await self._first_entry(table, stmt)

    async def list_fee_tiers(self, tenant_id: str) -> list[FeeTier]:
        stmt = (
            select(FeeStructureTier)
            .where(
                FeeStructureTier.tenant_id == tenant_id,
                FeeStructureTier.is_active.is_(True),
            )
            .order_by(FeeStructureTier.min_amount, FeeStructureTier.tier_order)
        )
        try:
            async with session_scope(self._session_factory) as session:
                rows = (await session.execute(stmt)).scalars().all()
        except (SQLAlchemyError, OSError) as e:
            raise _unavailable("fee_structure_tiers", e) from e

        return [
            FeeTier(
                min_amount=row.min_amount,
                max_amount=row.max_amount,
                fee_amount=row.fee_amount,
                fee_percentage=row.fee_percentage,
            )
            for row in rows
        ]

    async def ping(self) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise _unavailable("ping", e) from e

    async def _first_entry(
        self, table: ConfigTable, stmt: Select[tuple[ConfigRow]]
    ) -> ConfigEntry | None:
        try:
            async with session_scope(self._session_factory) as session:
                row = (await session.execute(stmt)).scalars().first()
        except (SQLAlchemyError, OSError) as e:
            raise _unavailable(table.value, e) from e

        if row is None:
            return None
        _, key_attr, value_attr = _TABLE_COLUMNS[table]
        return ConfigEntry(
            key=getattr(row, key_attr),
            value=getattr(row, value_attr),
            description=row.description,
            is_default=row.is_default,
        )


def _unavailable(operation: str, error: Exception) -> StoreUnavailableError:
    logger.warning(
        "Configuration store unavailable during {}: {}",
        operation,
        type(error).__name__,
    )
    return StoreUnavailableError(
        "Configuration store is unavailable",
        context={"operation": operation},
        cause=error,
    )
