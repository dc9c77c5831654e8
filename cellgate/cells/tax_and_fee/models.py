"""Tenant tax configuration tables.

Each tenant may hold at most one active default row per multiplier table;
the partial unique indexes enforce that in PostgreSQL.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, Integer, Numeric, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from cellgate.infrastructure.database.base import TenantScopedModel


class RegionTaxMultiplier(TenantScopedModel):
    """Per-region multiplier applied to the base tax."""

    __tablename__ = "tax_region_multipliers"
    __table_args__ = (
        UniqueConstraint("tenant_id", "region_code"),
        Index(
            "uq_tax_region_multipliers_one_default",
            "tenant_id",
            unique=True,
            postgresql_where=text("is_default AND is_active"),
        ),
    )

    region_code: Mapped[str] = mapped_column(String(32), nullable=False)
    tax_multiplier: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class ItemTypeTaxAdjustment(TenantScopedModel):
    """Per-item-type multiplier applied after the regional adjustment."""

    __tablename__ = "item_type_tax_adjustments"
    __table_args__ = (
        UniqueConstraint("tenant_id", "item_type_code"),
        Index(
            "uq_item_type_tax_adjustments_one_default",
            "tenant_id",
            unique=True,
            postgresql_where=text("is_default AND is_active"),
        ),
    )

    item_type_code: Mapped[str] = mapped_column(String(64), nullable=False)
    tax_adjustment_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(8, 4), nullable=False
    )
    description: Mapped[str | None] = mapped_column(Text)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class FeeStructureTier(TenantScopedModel):
    """One amount band of a tenant's processing fee schedule."""

    __tablename__ = "fee_structure_tiers"

    tier_order: Mapped[int] = mapped_column(Integer, nullable=False)
    min_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    fee_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal(0)
    )
    fee_percentage: Mapped[Decimal | None] = mapped_column(Numeric(6, 4))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
