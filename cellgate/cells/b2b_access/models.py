"""B2B group, membership, category rule and settings tables."""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cellgate.infrastructure.database.base import TenantScopedModel


class B2BUserGroup(TenantScopedModel):
    """A customer group with its own price visibility and category policy."""

    __tablename__ = "b2b_user_groups"
    __table_args__ = (
        UniqueConstraint("tenant_id", "group_name", name="uq_b2b_user_groups_name"),
        UniqueConstraint("tenant_id", "group_code", name="uq_b2b_user_groups_code"),
    )

    group_name: Mapped[str] = mapped_column(String(100), nullable=False)
    group_code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    group_type: Mapped[str] = mapped_column(String(20), nullable=False)
    price_visibility: Mapped[str] = mapped_column(String(20), nullable=False)
    hide_from_guests: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hide_price_text: Mapped[str] = mapped_column(String(200), nullable=False)
    login_prompt_text: Mapped[str] = mapped_column(String(200), nullable=False)
    guest_message: Mapped[str] = mapped_column(String(500), nullable=False)
    allowed_categories: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    restricted_categories: Mapped[list[str]] = mapped_column(
        JSON, default=list, nullable=False
    )
    category_access_type: Mapped[str] = mapped_column(
        String(20), default="unrestricted", nullable=False
    )
    currency_preference: Mapped[str] = mapped_column(String(3), default="NGN", nullable=False)
    min_order_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal(0), nullable=False
    )
    credit_limit: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal(0), nullable=False
    )
    payment_terms_days: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    priority_level: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(64))


class B2BGroupMembership(TenantScopedModel):
    """A user's membership of a group.

    Removal marks the row ``revoked`` instead of deleting it, so a later
    assignment re-activates the same row.
    """

    __tablename__ = "b2b_group_memberships"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "user_id", "group_id", name="uq_b2b_group_memberships_member"
        ),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    group_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("b2b_user_groups.id", ondelete="CASCADE"), nullable=False
    )
    membership_status: Mapped[str] = mapped_column(String(20), nullable=False)
    membership_type: Mapped[str] = mapped_column(
        String(20), default="regular", nullable=False
    )
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date)
    auto_renewal: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    renewal_period_months: Mapped[int] = mapped_column(Integer, default=12, nullable=False)
    discount_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal(0), nullable=False
    )
    credit_limit_override: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    sales_rep_id: Mapped[str | None] = mapped_column(String(64))
    territory: Mapped[str | None] = mapped_column(String(100))
    business_registration: Mapped[str | None] = mapped_column(String(100))
    tax_identification: Mapped[str | None] = mapped_column(String(50))
    created_by: Mapped[str | None] = mapped_column(String(64))

    group: Mapped[B2BUserGroup] = relationship(lazy="joined")


class B2BCategoryAccessRule(TenantScopedModel):
    """Allow, deny or gate a product category for a group, a user or everyone."""

    __tablename__ = "b2b_category_access_rules"
    __table_args__ = (
        Index("ix_b2b_category_access_rules_lookup", "tenant_id", "category_id"),
    )

    rule_scope: Mapped[str] = mapped_column(String(10), nullable=False)
    group_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("b2b_user_groups.id", ondelete="CASCADE")
    )
    user_id: Mapped[str | None] = mapped_column(String(64))
    category_id: Mapped[str] = mapped_column(String(64), nullable=False)
    access_type: Mapped[str] = mapped_column(String(20), nullable=False)
    minimum_order_value: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal(0), nullable=False
    )
    maximum_order_quantity: Mapped[int | None] = mapped_column(Integer)
    requires_license: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    age_verification_required: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    priority: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(64))


class B2BGlobalSettings(TenantScopedModel):
    """Tenant-wide price visibility defaults; at most one row per tenant."""

    __tablename__ = "b2b_global_settings"
    __table_args__ = (UniqueConstraint("tenant_id"),)

    default_hide_from_guests: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    default_hide_price_text: Mapped[str] = mapped_column(String(200), nullable=False)
    default_login_prompt_text: Mapped[str] = mapped_column(String(200), nullable=False)
    default_guest_message: Mapped[str] = mapped_column(String(500), nullable=False)
    default_currency: Mapped[str] = mapped_column(String(3), default="NGN", nullable=False)
    vat_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    auto_approve_registrations: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    require_business_verification: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    minimum_order_for_b2b: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal(0), nullable=False
    )
    updated_by: Mapped[str | None] = mapped_column(String(64))
