"""Payload and result models for the TaxAndFee cell."""

from decimal import Decimal
from typing import Annotated, Literal

from pydantic import AliasChoices, Field

from cellgate.core.payloads import CamelModel

TenantId = Annotated[str, Field(min_length=1, max_length=64)]

# Largest value a Numeric(14, 2) money column holds
MAX_AMOUNT = Decimal("999999999999.99")


class CalculateTaxRequest(CamelModel):
    """Arguments of ``calculate``; ``taxRate`` is accepted for ``baseRate``."""

    amount: Decimal = Field(..., ge=0, le=MAX_AMOUNT)
    base_rate: Decimal = Field(
        ...,
        ge=0,
        le=1,
        validation_alias=AliasChoices("baseRate", "taxRate", "base_rate"),
    )
    region: str = Field(default="default", min_length=1, max_length=32)
    item_type: str = Field(default="general", min_length=1, max_length=64)
    tenant_id: TenantId


class TaxBreakdown(CamelModel):
    base_tax: Decimal
    region_tax: Decimal
    region_multiplier: Decimal
    item_type_multiplier: Decimal
    processing_fee: Decimal
    region_source: str
    item_type_source: str
    fee_source: str


class TaxCalculation(CamelModel):
    """Result of ``calculate``; ``total`` equals ``subtotal + tax + fee``."""

    subtotal: Decimal
    tax: Decimal
    fee: Decimal
    total: Decimal
    breakdown: TaxBreakdown
    configuration_source: Literal["database", "emergencyFallback"]


class RegionRatesRequest(CamelModel):
    region: str = Field(..., min_length=1, max_length=32)
    tenant_id: TenantId


class RegionRates(CamelModel):
    region: str
    tax_multiplier: Decimal
    description: str
    source: str


class ItemTypeAdjustmentRequest(CamelModel):
    item_type: str = Field(..., min_length=1, max_length=64)
    tenant_id: TenantId


class ItemTypeAdjustment(CamelModel):
    item_type: str
    tax_adjustment_multiplier: Decimal
    description: str
    source: str


class FeeScheduleRequest(CamelModel):
    tenant_id: TenantId


class FeeTierView(CamelModel):
    min_amount: Decimal
    max_amount: Decimal | None
    fee_amount: Decimal
    fee_percentage: Decimal | None


class FeeSchedule(CamelModel):
    tiers: list[FeeTierView]
    source: str


class ValidateTaxIdRequest(CamelModel):
    tax_id: str = Field(..., min_length=1, max_length=64)
    region: str = Field(default="default", max_length=32)
    tenant_id: TenantId


class TaxIdValidation(CamelModel):
    valid: bool
    format: str
    source: Literal["regulatory"] = "regulatory"


class InvalidateCacheRequest(CamelModel):
    """Arguments of ``invalidateConfigurationCache``; the tenant is the caller's."""

    tenant_id: TenantId | None = None
    table: (
        Literal["tax_region_multipliers", "item_type_tax_adjustments", "fee_structure_tiers"]
        | None
    ) = None
    key: str | None = Field(default=None, min_length=1)


class InvalidateCacheResult(CamelModel):
    tenant_id: str
    removed: int
