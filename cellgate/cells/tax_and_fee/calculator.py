"""Tax and fee arithmetic.

The module-level functions are pure: they compose already-resolved
multipliers and tiers into money. ``TaxCalculator`` resolves those inputs
for a tenant and picks the normal or the emergency path.

Money is ``Decimal`` rounded half-up to cents at each step, so
``total == subtotal + tax + fee`` holds exactly.
"""

import asyncio
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from loguru import logger

from cellgate.cells.tax_and_fee.resolver import ConfigurationResolver
from cellgate.cells.tax_and_fee.schemas import CalculateTaxRequest, TaxBreakdown, TaxCalculation
from cellgate.cells.tax_and_fee.store import FeeTier
from cellgate.core.config import EmergencyFeeBand, TaxConfig
from cellgate.core.constants import CENTS

ZERO = Decimal("0.00")
ONE = Decimal(1)


def to_money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def select_fee(amount: Decimal, tiers: Sequence[FeeTier]) -> Decimal:
    """Processing fee for ``amount`` under a tier schedule.

    The first tier whose ``[min, max)`` range contains ``amount`` wins; it
    charges a percentage of the amount when one is set and positive, else
    its flat fee. With no matching tier the last tier's flat fee applies.
    An empty schedule charges nothing.
    """
    if not tiers:
        return ZERO

    for tier in tiers:
        if tier.contains(amount):
            if tier.fee_percentage is not None and tier.fee_percentage > 0:
                return to_money(amount * tier.fee_percentage)
            return to_money(tier.fee_amount)

    return to_money(tiers[-1].fee_amount)


def emergency_fee(amount: Decimal, ladder: Sequence[EmergencyFeeBand]) -> Decimal:
    """Flat fee from the first band whose upper bound exceeds ``amount``."""
    for band in ladder:
        if band.below is None or amount < band.below:
            return to_money(band.fee)
    return to_money(ladder[-1].fee) if ladder else ZERO


def compose(
    amount: Decimal,
    base_rate: Decimal,
    region_multiplier: Decimal,
    item_type_multiplier: Decimal,
    fee: Decimal,
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """Return ``(base_tax, region_tax, tax, total)`` for resolved inputs.

    ``tax = (base_tax + base_tax * (region_multiplier - 1)) * item_type_multiplier``
    """
    base_tax = to_money(amount * base_rate)
    region_tax = to_money(base_tax * (region_multiplier - ONE))
    tax = to_money((base_tax + region_tax) * item_type_multiplier)
    total = to_money(amount) + tax + fee
    return base_tax, region_tax, tax, total


class TaxCalculator:
    """Resolves a tenant's configuration and computes tax, fee and total.

    Args:
        resolver: Configuration resolver for the tenant lookups.
        tax_config: Supplies the emergency fee ladder.
    """

    def __init__(self, resolver: ConfigurationResolver, tax_config: TaxConfig) -> None:
        self._resolver = resolver
        self._tax_config = tax_config

    async def calculate(self, request: CalculateTaxRequest) -> TaxCalculation:
        region, item_type, schedule = await asyncio.gather(
            self._resolver.resolve_region(request.tenant_id, request.region),
            self._resolver.resolve_item_type(request.tenant_id, request.item_type),
            self._resolver.resolve_fee_tiers(request.tenant_id),
        )

        sources = {
            "region_source": region.source.value,
            "item_type_source": item_type.source.value,
            "fee_source": schedule.source.value,
        }

        if region.degraded or item_type.degraded or schedule.degraded:
            logger.warning(
                "Configuration unavailable for tenant {}, using emergency calculation",
                request.tenant_id,
                tenant_id=request.tenant_id,
                **sources,
            )
            return self._emergency(request, sources)

        fee = select_fee(request.amount, schedule.tiers)
        base_tax, region_tax, tax, total = compose(
            request.amount, request.base_rate, region.value, item_type.value, fee
        )

        return TaxCalculation(
            subtotal=to_money(request.amount),
            tax=tax,
            fee=fee,
            total=total,
            breakdown=TaxBreakdown(
                base_tax=base_tax,
                region_tax=region_tax,
                region_multiplier=region.value,
                item_type_multiplier=item_type.value,
                processing_fee=fee,
                **sources,
            ),
            configuration_source="database",
        )

    def _emergency(
        self, request: CalculateTaxRequest, sources: dict[str, str]
    ) -> TaxCalculation:
        """Base rate only, no regional or item adjustment, laddered flat fee."""
        fee = emergency_fee(request.amount, self._tax_config.emergency_fee_ladder)
        base_tax, region_tax, tax, total = compose(
            request.amount, request.base_rate, ONE, ONE, fee
        )

        return TaxCalculation(
            subtotal=to_money(request.amount),
            tax=tax,
            fee=fee,
            total=total,
            breakdown=TaxBreakdown(
                base_tax=base_tax,
                region_tax=region_tax,
                region_multiplier=ONE,
                item_type_multiplier=ONE,
                processing_fee=fee,
                **sources,
            ),
            configuration_source="emergencyFallback",
        )
