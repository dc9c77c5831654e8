"""``inventory/TaxAndFee``: tenant-configured tax, fee and tax ID checks."""

import re
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Final

from loguru import logger

from cellgate.cells.tax_and_fee.calculator import TaxCalculator
from cellgate.cells.tax_and_fee.resolver import (
    ConfigSource,
    ConfigurationResolver,
    ResolvedValue,
)
from cellgate.cells.tax_and_fee.schemas import (
    CalculateTaxRequest,
    FeeSchedule,
    FeeScheduleRequest,
    FeeTierView,
    InvalidateCacheRequest,
    InvalidateCacheResult,
    ItemTypeAdjustment,
    ItemTypeAdjustmentRequest,
    RegionRates,
    RegionRatesRequest,
    TaxIdValidation,
    ValidateTaxIdRequest,
)
from cellgate.cells.tax_and_fee.store import ConfigStore, ConfigTable, SqlConfigStore
from cellgate.core.exceptions import (
    PermissionDeniedError,
    StoreUnavailableError,
    ValidationError,
)
from cellgate.core.payloads import parse_payload
from cellgate.core.types import ActionHandler, Payload
from cellgate.gateway.auth_client import AuthClient
from cellgate.gateway.context import CellContext
from cellgate.gateway.destinations import Destination

INVALIDATE_CACHE_PERMISSION: Final[str] = "tax.config.update"

# Regulatory formats; these are fixed by the issuing authorities
TAX_ID_FORMATS: Final[dict[str, tuple[re.Pattern[str], str]]] = {
    "CA": (re.compile(r"^[0-9]{2}-[0-9]{7}$"), "XX-XXXXXXX (2 digits, dash, 7 digits)"),
    "NY": (re.compile(r"^[0-9]{8}$"), "XXXXXXXX (8 digits)"),
    "TX": (re.compile(r"^[0-9]{11}$"), "XXXXXXXXXXX (11 digits)"),
    "FL": (re.compile(r"^[0-9]{12}$"), "XXXXXXXXXXXX (12 digits)"),
}
DEFAULT_TAX_ID_FORMAT: Final[tuple[re.Pattern[str], str]] = (
    re.compile(r"^[0-9A-Z]{8,12}$"),
    "XXXXXXXX (8-12 alphanumeric characters)",
)

_FALLBACK_DESCRIPTIONS: Final[dict[ConfigSource, str]] = {
    ConfigSource.FALLBACK: "Fallback rate - no stored configuration found",
    ConfigSource.ERROR_FALLBACK: "Fallback rate - configuration store unavailable",
}


def validate_tax_id(tax_id: str, region: str) -> TaxIdValidation:
    """Check ``tax_id`` against the format for ``region``.

    Region codes match case-insensitively; unknown regions use the default
    format.
    """
    pattern, description = TAX_ID_FORMATS.get(region.upper(), DEFAULT_TAX_ID_FORMAT)
    return TaxIdValidation(valid=bool(pattern.match(tax_id)), format=description)


class TaxAndFeeCell:
    """Tax calculation and configuration lookups for a tenant.

    Args:
        context: Shared process resources.
        store: Configuration store; defaults to the SQL store over the
            context's session factory.
        auth: Identity client; defaults to one over the context's router.
    """

    destination = Destination.TAX_AND_FEE

    def __init__(
        self,
        context: CellContext,
        store: ConfigStore | None = None,
        auth: AuthClient | None = None,
    ) -> None:
        self._settings = context.settings
        self._auth = auth or AuthClient(context.router)
        self._store = store or SqlConfigStore(context.session_factory)
        self.resolver = ConfigurationResolver(
            self._store,
            context.cache,
            context.settings.tax_config,
            context.settings.cache_config,
        )
        self._calculator = TaxCalculator(self.resolver, context.settings.tax_config)

    def actions(self) -> Mapping[str, ActionHandler]:
        return {
            "calculate": self.calculate,
            "getRegionRates": self.get_region_rates,
            "getItemTypeAdjustment": self.get_item_type_adjustment,
            "getFeeSchedule": self.get_fee_schedule,
            "validateTaxId": self.validate_tax_id,
            "invalidateConfigurationCache": self.invalidate_configuration_cache,
        }

    async def calculate(self, payload: Payload) -> dict[str, Any]:
        request = parse_payload(CalculateTaxRequest, payload)
        result = await self._calculator.calculate(request)
        return result.to_payload()

    async def get_region_rates(self, payload: Payload) -> dict[str, Any]:
        request = parse_payload(RegionRatesRequest, payload)
        resolved = await self.resolver.resolve_region(request.tenant_id, request.region)
        return RegionRates(
            region=ConfigTable.TAX_REGION_MULTIPLIERS.normalize_key(request.region),
            tax_multiplier=resolved.value,
            description=_describe(
                resolved, f"Regional tax adjustment for {request.region}"
            ),
            source=resolved.source.value,
        ).to_payload()

    async def get_item_type_adjustment(self, payload: Payload) -> dict[str, Any]:
        request = parse_payload(ItemTypeAdjustmentRequest, payload)
        resolved = await self.resolver.resolve_item_type(
            request.tenant_id, request.item_type
        )
        return ItemTypeAdjustment(
            item_type=ConfigTable.ITEM_TYPE_TAX_ADJUSTMENTS.normalize_key(
                request.item_type
            ),
            tax_adjustment_multiplier=resolved.value,
            description=_describe(
                resolved, f"Tax adjustment for {request.item_type} items"
            ),
            source=resolved.source.value,
        ).to_payload()

    async def get_fee_schedule(self, payload: Payload) -> dict[str, Any]:
        request = parse_payload(FeeScheduleRequest, payload)
        schedule = await self.resolver.resolve_fee_tiers(request.tenant_id)
        return FeeSchedule(
            tiers=[
                FeeTierView(
                    min_amount=tier.min_amount,
                    max_amount=tier.max_amount,
                    fee_amount=tier.fee_amount,
                    fee_percentage=tier.fee_percentage,
                )
                for tier in schedule.tiers
            ],
            source=schedule.source.value,
        ).to_payload()

    async def validate_tax_id(self, payload: Payload) -> dict[str, Any]:
        request = parse_payload(ValidateTaxIdRequest, payload)
        return validate_tax_id(request.tax_id, request.region).to_payload()

    async def invalidate_configuration_cache(self, payload: Payload) -> dict[str, Any]:
        """Evict the caller's cached configuration after their rows change.

        Raises:
            UnauthorizedError: If the caller has no tenant or is a guest.
            PermissionDeniedError: If the caller lacks ``tax.config.update`` or
                names another tenant.
        """
        action = "invalidateConfigurationCache"
        tenant_id, user_id = await self._auth.require_permission(
            action, INVALIDATE_CACHE_PERMISSION
        )
        request = parse_payload(InvalidateCacheRequest, payload)

        if request.tenant_id is not None and request.tenant_id != tenant_id:
            logger.warning(
                "User {} tried to invalidate configuration of tenant {}",
                user_id,
                request.tenant_id,
                tenant_id=tenant_id,
            )
            raise PermissionDeniedError(
                "Cannot invalidate another tenant's configuration",
                context={"action": action},
            )

        if request.key is not None and request.table in (None, "fee_structure_tiers"):
            raise ValidationError(
                "key: requires table to be a multiplier table",
                context={"fields": ["key", "table"]},
            )

        if request.table == "fee_structure_tiers":
            removed = await self.resolver.invalidate_fee_tiers(tenant_id)
        else:
            table = ConfigTable(request.table) if request.table else None
            removed = await self.resolver.invalidate(tenant_id, table, request.key)

        return InvalidateCacheResult(tenant_id=tenant_id, removed=removed).to_payload()

    async def health(self) -> dict[str, Any]:
        try:
            await self._store.ping()
        except StoreUnavailableError:
            store_ok = False
        else:
            store_ok = True

        if not store_ok:
            logger.warning("TaxAndFee configuration store unreachable")

        tax_config = self._settings.tax_config
        return {
            "cellId": self.destination.value,
            "status": "healthy" if store_ok else "degraded",
            "configurationSource": "database" if store_ok else "fallback",
            "cachingEnabled": self.resolver.caching_enabled,
            "endpoints": sorted(self.actions()),
            "metadata": {
                "configurationTables": [
                    ConfigTable.TAX_REGION_MULTIPLIERS.value,
                    ConfigTable.ITEM_TYPE_TAX_ADJUSTMENTS.value,
                    "fee_structure_tiers",
                ],
                "supportedRegions": tax_config.supported_regions,
                "defaultVatRate": tax_config.default_vat_rate,
                "currency": tax_config.default_currency,
                "cacheTtlSeconds": self._settings.cache_config.ttl_seconds,
                "requiredPermissions": {
                    "invalidateConfigurationCache": INVALIDATE_CACHE_PERMISSION
                },
            },
            "timestamp": datetime.now(UTC).isoformat(),
        }


def _describe(resolved: ResolvedValue, stored_description: str) -> str:
    if resolved.source in _FALLBACK_DESCRIPTIONS:
        return _FALLBACK_DESCRIPTIONS[resolved.source]
    if resolved.description:
        return resolved.description
    if resolved.source is ConfigSource.STORED_DEFAULT:
        return "Default rate for unlisted keys"
    return stored_description
