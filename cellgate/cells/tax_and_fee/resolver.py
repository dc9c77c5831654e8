"""Tenant-scoped configuration resolution with a read-through cache.

Every lookup terminates in a value. The precedence chain short-circuits on
the first hit:

1. unexpired cache entry (``cached``)
2. the tenant's active row for the key (``stored``, then cached)
3. the tenant's active default row (``storedDefault``)
4. the process-wide constant from settings (``fallback``)

If the store or cache is unavailable the resolver logs the failure and
returns the constant with source ``errorFallback``; it never raises.

Cached entries live for the configured TTL. Writers that need
read-after-write consistency call ``invalidate`` after changing a row.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Any

from loguru import logger

from cellgate.cells.tax_and_fee.store import ConfigEntry, ConfigStore, ConfigTable, FeeTier
from cellgate.core.config import CacheConfig, TaxConfig
from cellgate.core.exceptions import StoreUnavailableError
from cellgate.infrastructure.cache import CacheStore


class ConfigSource(StrEnum):
    """Where a resolved value came from."""

    CACHED = "cached"
    STORED = "stored"
    STORED_DEFAULT = "storedDefault"
    FALLBACK = "fallback"
    ERROR_FALLBACK = "errorFallback"


@dataclass(frozen=True, slots=True)
class ResolvedValue:
    """A multiplier together with its provenance."""

    value: Decimal
    source: ConfigSource
    description: str | None = None

    @property
    def degraded(self) -> bool:
        return self.source is ConfigSource.ERROR_FALLBACK


@dataclass(frozen=True, slots=True)
class ResolvedFeeSchedule:
    """A tenant's fee tiers together with their provenance."""

    tiers: tuple[FeeTier, ...]
    source: ConfigSource

    @property
    def degraded(self) -> bool:
        return self.source is ConfigSource.ERROR_FALLBACK


_CACHE_PREFIXES: dict[ConfigTable, str] = {
    ConfigTable.TAX_REGION_MULTIPLIERS: "tax_regions",
    ConfigTable.ITEM_TYPE_TAX_ADJUSTMENTS: "item_adjustments",
}
FEE_TIERS_CACHE_PREFIX = "fee_tiers"


def cache_key(tenant_id: str, table: ConfigTable, key: str) -> str:
    """Cache key for a normalized lookup key, e.g. ``tax_regions:t1:LAGOS``."""
    return f"{_CACHE_PREFIXES[table]}:{tenant_id}:{key}"


def fee_tiers_cache_key(tenant_id: str) -> str:
    return f"{FEE_TIERS_CACHE_PREFIX}:{tenant_id}"


class ConfigurationResolver:
    """Resolves tenant configuration through cache, store and constants.

    Args:
        store: Source of stored configuration rows.
        cache: Keyed TTL cache shared by all requests.
        tax_config: Process-wide constants terminating each chain.
        cache_config: Cache switch and TTL.
    """

    def __init__(
        self,
        store: ConfigStore,
        cache: CacheStore,
        tax_config: TaxConfig,
        cache_config: CacheConfig,
    ) -> None:
        self._store = store
        self._cache = cache
        self._tax_config = tax_config
        self._cache_config = cache_config

    @property
    def caching_enabled(self) -> bool:
        return self._cache_config.enabled

    async def resolve(self, tenant_id: str, table: ConfigTable, key: str) -> ResolvedValue:
        """Resolve ``key`` in ``table`` for ``tenant_id``.

        Args:
            tenant_id: Tenant whose configuration is read.
            table: Multiplier table to consult.
            key: Region or item type code; normalized before lookup.

        Returns:
            ResolvedValue: Always defined, see the module docstring for order.
        """
        normalized = table.normalize_key(key)
        entry_key = cache_key(tenant_id, table, normalized)

        try:
            if self.caching_enabled:
                cached = await self._cache_get(entry_key)
                if isinstance(cached, ConfigEntry):
                    return ResolvedValue(cached.value, ConfigSource.CACHED, cached.description)

            entry = await self._store.find_entry(tenant_id, table, normalized)
            if entry is not None:
                if self.caching_enabled:
                    await self._cache_set(entry_key, entry)
                return ResolvedValue(entry.value, ConfigSource.STORED, entry.description)

            default = await self._store.find_default(tenant_id, table)
            if default is not None:
                return ResolvedValue(
                    default.value, ConfigSource.STORED_DEFAULT, default.description
                )
        except StoreUnavailableError as e:
            logger.warning(
                "Resolving {} {} for tenant {} degraded to constant: {}",
                table.value,
                normalized,
                tenant_id,
                e.message,
                tenant_id=tenant_id,
                lookup_table=table.value,
                lookup_key=normalized,
            )
            return ResolvedValue(self._constant(table), ConfigSource.ERROR_FALLBACK)

        return ResolvedValue(self._constant(table), ConfigSource.FALLBACK)

    async def resolve_region(self, tenant_id: str, region: str) -> ResolvedValue:
        return await self.resolve(tenant_id, ConfigTable.TAX_REGION_MULTIPLIERS, region)

    async def resolve_item_type(self, tenant_id: str, item_type: str) -> ResolvedValue:
        return await self.resolve(tenant_id, ConfigTable.ITEM_TYPE_TAX_ADJUSTMENTS, item_type)

    async def resolve_fee_tiers(self, tenant_id: str) -> ResolvedFeeSchedule:
        """Resolve the tenant's fee schedule; an empty schedule is the constant."""
        entry_key = fee_tiers_cache_key(tenant_id)

        try:
            if self.caching_enabled:
                cached = await self._cache_get(entry_key)
                if isinstance(cached, tuple):
                    return ResolvedFeeSchedule(cached, ConfigSource.CACHED)

            tiers = tuple(await self._store.list_fee_tiers(tenant_id))
            if tiers and self.caching_enabled:
                await self._cache_set(entry_key, tiers)
        except StoreUnavailableError as e:
            logger.warning(
                "Resolving fee tiers for tenant {} degraded: {}",
                tenant_id,
                e.message,
                tenant_id=tenant_id,
            )
            return ResolvedFeeSchedule((), ConfigSource.ERROR_FALLBACK)

        if not tiers:
            return ResolvedFeeSchedule((), ConfigSource.FALLBACK)
        return ResolvedFeeSchedule(tiers, ConfigSource.STORED)

    async def invalidate(
        self, tenant_id: str, table: ConfigTable | None = None, key: str | None = None
    ) -> int:
        """Evict cached configuration for a tenant.

        Args:
            tenant_id: Tenant whose entries are evicted.
            table: Restrict eviction to one multiplier table. None evicts
                every table and the fee schedule.
            key: Restrict eviction to one key within ``table``.

        Returns:
            int: Number of entries removed.
        """
        if key is not None and table is None:
            msg = "key requires table"
            raise ValueError(msg)

        if table is not None and key is not None:
            removed = int(
                await self._cache.delete(cache_key(tenant_id, table, table.normalize_key(key)))
            )
        elif table is not None:
            removed = await self._cache.delete_prefix(f"{_CACHE_PREFIXES[table]}:{tenant_id}:")
        else:
            removed = int(await self._cache.delete(fee_tiers_cache_key(tenant_id)))
            for prefix in _CACHE_PREFIXES.values():
                removed += await self._cache.delete_prefix(f"{prefix}:{tenant_id}:")

        logger.info(
            "Invalidated {} cached configuration entries for tenant {}",
            removed,
            tenant_id,
            tenant_id=tenant_id,
        )
        return removed

    async def invalidate_fee_tiers(self, tenant_id: str) -> int:
        """Evict the tenant's cached fee schedule."""
        removed = int(await self._cache.delete(fee_tiers_cache_key(tenant_id)))
        logger.info("Invalidated cached fee tiers for tenant {}", tenant_id)
        return removed

    async def _cache_get(self, entry_key: str) -> Any | None:
        try:
            return await self._cache.get(entry_key)
        except Exception as e:
            raise _cache_unavailable(entry_key, e) from e

    async def _cache_set(self, entry_key: str, value: Any) -> None:
        try:
            await self._cache.set(entry_key, value, self._cache_config.ttl_seconds)
        except Exception as e:
            raise _cache_unavailable(entry_key, e) from e

    def _constant(self, table: ConfigTable) -> Decimal:
        if table is ConfigTable.TAX_REGION_MULTIPLIERS:
            return self._tax_config.fallback_region_multiplier
        return self._tax_config.fallback_item_type_multiplier


def _cache_unavailable(entry_key: str, error: Exception) -> StoreUnavailableError:
    return StoreUnavailableError(
        f"Configuration cache unavailable: {type(error).__name__}",
        context={"cache_key": entry_key},
        cause=error,
    )
