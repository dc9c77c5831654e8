"""Shared fixtures for integration tests.

The application is built around a supplied ``CellContext`` whose cells read
from in-memory stores, so requests travel the full HTTP, middleware, router
and cell path without a database.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pytest_mock import MockerFixture, MockType

from cellgate.api.main import create_app
from cellgate.cells.auth import AuthenticationCoreCell
from cellgate.cells.b2b_access import B2BAccessControlCell
from cellgate.cells.registry import register_cells
from cellgate.cells.tax_and_fee import TaxAndFeeCell
from cellgate.cells.tax_and_fee.store import ConfigEntry, ConfigTable, FeeTier
from cellgate.core.config import Settings
from cellgate.gateway.context import CellContext, build_cell_context
from cellgate.infrastructure.cache import MemoryCacheStore
from tests.fixtures.cell_fakes import FakeConfigStore, FakePermissionStore


@pytest.fixture
def settings() -> Settings:
    test_settings = Settings(environment="development", debug=False)
    test_settings.observability_config.enable_tracing = False
    return test_settings


@pytest.fixture
def config_store() -> FakeConfigStore:
    return FakeConfigStore(
        entries={
            ("tenant-a", ConfigTable.TAX_REGION_MULTIPLIERS): {
                "LAGOS": ConfigEntry("LAGOS", Decimal("1.2"), "Lagos State levy")
            },
        },
        fee_tiers={"tenant-a": [FeeTier(Decimal(0), None, Decimal("2.50"))]},
    )


@pytest.fixture
def permission_store() -> FakePermissionStore:
    return FakePermissionStore(
        {
            ("tenant-a", "admin"): ["b2b.*", "tax.config.update"],
            ("tenant-a", "buyer"): ["orders.view"],
        }
    )


@pytest.fixture
def b2b_uow(mocker: MockerFixture) -> MockType:
    """Repositories that hold nothing and accept every write."""
    unit = mocker.MagicMock(name="uow")
    for repository in ("groups", "memberships", "rules", "settings"):
        setattr(unit, repository, mocker.AsyncMock(name=repository))
    unit.ping = mocker.AsyncMock(name="ping")

    unit.groups.find_by_name_or_code.return_value = None
    unit.memberships.list_active_for_user.return_value = []
    unit.rules.list_applicable.return_value = []
    unit.settings.get_for_tenant.return_value = None

    async def create(obj: Any) -> Any:
        obj.id = 1
        return obj

    unit.groups.create.side_effect = create
    return unit


@pytest.fixture
def cell_context(
    settings: Settings,
    config_store: FakeConfigStore,
    permission_store: FakePermissionStore,
    b2b_uow: MockType,
    mocker: MockerFixture,
) -> CellContext:
    context = build_cell_context(
        settings,
        session_factory=mocker.MagicMock(name="session_factory"),
        cache=MemoryCacheStore(),
    )

    @asynccontextmanager
    async def open_uow() -> AsyncGenerator[Any]:
        yield b2b_uow

    register_cells(
        context,
        [
            AuthenticationCoreCell(context, store=permission_store),
            TaxAndFeeCell(context, store=config_store),
            B2BAccessControlCell(context, unit_of_work=open_uow),
        ],
    )
    return context


@pytest.fixture
def app(settings: Settings, cell_context: CellContext) -> FastAPI:
    return create_app(settings, context=cell_context)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
