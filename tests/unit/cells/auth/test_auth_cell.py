"""Unit tests for the identity cell."""

import pytest

from cellgate.cells.auth import AuthenticationCoreCell
from cellgate.cells.auth.store import grant_covers
from cellgate.core.context import RequestContext
from cellgate.core.exceptions import StoreUnavailableError, ValidationError
from cellgate.gateway.context import CellContext
from tests.fixtures.cell_fakes import FakePermissionStore


@pytest.fixture
def store() -> FakePermissionStore:
    return FakePermissionStore(
        {
            ("t1", "admin"): ["*"],
            ("t1", "manager"): ["b2b.groups.*", "b2b.settings.view"],
        }
    )


@pytest.fixture
def cell(cell_context: CellContext, store: FakePermissionStore) -> AuthenticationCoreCell:
    return AuthenticationCoreCell(cell_context, store=store)


@pytest.mark.unit
class TestGrantCovers:
    @pytest.mark.parametrize(
        ("grant", "permission", "expected"),
        [
            ("*", "anything.at.all", True),
            ("b2b.groups.view", "b2b.groups.view", True),
            ("b2b.groups.view", "b2b.groups.create", False),
            ("b2b.*", "b2b.groups.create", True),
            ("b2b.groups.*", "b2b.settings.view", False),
            ("b2b*", "b2bx.view", False),
        ],
    )
    def test_grant_covers(self, grant: str, permission: str, expected: bool) -> None:
        assert grant_covers(grant, permission) is expected


@pytest.mark.unit
class TestIdentity:
    async def test_current_tenant(self, cell: AuthenticationCoreCell) -> None:
        RequestContext.set_identity("t1", "u1")

        assert await cell.get_current_tenant({}) == {"tenantId": "t1"}

    async def test_no_tenant(self, cell: AuthenticationCoreCell) -> None:
        assert await cell.get_current_tenant({}) == {"tenantId": None}

    async def test_current_user(self, cell: AuthenticationCoreCell) -> None:
        RequestContext.set_identity("t1", "u1")

        assert await cell.get_current_user({}) == {"user": {"id": "u1", "tenantId": "t1"}}

    async def test_guest(self, cell: AuthenticationCoreCell) -> None:
        RequestContext.set_identity("t1", None)

        assert await cell.get_current_user({}) == {"user": None}


@pytest.mark.unit
class TestPermissions:
    @pytest.mark.parametrize(
        ("user_id", "permission", "expected"),
        [
            ("admin", "b2b.settings.update", True),
            ("manager", "b2b.groups.create", True),
            ("manager", "b2b.settings.view", True),
            ("manager", "b2b.settings.update", False),
            ("stranger", "b2b.groups.view", False),
        ],
    )
    async def test_check_permission(
        self, cell: AuthenticationCoreCell, user_id: str, permission: str, expected: bool
    ) -> None:
        result = await cell.check_permission(
            {"userId": user_id, "tenantId": "t1", "permission": permission}
        )

        assert result == {"hasPermission": expected}

    async def test_grants_are_tenant_scoped(self, cell: AuthenticationCoreCell) -> None:
        result = await cell.check_permission(
            {"userId": "admin", "tenantId": "t2", "permission": "b2b.groups.view"}
        )

        assert result == {"hasPermission": False}

    async def test_user_permissions(self, cell: AuthenticationCoreCell) -> None:
        result = await cell.get_user_permissions({"userId": "manager", "tenantId": "t1"})

        assert result == {"permissions": ["b2b.groups.*", "b2b.settings.view"]}

    async def test_missing_permission_field(self, cell: AuthenticationCoreCell) -> None:
        with pytest.raises(ValidationError, match="permission"):
            await cell.check_permission({"userId": "admin", "tenantId": "t1"})

    async def test_store_outage_propagates(
        self, cell: AuthenticationCoreCell, store: FakePermissionStore
    ) -> None:
        store.unavailable = True

        with pytest.raises(StoreUnavailableError):
            await cell.get_user_permissions({"userId": "admin", "tenantId": "t1"})


@pytest.mark.unit
class TestHealth:
    async def test_healthy(self, cell: AuthenticationCoreCell) -> None:
        report = await cell.health()

        assert report["cellId"] == "auth/AuthenticationCore"
        assert report["status"] == "healthy"
        assert report["endpoints"] == [
            "checkPermission",
            "getCurrentTenant",
            "getCurrentUser",
            "getUserPermissions",
        ]

    async def test_degraded_without_store(
        self, cell: AuthenticationCoreCell, store: FakePermissionStore
    ) -> None:
        store.unavailable = True

        report = await cell.health()

        assert report["status"] == "degraded"
        assert report["configurationSource"] == "fallback"
