"""Unit tests for the B2BAccessControl cell.

Identity goes through the real router and identity cell over fake grants;
repositories are mocks behind a unit of work factory.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

import pytest
from pytest_mock import MockerFixture, MockType
from sqlalchemy.exc import IntegrityError, OperationalError

from cellgate.cells.auth import AuthenticationCoreCell
from cellgate.cells.b2b_access import B2BAccessControlCell
from cellgate.cells.b2b_access.cell import REQUIRED_PERMISSIONS
from cellgate.cells.b2b_access.models import (
    B2BCategoryAccessRule,
    B2BGlobalSettings,
    B2BGroupMembership,
    B2BUserGroup,
)
from cellgate.core.context import RequestContext
from cellgate.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    UnauthorizedError,
    ValidationError,
)
from cellgate.gateway.context import CellContext
from cellgate.gateway.destinations import Destination
from tests.fixtures.cell_fakes import FakePermissionStore

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


def make_group(group_id: int = 3, **overrides: Any) -> B2BUserGroup:
    values: dict[str, Any] = {
        "id": group_id,
        "tenant_id": "t1",
        "group_name": "Lagos Wholesalers",
        "group_code": "LAGOS_WHOLESALE",
        "description": None,
        "group_type": "wholesale",
        "price_visibility": "visible",
        "hide_from_guests": False,
        "hide_price_text": "Login to view wholesale prices",
        "requires_approval": False,
        "priority_level": 5,
        "status": "active",
        "currency_preference": "NGN",
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return B2BUserGroup(**values)


def make_membership(group: B2BUserGroup, **overrides: Any) -> B2BGroupMembership:
    values: dict[str, Any] = {
        "id": 11,
        "tenant_id": "t1",
        "user_id": "buyer",
        "group_id": group.id,
        "membership_status": "active",
        "membership_type": "regular",
        "effective_date": date(2026, 1, 1),
        "expiry_date": None,
        "discount_percentage": Decimal("5.00"),
        "territory": "Lagos",
    }
    values.update(overrides)
    membership = B2BGroupMembership(**values)
    membership.group = group
    return membership


def assign_id(new_id: int) -> Any:
    async def create(obj: Any) -> Any:
        obj.id = new_id
        return obj

    return create


async def apply_update(obj: Any, data: dict[str, Any]) -> Any:
    for key, value in data.items():
        setattr(obj, key, value)
    return obj


@pytest.fixture
def uow(mocker: MockerFixture) -> MockType:
    unit = mocker.MagicMock(name="uow")
    for repository in ("groups", "memberships", "rules", "settings"):
        setattr(unit, repository, mocker.AsyncMock(name=repository))
    unit.ping = mocker.AsyncMock(name="ping")

    unit.groups.find_by_name_or_code.return_value = None
    unit.groups.get_by_id.return_value = None
    unit.memberships.find_member.return_value = None
    unit.memberships.list_active_for_user.return_value = []
    unit.rules.list_applicable.return_value = []
    unit.settings.get_for_tenant.return_value = None
    unit.memberships.update.side_effect = apply_update
    unit.settings.update.side_effect = apply_update
    return unit


@pytest.fixture
def grants() -> FakePermissionStore:
    return FakePermissionStore(
        {
            ("t1", "admin"): ["b2b.*", "orders.view"],
            ("t1", "buyer"): ["orders.view"],
        }
    )


@pytest.fixture
def cell(
    cell_context: CellContext, uow: MockType, grants: FakePermissionStore
) -> B2BAccessControlCell:
    @asynccontextmanager
    async def open_uow() -> AsyncGenerator[Any]:
        yield uow

    cell_context.router.register_cell(AuthenticationCoreCell(cell_context, store=grants))
    b2b_cell = B2BAccessControlCell(cell_context, unit_of_work=open_uow)
    cell_context.router.register_cell(b2b_cell)
    return b2b_cell


def act_as(user_id: str | None, tenant_id: str | None = "t1") -> None:
    RequestContext.set_identity(tenant_id, user_id)


GROUP_PAYLOAD = {
    "groupName": "Lagos Wholesalers",
    "groupCode": "LAGOS_WHOLESALE",
    "groupType": "wholesale",
    "priceVisibility": "visible",
}


@pytest.mark.unit
class TestAuthorization:
    @pytest.mark.parametrize("action", sorted(REQUIRED_PERMISSIONS))
    async def test_guest_is_unauthorized(
        self, cell: B2BAccessControlCell, cell_context: CellContext, action: str
    ) -> None:
        act_as(None)

        with pytest.raises(UnauthorizedError):
            await cell_context.router.invoke(Destination.B2B_ACCESS_CONTROL, action, {})

    @pytest.mark.parametrize("action", sorted(REQUIRED_PERMISSIONS))
    async def test_missing_permission(
        self, cell: B2BAccessControlCell, cell_context: CellContext, action: str
    ) -> None:
        act_as("buyer")

        with pytest.raises(PermissionDeniedError) as exc_info:
            await cell_context.router.invoke(Destination.B2B_ACCESS_CONTROL, action, {})

        assert exc_info.value.context["permission"] == REQUIRED_PERMISSIONS[action]

    async def test_no_tenant(self, cell: B2BAccessControlCell) -> None:
        act_as("admin", tenant_id=None)

        with pytest.raises(UnauthorizedError):
            await cell.check_category_access({"categoryId": "electronics"})


@pytest.mark.unit
class TestGroups:
    async def test_create_group(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("admin")
        uow.groups.create.side_effect = assign_id(42)

        result = await cell.create_b2b_group(GROUP_PAYLOAD)

        created: B2BUserGroup = uow.groups.create.await_args.args[0]
        assert created.tenant_id == "t1"
        assert created.created_by == "admin"
        assert created.hide_price_text == "Login to view wholesale prices"
        assert created.guest_message == "Contact us for wholesale rates in Nigerian Naira"
        assert result["groupId"] == 42
        assert result["groupDetails"]["memberCount"] == 0
        assert "b2b.bulk.order" in result["groupDetails"]["permissions"]
        assert result["message"] == (
            'B2B group "Lagos Wholesalers" created successfully with NGN pricing'
        )

    async def test_duplicate_group(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("admin")
        uow.groups.find_by_name_or_code.return_value = make_group()

        with pytest.raises(ConflictError, match="already exists"):
            await cell.create_b2b_group(GROUP_PAYLOAD)
        uow.groups.create.assert_not_awaited()

    async def test_concurrent_duplicate(
        self, cell: B2BAccessControlCell, uow: MockType
    ) -> None:
        act_as("admin")
        uow.groups.create.side_effect = IntegrityError("INSERT", {}, Exception("dup"))

        with pytest.raises(ConflictError):
            await cell.create_b2b_group(GROUP_PAYLOAD)

    @pytest.mark.parametrize(
        ("field", "value"),
        [("groupCode", "lower_case"), ("groupType", "partner"), ("priorityLevel", 11)],
    )
    async def test_invalid_group(
        self, cell: B2BAccessControlCell, field: str, value: object
    ) -> None:
        act_as("admin")

        with pytest.raises(ValidationError, match=field):
            await cell.create_b2b_group({**GROUP_PAYLOAD, field: value})

    async def test_list_groups(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("admin")
        uow.groups.list_with_member_counts.return_value = [
            (make_group(3), 7),
            (make_group(4, group_name="VIP", group_code="VIP", group_type="vip"), 0),
        ]

        result = await cell.list_b2b_groups({"groupType": "wholesale", "limit": 10})

        uow.groups.list_with_member_counts.assert_awaited_once_with(
            "t1", group_type="wholesale", status=None, limit=10, offset=0
        )
        assert result["total"] == 2
        assert result["groups"][0]["memberCount"] == 7
        assert result["message"] == "Found 2 B2B group(s)"

    async def test_list_limit_is_capped(self, cell: B2BAccessControlCell) -> None:
        act_as("admin")

        with pytest.raises(ValidationError, match="limit"):
            await cell.list_b2b_groups({"limit": 500})


@pytest.mark.unit
class TestMemberships:
    async def test_assign(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("admin")
        uow.groups.get_by_id.return_value = make_group()
        uow.memberships.create.side_effect = assign_id(11)

        result = await cell.assign_user_to_b2b_group({"userId": "buyer", "groupId": 3})

        created: B2BGroupMembership = uow.memberships.create.await_args.args[0]
        assert created.membership_status == "active"
        assert created.created_by == "admin"
        assert result["membershipId"] == 11
        assert result["membershipStatus"] == "active"
        assert result["effectivePermissions"] == [
            "orders.view",
            "b2b.prices.view",
            "b2b.bulk.order",
            "quotes.request",
        ]

    async def test_assign_needs_approval(
        self, cell: B2BAccessControlCell, uow: MockType
    ) -> None:
        act_as("admin")
        uow.groups.get_by_id.return_value = make_group(requires_approval=True)
        uow.memberships.create.side_effect = assign_id(12)

        result = await cell.assign_user_to_b2b_group({"userId": "buyer", "groupId": 3})

        assert result["membershipStatus"] == "pending"
        assert result["message"].endswith("pending approval")

    async def test_assign_missing_group(self, cell: B2BAccessControlCell) -> None:
        act_as("admin")

        with pytest.raises(NotFoundError, match="group not found"):
            await cell.assign_user_to_b2b_group({"userId": "buyer", "groupId": 99})

    async def test_assign_active_member(
        self, cell: B2BAccessControlCell, uow: MockType
    ) -> None:
        act_as("admin")
        group = make_group()
        uow.groups.get_by_id.return_value = group
        uow.memberships.find_member.return_value = make_membership(group)

        with pytest.raises(ConflictError):
            await cell.assign_user_to_b2b_group({"userId": "buyer", "groupId": 3})

    async def test_assign_reactivates_revoked(
        self, cell: B2BAccessControlCell, uow: MockType
    ) -> None:
        act_as("admin")
        group = make_group()
        revoked = make_membership(group, membership_status="revoked")
        uow.groups.get_by_id.return_value = group
        uow.memberships.find_member.return_value = revoked

        result = await cell.assign_user_to_b2b_group(
            {"userId": "buyer", "groupId": 3, "membershipType": "premium"}
        )

        uow.memberships.create.assert_not_awaited()
        assert revoked.membership_status == "active"
        assert revoked.membership_type == "premium"
        assert result["membershipId"] == 11

    async def test_expiry_before_effective(self, cell: B2BAccessControlCell) -> None:
        act_as("admin")

        with pytest.raises(ValidationError, match="expiryDate"):
            await cell.assign_user_to_b2b_group(
                {
                    "userId": "buyer",
                    "groupId": 3,
                    "effectiveDate": "2026-06-01",
                    "expiryDate": "2026-05-01",
                }
            )

    async def test_remove(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("admin")
        membership = make_membership(make_group())
        uow.memberships.find_member.return_value = membership

        result = await cell.remove_user_from_b2b_group({"userId": "buyer", "groupId": 3})

        assert membership.membership_status == "revoked"
        assert result == {
            "membershipId": 11,
            "message": "User successfully removed from B2B group",
        }

    async def test_remove_already_revoked(
        self, cell: B2BAccessControlCell, uow: MockType
    ) -> None:
        act_as("admin")
        uow.memberships.find_member.return_value = make_membership(
            make_group(), membership_status="revoked"
        )

        with pytest.raises(NotFoundError):
            await cell.remove_user_from_b2b_group({"userId": "buyer", "groupId": 3})


@pytest.mark.unit
class TestGroupMembers:
    async def test_lists_members(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("admin")
        group = make_group()
        uow.groups.get_by_id.return_value = group
        uow.memberships.list_for_group.return_value = [
            make_membership(
                group,
                id=12,
                user_id="late-buyer",
                membership_status="pending",
                business_registration="RC-1234",
                created_at=NOW,
                updated_at=NOW,
            ),
            make_membership(group, created_at=NOW, updated_at=NOW),
        ]

        result = await cell.get_b2b_group_members(
            {"groupId": 3, "status": "pending", "limit": 20, "offset": 5}
        )

        uow.memberships.list_for_group.assert_awaited_once_with(
            "t1", 3, status="pending", limit=20, offset=5
        )
        assert [m["membershipId"] for m in result["members"]] == [12, 11]
        assert result["members"][0]["userId"] == "late-buyer"
        assert result["members"][0]["businessRegistration"] == "RC-1234"
        assert result["groupInfo"] == {
            "groupName": "Lagos Wholesalers",
            "groupType": "wholesale",
        }
        assert result["total"] == 2
        assert result["message"] == "Found 2 member(s) in group"

    async def test_empty_group(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("admin")
        uow.groups.get_by_id.return_value = make_group()
        uow.memberships.list_for_group.return_value = []

        result = await cell.get_b2b_group_members({"groupId": 3})

        assert result["members"] == []
        assert result["groupInfo"]["groupName"] == "Lagos Wholesalers"
        assert result["message"] == "Found 0 member(s) in group"

    async def test_missing_group(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("admin")

        with pytest.raises(NotFoundError):
            await cell.get_b2b_group_members({"groupId": 99})
        uow.memberships.list_for_group.assert_not_awaited()

    @pytest.mark.parametrize(
        ("field", "value"), [("status", "expired"), ("limit", 500), ("groupId", 0)]
    )
    async def test_invalid_request(
        self, cell: B2BAccessControlCell, field: str, value: object
    ) -> None:
        act_as("admin")

        with pytest.raises(ValidationError, match=field):
            await cell.get_b2b_group_members({"groupId": 3, field: value})


@pytest.mark.unit
class TestStatus:
    async def test_guest(self, cell: B2BAccessControlCell) -> None:
        act_as(None)

        result = await cell.check_user_b2b_status({})

        assert result["status"] == "guest"
        assert result["isB2bCustomer"] is False

    async def test_regular_customer(self, cell: B2BAccessControlCell) -> None:
        act_as("buyer")

        result = await cell.check_user_b2b_status({})

        assert result["status"] == "regular_customer"
        assert result["primaryGroup"] is None

    async def test_b2b_customer(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("admin")
        vip = make_group(4, group_name="VIP", group_type="vip", priority_level=9)
        wholesale = make_group(3)
        uow.memberships.list_active_for_user.return_value = [
            make_membership(vip, id=21, group_id=4),
            make_membership(wholesale),
        ]

        result = await cell.check_user_b2b_status({"userId": "buyer"})

        args = uow.memberships.list_active_for_user.await_args.args
        assert args[:2] == ("t1", "buyer")
        assert result["status"] == "b2b_customer"
        assert len(result["groups"]) == 2
        assert result["primaryGroup"] == {
            "groupName": "VIP",
            "groupType": "vip",
            "priceVisibility": "visible",
        }


@pytest.mark.unit
class TestCategoryAccess:
    async def test_anonymous(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as(None)

        result = await cell.check_category_access({"categoryId": "electronics"})

        assert result["hasAccess"] is False
        uow.rules.list_applicable.assert_not_awaited()

    async def test_rules_include_member_groups(
        self, cell: B2BAccessControlCell, uow: MockType
    ) -> None:
        act_as("buyer")
        uow.memberships.list_active_for_user.return_value = [make_membership(make_group())]
        uow.rules.list_applicable.return_value = [
            B2BCategoryAccessRule(
                id=8, rule_scope="group", group_id=3, category_id="alcohol", access_type="deny"
            )
        ]

        result = await cell.check_category_access({"categoryId": "alcohol"})

        uow.rules.list_applicable.assert_awaited_once_with("t1", "alcohol", "buyer", [3])
        assert result["hasAccess"] is False
        assert result["restrictionReason"] == "Category access denied by group rule"
        assert result["appliedRuleId"] == 8

    async def test_create_rule(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("admin")
        uow.groups.get_by_id.return_value = make_group()
        uow.rules.create.side_effect = assign_id(8)

        result = await cell.create_category_access_rule(
            {
                "ruleScope": "group",
                "groupId": 3,
                "categoryId": "alcohol",
                "accessType": "deny",
                "priority": 9,
            }
        )

        assert result["ruleId"] == 8
        assert result["message"] == "Category access rule created for alcohol"

    async def test_rule_scope_must_match_target(self, cell: B2BAccessControlCell) -> None:
        act_as("admin")

        with pytest.raises(ValidationError, match="groupId"):
            await cell.create_category_access_rule(
                {"ruleScope": "group", "categoryId": "alcohol", "accessType": "deny"}
            )

    async def test_bulk(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("buyer")
        uow.memberships.list_active_for_user.return_value = [make_membership(make_group(3))]
        deny = B2BCategoryAccessRule(
            id=8, rule_scope="global", category_id="alcohol", access_type="deny"
        )

        async def rules_for(tenant_id: str, category_id: str, *_: Any) -> list[Any]:
            return [deny] if category_id == "alcohol" else []

        uow.rules.list_applicable.side_effect = rules_for

        result = await cell.get_bulk_category_access(
            {"categoryIds": ["alcohol", "books", "toys"]}
        )

        assert [entry["categoryId"] for entry in result["results"]] == [
            "alcohol",
            "books",
            "toys",
        ]
        assert result["summary"] == {"total": 3, "allowed": 2, "restricted": 1}
        uow.memberships.list_active_for_user.assert_awaited_once()
        assert [call.args for call in uow.rules.list_applicable.await_args_list] == [
            ("t1", "alcohol", "buyer", [3]),
            ("t1", "books", "buyer", [3]),
            ("t1", "toys", "buyer", [3]),
        ]

    async def test_bulk_empty(self, cell: B2BAccessControlCell) -> None:
        act_as("buyer")

        result = await cell.get_bulk_category_access({"categoryIds": []})

        assert result["results"] == []
        assert result["message"] == "No categories provided"

    async def test_bulk_limit(self, cell: B2BAccessControlCell) -> None:
        act_as("buyer")

        with pytest.raises(ValidationError, match="categoryIds"):
            await cell.get_bulk_category_access(
                {"categoryIds": [f"c{i}" for i in range(101)]}
            )


@pytest.mark.unit
class TestPriceVisibility:
    async def test_guest_default_settings(self, cell: B2BAccessControlCell) -> None:
        act_as(None)

        result = await cell.check_guest_price_access({"productId": "p1"})

        assert result["canViewPrice"] is True
        assert result["appliedRules"] == ["global_guest_settings"]

    async def test_guest_hidden_by_tenant(
        self, cell: B2BAccessControlCell, uow: MockType
    ) -> None:
        act_as(None)
        uow.settings.get_for_tenant.return_value = B2BGlobalSettings(
            tenant_id="t1",
            default_hide_from_guests=True,
            default_hide_price_text="Login",
            default_login_prompt_text="Sign up",
            default_guest_message="Call for pricing",
            default_currency="NGN",
            vat_rate=Decimal("0.075"),
            auto_approve_registrations=False,
            require_business_verification=True,
            minimum_order_for_b2b=Decimal(0),
        )

        result = await cell.check_guest_price_access({})

        assert result["canViewPrice"] is False
        assert result["loginRequired"] is True
        assert result["alternativeMessage"] == "Call for pricing"

    async def test_member_with_hidden_group(
        self, cell: B2BAccessControlCell, uow: MockType
    ) -> None:
        act_as("buyer")
        group = make_group(price_visibility="hidden")
        uow.memberships.list_active_for_user.return_value = [make_membership(group)]

        result = await cell.check_guest_price_access({"productId": "p1"})

        assert result["canViewPrice"] is False
        assert result["groupRequired"] is True

    async def test_member_category_denied(
        self, cell: B2BAccessControlCell, uow: MockType
    ) -> None:
        act_as("buyer")
        uow.rules.list_applicable.return_value = [
            B2BCategoryAccessRule(
                id=8, rule_scope="user", user_id="buyer", category_id="c", access_type="deny"
            )
        ]

        result = await cell.check_guest_price_access({"categoryId": "c"})

        assert result["canViewPrice"] is False
        assert result["canViewProduct"] is False
        assert "category_restriction" in result["appliedRules"]

    async def test_get_settings_defaults(self, cell: B2BAccessControlCell) -> None:
        act_as("admin")

        result = await cell.get_price_visibility_settings({})

        assert result["settings"]["defaultCurrency"] == "NGN"
        assert result["settings"]["vatRate"] == Decimal("0.075")
        assert result["settings"]["hidePriceText"] == "Login to view prices"

    async def test_update_creates_row(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        act_as("admin")

        result = await cell.update_price_visibility_settings(
            {"hideFromGuests": True, "minimumOrderForB2B": "50000"}
        )

        created: B2BGlobalSettings = uow.settings.create.await_args.args[0]
        assert created.tenant_id == "t1"
        assert created.default_hide_from_guests is True
        assert created.minimum_order_for_b2b == Decimal(50000)
        assert created.updated_by == "admin"
        assert result["settings"]["hidePriceText"] == "Login to view wholesale prices"
        assert result["settings"]["minimumOrderForB2B"] == Decimal(50000)

    async def test_update_existing_row(
        self, cell: B2BAccessControlCell, uow: MockType
    ) -> None:
        act_as("admin")
        stored = B2BGlobalSettings(tenant_id="t1", default_currency="NGN")
        uow.settings.get_for_tenant.return_value = stored

        await cell.update_price_visibility_settings({"defaultCurrency": "USD"})

        uow.settings.create.assert_not_awaited()
        assert stored.default_currency == "USD"

    async def test_update_rejects_bad_vat(self, cell: B2BAccessControlCell) -> None:
        act_as("admin")

        with pytest.raises(ValidationError, match="vatRate"):
            await cell.update_price_visibility_settings({"vatRate": "2"})


@pytest.mark.unit
class TestHealth:
    async def test_healthy(self, cell: B2BAccessControlCell) -> None:
        report = await cell.health()

        assert report["cellId"] == "ecommerce/B2BAccessControl"
        assert report["status"] == "healthy"
        assert len(report["endpoints"]) == 11
        assert report["metadata"]["requiredPermissions"]["createB2BGroup"] == (
            "b2b.groups.create"
        )

    async def test_degraded(self, cell: B2BAccessControlCell, uow: MockType) -> None:
        uow.ping.side_effect = OperationalError("SELECT 1", {}, Exception("down"))

        report = await cell.health()

        assert report["status"] == "degraded"
