"""Unit tests for B2B access decisions."""

from decimal import Decimal

import pytest

from cellgate.cells.b2b_access.models import B2BCategoryAccessRule, B2BUserGroup
from cellgate.cells.b2b_access.policies import (
    ALL_ACTIONS,
    VIEW_ACTIONS,
    anonymous_category_access,
    apply_category_restriction,
    evaluate_category_rules,
    group_permissions,
    guest_price_access,
    member_permissions,
    member_price_access,
    rule_kind,
)
from cellgate.cells.b2b_access.schemas import PriceVisibilitySettings


def make_rule(
    rule_id: int,
    access_type: str,
    *,
    user_id: str | None = None,
    group_id: int | None = None,
) -> B2BCategoryAccessRule:
    scope = "user" if user_id else "group" if group_id else "global"
    return B2BCategoryAccessRule(
        id=rule_id,
        tenant_id="t1",
        rule_scope=scope,
        user_id=user_id,
        group_id=group_id,
        category_id="electronics",
        access_type=access_type,
        priority=5,
    )


def make_group(group_type: str, price_visibility: str) -> B2BUserGroup:
    return B2BUserGroup(
        id=3,
        tenant_id="t1",
        group_name="Lagos Wholesalers",
        group_code="LAGOS_WHOLESALE",
        group_type=group_type,
        price_visibility=price_visibility,
        hide_price_text="Login to view wholesale prices",
        priority_level=5,
    )


@pytest.mark.unit
class TestPermissions:
    def test_group_permissions_start_with_base_set(self) -> None:
        permissions = group_permissions("wholesale")

        assert permissions[:3] == ["products.view", "orders.create", "orders.view"]
        assert "b2b.bulk.order" in permissions

    def test_unknown_group_type_gets_base_set(self) -> None:
        assert group_permissions("guest") == ["products.view", "orders.create", "orders.view"]

    def test_member_permissions_are_deduplicated_in_order(self) -> None:
        permissions = member_permissions(["orders.view", "b2b.prices.view"], "vip")

        assert permissions == [
            "orders.view",
            "b2b.prices.view",
            "b2b.bulk.order",
            "products.early_access",
        ]

    def test_member_of_retail_group_keeps_own_grants(self) -> None:
        assert member_permissions(["orders.view"], "retail") == ["orders.view"]


@pytest.mark.unit
class TestCategoryRules:
    def test_no_rules_is_unrestricted(self) -> None:
        result = evaluate_category_rules([])

        assert result.has_access
        assert result.restriction_level == "none"
        assert result.allowed_actions == list(ALL_ACTIONS)
        assert result.applied_rule_id is None

    @pytest.mark.parametrize(
        ("rule", "kind"),
        [
            (make_rule(1, "deny", user_id="u1"), "user"),
            (make_rule(2, "deny", group_id=3), "group"),
            (make_rule(3, "deny"), "global"),
        ],
    )
    def test_deny_names_rule_kind(self, rule: B2BCategoryAccessRule, kind: str) -> None:
        result = evaluate_category_rules([rule])

        assert rule_kind(rule) == kind
        assert not result.has_access
        assert result.restriction_level == "full"
        assert result.restriction_reason == f"Category access denied by {kind} rule"
        assert result.allowed_actions == []
        assert result.applied_rule_id == rule.id

    def test_request_approval(self) -> None:
        result = evaluate_category_rules([make_rule(4, "request_approval", group_id=3)])

        assert result.has_access
        assert result.restriction_level == "partial"
        assert result.allowed_actions == list(VIEW_ACTIONS)
        assert result.required_approvals == ["purchase_approval"]

    def test_only_first_rule_counts(self) -> None:
        rules = [make_rule(5, "allow", user_id="u1"), make_rule(6, "deny")]

        result = evaluate_category_rules(rules)

        assert result.has_access
        assert result.applied_rule_id == 5

    def test_anonymous(self) -> None:
        result = anonymous_category_access()

        assert not result.has_access
        assert result.restriction_reason == "Authentication required for category access"


@pytest.mark.unit
class TestPriceAccess:
    def test_guest_sees_prices_by_default(self) -> None:
        result = guest_price_access(PriceVisibilitySettings())

        assert result.can_view_price
        assert not result.login_required
        assert result.applied_rules == ["global_guest_settings"]
        assert result.alternative_message is None

    def test_guest_when_hidden(self) -> None:
        settings = PriceVisibilitySettings(hide_from_guests=True, guest_message="Call us")

        result = guest_price_access(settings)

        assert not result.can_view_price
        assert result.can_view_product
        assert result.login_required
        assert result.alternative_message == "Call us"

    def test_member_without_group(self) -> None:
        result = member_price_access(None)

        assert result.can_view_price
        assert result.applied_rules == ["default_customer"]

    @pytest.mark.parametrize(
        ("visibility", "visible"),
        [("visible", True), ("partial", True), ("hidden", False), ("request_quote", False)],
    )
    def test_member_follows_primary_group(self, visibility: str, visible: bool) -> None:
        result = member_price_access(make_group("wholesale", visibility))

        assert result.can_view_price is visible
        assert result.group_required is not visible
        assert result.applied_rules == ["group_3"]
        if not visible:
            assert result.alternative_message == "Login to view wholesale prices"
            assert result.restriction_reason == (
                "Price visibility restricted for wholesale group"
            )

    def test_category_denial_hides_product(self) -> None:
        price = member_price_access(make_group("vip", "visible"))
        denied = evaluate_category_rules([make_rule(9, "deny")])

        result = apply_category_restriction(price, denied)

        assert not result.can_view_price
        assert not result.can_view_product
        assert result.applied_rules == ["group_3", "category_restriction"]
        assert result.restriction_reason == "Category access denied by global rule"

    def test_category_approval_leaves_price_alone(self) -> None:
        price = member_price_access(None)
        partial = evaluate_category_rules([make_rule(9, "request_approval")])

        assert apply_category_restriction(price, partial) == price

    def test_settings_defaults_match_tax_defaults(self) -> None:
        settings = PriceVisibilitySettings()

        assert settings.vat_rate == Decimal("0.075")
        assert settings.to_payload()["minimumOrderForB2B"] == Decimal(0)
