"""Access decisions for B2B groups, category rules and price visibility.

These functions take rows that were already loaded and ordered by the
repositories and return result models; they do no I/O.
"""

from collections.abc import Iterable, Sequence
from typing import Final

from cellgate.cells.b2b_access.models import B2BCategoryAccessRule, B2BUserGroup
from cellgate.cells.b2b_access.schemas import (
    CategoryAccessResult,
    PriceAccessResult,
    PriceVisibilitySettings,
)

ALL_ACTIONS: Final = ("view_product", "view_price", "add_to_cart", "purchase")
VIEW_ACTIONS: Final = ("view_product", "view_price")

# Every B2B group can browse and order
BASE_GROUP_PERMISSIONS: Final = ("products.view", "orders.create", "orders.view")

GROUP_TYPE_PERMISSIONS: Final[dict[str, tuple[str, ...]]] = {
    "wholesale": ("b2b.prices.view", "b2b.bulk.order", "quotes.request"),
    "retail": ("products.purchase",),
    "vip": ("b2b.prices.view", "products.early_access", "events.exclusive"),
    "distributor": ("b2b.prices.view", "b2b.bulk.order", "b2b.territory.manage"),
    "employee": ("b2b.prices.view", "products.internal_pricing", "inventory.view"),
}

# Grants a member picks up on top of their own permissions
MEMBER_TYPE_PERMISSIONS: Final[dict[str, tuple[str, ...]]] = {
    "wholesale": ("b2b.prices.view", "b2b.bulk.order", "quotes.request"),
    "vip": ("b2b.prices.view", "b2b.bulk.order", "products.early_access"),
    "distributor": ("b2b.prices.view", "b2b.bulk.order", "b2b.territory.manage"),
    "employee": ("b2b.prices.view", "products.internal_pricing"),
}

VISIBLE_PRICE_MODES: Final = frozenset({"visible", "partial"})


def _unique(permissions: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(permissions))


def group_permissions(group_type: str) -> list[str]:
    """Permissions a group of ``group_type`` confers."""
    return _unique((*BASE_GROUP_PERMISSIONS, *GROUP_TYPE_PERMISSIONS.get(group_type, ())))


def member_permissions(user_permissions: Iterable[str], group_type: str) -> list[str]:
    """A member's own grants followed by those of their group's type."""
    return _unique((*user_permissions, *MEMBER_TYPE_PERMISSIONS.get(group_type, ())))


def rule_kind(rule: B2BCategoryAccessRule) -> str:
    if rule.user_id is not None:
        return "user"
    if rule.group_id is not None:
        return "group"
    return "global"


def evaluate_category_rules(rules: Sequence[B2BCategoryAccessRule]) -> CategoryAccessResult:
    """Decide category access from rules ordered strongest first.

    Only the first rule counts. Without any rule access is unrestricted.
    """
    if not rules:
        return CategoryAccessResult(
            has_access=True,
            restriction_level="none",
            allowed_actions=list(ALL_ACTIONS),
        )

    rule = rules[0]
    if rule.access_type == "deny":
        return CategoryAccessResult(
            has_access=False,
            restriction_level="full",
            restriction_reason=f"Category access denied by {rule_kind(rule)} rule",
            allowed_actions=[],
            applied_rule_id=rule.id,
        )
    if rule.access_type == "request_approval":
        return CategoryAccessResult(
            has_access=True,
            restriction_level="partial",
            restriction_reason="Purchase requires approval for this category",
            allowed_actions=list(VIEW_ACTIONS),
            required_approvals=["purchase_approval"],
            applied_rule_id=rule.id,
        )
    return CategoryAccessResult(
        has_access=True,
        restriction_level="none",
        allowed_actions=list(ALL_ACTIONS),
        applied_rule_id=rule.id,
    )


def anonymous_category_access() -> CategoryAccessResult:
    return CategoryAccessResult(
        has_access=False,
        restriction_level="full",
        restriction_reason="Authentication required for category access",
        allowed_actions=[],
    )


def guest_price_access(settings: PriceVisibilitySettings) -> PriceAccessResult:
    """Guests see prices unless the tenant hides them."""
    hidden = settings.hide_from_guests
    return PriceAccessResult(
        can_view_price=not hidden,
        can_view_product=True,
        login_required=hidden,
        group_required=False,
        applied_rules=["global_guest_settings"],
        restriction_reason="Prices hidden from guests" if hidden else None,
        alternative_message=settings.guest_message if hidden else None,
    )


def member_price_access(primary_group: B2BUserGroup | None) -> PriceAccessResult:
    """Signed-in users follow their highest-priority group, if any."""
    if primary_group is None:
        return PriceAccessResult(
            can_view_price=True,
            can_view_product=True,
            login_required=False,
            group_required=False,
            applied_rules=["default_customer"],
        )

    visible = primary_group.price_visibility in VISIBLE_PRICE_MODES
    return PriceAccessResult(
        can_view_price=visible,
        can_view_product=True,
        login_required=False,
        group_required=not visible,
        applied_rules=[f"group_{primary_group.id}"],
        restriction_reason=(
            None
            if visible
            else f"Price visibility restricted for {primary_group.group_type} group"
        ),
        alternative_message=None if visible else primary_group.hide_price_text,
    )


def apply_category_restriction(
    result: PriceAccessResult, category_access: CategoryAccessResult
) -> PriceAccessResult:
    """Hide prices, and the product too on a full restriction, when denied."""
    if category_access.has_access:
        return result
    return result.model_copy(
        update={
            "can_view_price": False,
            "can_view_product": category_access.restriction_level != "full",
            "restriction_reason": category_access.restriction_reason,
            "applied_rules": [*result.applied_rules, "category_restriction"],
        }
    )
