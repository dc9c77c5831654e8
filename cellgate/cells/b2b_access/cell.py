"""``ecommerce/B2BAccessControl``: B2B groups, category rules and price visibility.

The caller's tenant, user and permissions come from the identity cell
through ``AuthClient``. Access decisions are emitted as audit log events
bound with ``audit=True``; they are not persisted.
"""

from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from datetime import UTC, date, datetime
from functools import partial
from typing import Any, Final

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cellgate.cells.b2b_access.models import (
    B2BCategoryAccessRule,
    B2BGlobalSettings,
    B2BGroupMembership,
    B2BUserGroup,
)
from cellgate.cells.b2b_access.policies import (
    anonymous_category_access,
    apply_category_restriction,
    evaluate_category_rules,
    group_permissions,
    guest_price_access,
    member_permissions,
    member_price_access,
)
from cellgate.cells.b2b_access.repository import B2BUnitOfWork, open_unit_of_work
from cellgate.cells.b2b_access.schemas import (
    AssignUserToGroupRequest,
    AssignUserToGroupResult,
    BulkAccessSummary,
    BulkCategoryAccessEntry,
    BulkCategoryAccessRequest,
    BulkCategoryAccessResult,
    CategoryAccessResult,
    CategoryAccessRuleResult,
    CheckCategoryAccessRequest,
    CheckGuestPriceAccessRequest,
    CheckUserB2BStatusRequest,
    CreateB2BGroupRequest,
    CreateB2BGroupResult,
    CreateCategoryAccessRuleRequest,
    GroupDetails,
    GroupInfo,
    GroupMember,
    GroupMembersRequest,
    GroupMembersResult,
    GroupSummary,
    ListB2BGroupsRequest,
    ListB2BGroupsResult,
    MembershipView,
    PriceVisibilitySettings,
    PriceVisibilitySettingsResult,
    PrimaryGroup,
    RemoveUserFromGroupRequest,
    RemoveUserFromGroupResult,
    UpdatePriceVisibilitySettingsRequest,
    UserB2BStatus,
)
from cellgate.core.config import TaxConfig
from cellgate.core.exceptions import ConflictError, NotFoundError
from cellgate.core.payloads import parse_payload
from cellgate.core.types import ActionHandler, Payload
from cellgate.gateway.auth_client import AuthClient
from cellgate.gateway.context import CellContext
from cellgate.gateway.destinations import Destination

type UnitOfWorkFactory = Callable[[], AbstractAsyncContextManager[B2BUnitOfWork]]

REQUIRED_PERMISSIONS: Final[dict[str, str]] = {
    "createB2BGroup": "b2b.groups.create",
    "listB2BGroups": "b2b.groups.view",
    "assignUserToB2BGroup": "b2b.memberships.create",
    "removeUserFromB2BGroup": "b2b.memberships.delete",
    "getB2BGroupMembers": "b2b.memberships.view",
    "createCategoryAccessRule": "b2b.rules.create",
    "getPriceVisibilitySettings": "b2b.settings.view",
    "updatePriceVisibilitySettings": "b2b.settings.update",
}


def _today() -> date:
    return datetime.now(UTC).date()


def _audit(event: str, tenant_id: str, **fields: Any) -> None:
    logger.bind(audit=True).info(
        "B2B audit {}: granted={}",
        event,
        fields.get("access_granted"),
        audit_event=event,
        tenant_id=tenant_id,
        **fields,
    )


class B2BAccessControlCell:
    """B2B group management and access checks.

    Args:
        context: Shared process resources.
        auth: Identity client; defaults to one over the context's router.
        unit_of_work: Opens repositories for one action; defaults to a
            committed session from the context's session factory.
    """

    destination = Destination.B2B_ACCESS_CONTROL

    def __init__(
        self,
        context: CellContext,
        auth: AuthClient | None = None,
        unit_of_work: UnitOfWorkFactory | None = None,
    ) -> None:
        self._tax_config: TaxConfig = context.settings.tax_config
        self._auth = auth or AuthClient(context.router)
        self._unit_of_work: UnitOfWorkFactory = unit_of_work or partial(
            open_unit_of_work, context.session_factory
        )

    def actions(self) -> Mapping[str, ActionHandler]:
        return {
            "createB2BGroup": self.create_b2b_group,
            "listB2BGroups": self.list_b2b_groups,
            "assignUserToB2BGroup": self.assign_user_to_b2b_group,
            "removeUserFromB2BGroup": self.remove_user_from_b2b_group,
            "getB2BGroupMembers": self.get_b2b_group_members,
            "checkUserB2BStatus": self.check_user_b2b_status,
            "createCategoryAccessRule": self.create_category_access_rule,
            "checkCategoryAccess": self.check_category_access,
            "getBulkCategoryAccess": self.get_bulk_category_access,
            "checkGuestPriceAccess": self.check_guest_price_access,
            "getPriceVisibilitySettings": self.get_price_visibility_settings,
            "updatePriceVisibilitySettings": self.update_price_visibility_settings,
        }

    async def _authorize(self, action: str) -> tuple[str, str]:
        """Return ``(tenant_id, user_id)`` if the caller may run ``action``."""
        return await self._auth.require_permission(action, REQUIRED_PERMISSIONS[action])

    async def _caller_id(self, explicit_user_id: str | None) -> str | None:
        if explicit_user_id is not None:
            return explicit_user_id
        user = await self._auth.get_current_user()
        return None if user is None else str(user["id"])

    # Groups

    async def create_b2b_group(self, payload: Payload) -> dict[str, Any]:
        tenant_id, user_id = await self._authorize("createB2BGroup")
        request = parse_payload(CreateB2BGroupRequest, payload)
        kind = request.group_type

        try:
            async with self._unit_of_work() as uow:
                if await uow.groups.find_by_name_or_code(
                    tenant_id, request.group_name, request.group_code
                ):
                    raise _duplicate_group(request)

                group = await uow.groups.create(
                    B2BUserGroup(
                        tenant_id=tenant_id,
                        group_name=request.group_name,
                        group_code=request.group_code,
                        description=request.description,
                        group_type=kind,
                        price_visibility=request.price_visibility,
                        hide_from_guests=request.hide_from_guests,
                        hide_price_text=request.hide_price_text
                        or f"Login to view {kind} prices",
                        login_prompt_text=request.login_prompt_text
                        or f"Access {kind} pricing",
                        guest_message=request.guest_message
                        or f"Contact us for {kind} rates in Nigerian Naira",
                        allowed_categories=request.allowed_categories,
                        restricted_categories=request.restricted_categories,
                        category_access_type=request.category_access_type,
                        currency_preference=request.currency_preference,
                        min_order_amount=request.min_order_amount,
                        credit_limit=request.credit_limit,
                        payment_terms_days=request.payment_terms_days,
                        requires_approval=request.requires_approval,
                        priority_level=request.priority_level,
                        created_by=user_id,
                    )
                )
        except IntegrityError as e:
            # A concurrent insert won the unique constraint
            raise _duplicate_group(request, cause=e) from e

        _audit("group.created", tenant_id, user_id=user_id, group_id=group.id)
        return CreateB2BGroupResult(
            group_id=group.id,
            group_details=GroupDetails(
                group_name=group.group_name,
                group_code=group.group_code,
                group_type=group.group_type,
                price_visibility=group.price_visibility,
                member_count=0,
                permissions=group_permissions(group.group_type),
            ),
            message=(
                f'B2B group "{group.group_name}" created successfully '
                f"with {group.currency_preference} pricing"
            ),
        ).to_payload()

    async def list_b2b_groups(self, payload: Payload) -> dict[str, Any]:
        tenant_id, _ = await self._authorize("listB2BGroups")
        request = parse_payload(ListB2BGroupsRequest, payload)

        async with self._unit_of_work() as uow:
            rows = await uow.groups.list_with_member_counts(
                tenant_id,
                group_type=request.group_type,
                status=request.status,
                limit=request.limit,
                offset=request.offset,
            )

        groups = [
            GroupSummary(
                id=group.id,
                group_name=group.group_name,
                group_code=group.group_code,
                description=group.description,
                group_type=group.group_type,
                price_visibility=group.price_visibility,
                member_count=member_count,
                status=group.status,
                priority_level=group.priority_level,
                created_at=group.created_at,
                updated_at=group.updated_at,
            )
            for group, member_count in rows
        ]
        return ListB2BGroupsResult(
            groups=groups, total=len(groups), message=f"Found {len(groups)} B2B group(s)"
        ).to_payload()

    # Memberships

    async def assign_user_to_b2b_group(self, payload: Payload) -> dict[str, Any]:
        """Add a user to a group, re-activating a revoked membership."""
        tenant_id, user_id = await self._authorize("assignUserToB2BGroup")
        request = parse_payload(AssignUserToGroupRequest, payload)

        async with self._unit_of_work() as uow:
            group = await uow.groups.get_by_id(tenant_id, request.group_id)
            if group is None:
                raise NotFoundError(
                    "B2B group not found", context={"group_id": request.group_id}
                )

            existing = await uow.memberships.find_member(
                tenant_id, request.user_id, request.group_id
            )
            if existing is not None and existing.membership_status == "active":
                raise ConflictError(
                    "User is already an active member of this group",
                    context={"group_id": request.group_id, "membership_id": existing.id},
                )

            status = "pending" if group.requires_approval else "active"
            effective_date = request.effective_date or _today()

            if existing is not None:
                membership = await uow.memberships.update(
                    existing,
                    {
                        "membership_status": status,
                        "membership_type": request.membership_type,
                        "effective_date": effective_date,
                        "expiry_date": request.expiry_date,
                    },
                )
            else:
                membership = await uow.memberships.create(
                    B2BGroupMembership(
                        tenant_id=tenant_id,
                        user_id=request.user_id,
                        group_id=group.id,
                        membership_status=status,
                        membership_type=request.membership_type,
                        effective_date=effective_date,
                        expiry_date=request.expiry_date,
                        auto_renewal=request.auto_renewal,
                        renewal_period_months=request.renewal_period_months,
                        discount_percentage=request.discount_percentage,
                        credit_limit_override=request.credit_limit_override,
                        sales_rep_id=request.sales_rep_id,
                        territory=request.territory,
                        business_registration=request.business_registration,
                        tax_identification=request.tax_identification,
                        created_by=user_id,
                    )
                )
            membership_id = membership.id
            group_name = group.group_name
            group_type = group.group_type

        granted = await self._auth.get_user_permissions(request.user_id, tenant_id)
        _audit(
            "membership.assigned",
            tenant_id,
            user_id=request.user_id,
            group_id=request.group_id,
            membership_status=status,
            assigned_by=user_id,
        )

        message = (
            f'User assigned to B2B group "{group_name}" - pending approval'
            if status == "pending"
            else f'User successfully assigned to B2B group "{group_name}"'
        )
        return AssignUserToGroupResult(
            membership_id=membership_id,
            membership_status=status,
            effective_permissions=member_permissions(granted, group_type),
            message=message,
        ).to_payload()

    async def remove_user_from_b2b_group(self, payload: Payload) -> dict[str, Any]:
        """Revoke a membership; the row is kept."""
        tenant_id, user_id = await self._authorize("removeUserFromB2BGroup")
        request = parse_payload(RemoveUserFromGroupRequest, payload)

        async with self._unit_of_work() as uow:
            membership = await uow.memberships.find_member(
                tenant_id, request.user_id, request.group_id
            )
            if membership is None or membership.membership_status == "revoked":
                raise NotFoundError(
                    "Membership not found or already revoked",
                    context={"group_id": request.group_id},
                )
            await uow.memberships.update(membership, {"membership_status": "revoked"})
            membership_id = membership.id

        _audit(
            "membership.revoked",
            tenant_id,
            user_id=request.user_id,
            group_id=request.group_id,
            revoked_by=user_id,
        )
        return RemoveUserFromGroupResult(
            membership_id=membership_id,
            message="User successfully removed from B2B group",
        ).to_payload()

    async def get_b2b_group_members(self, payload: Payload) -> dict[str, Any]:
        """List a group's memberships, newest first."""
        tenant_id, _ = await self._authorize("getB2BGroupMembers")
        request = parse_payload(GroupMembersRequest, payload)

        async with self._unit_of_work() as uow:
            group = await uow.groups.get_by_id(tenant_id, request.group_id)
            if group is None:
                raise NotFoundError(
                    "B2B group not found", context={"group_id": request.group_id}
                )
            memberships = await uow.memberships.list_for_group(
                tenant_id,
                group.id,
                status=request.status,
                limit=request.limit,
                offset=request.offset,
            )
            group_info = GroupInfo(group_name=group.group_name, group_type=group.group_type)

        members = [
            GroupMember(
                membership_id=m.id,
                user_id=m.user_id,
                membership_status=m.membership_status,
                membership_type=m.membership_type,
                effective_date=m.effective_date,
                expiry_date=m.expiry_date,
                discount_percentage=m.discount_percentage,
                territory=m.territory,
                business_registration=m.business_registration,
                tax_identification=m.tax_identification,
                created_at=m.created_at,
                updated_at=m.updated_at,
            )
            for m in memberships
        ]
        return GroupMembersResult(
            members=members,
            group_info=group_info,
            total=len(members),
            message=f"Found {len(members)} member(s) in group",
        ).to_payload()

    async def check_user_b2b_status(self, payload: Payload) -> dict[str, Any]:
        tenant_id = await self._auth.get_secure_tenant_id()
        request = parse_payload(CheckUserB2BStatusRequest, payload)
        target = await self._caller_id(request.user_id)

        if target is None:
            return UserB2BStatus(
                is_b2b_customer=False,
                groups=[],
                status="guest",
                message="User not authenticated",
            ).to_payload()

        async with self._unit_of_work() as uow:
            memberships = await uow.memberships.list_active_for_user(
                tenant_id, target, _today()
            )
            groups = [_membership_view(m) for m in memberships]
            primary = memberships[0].group if memberships else None
            primary_group = (
                PrimaryGroup(
                    group_name=primary.group_name,
                    group_type=primary.group_type,
                    price_visibility=primary.price_visibility,
                )
                if primary is not None
                else None
            )

        return UserB2BStatus(
            is_b2b_customer=bool(groups),
            groups=groups,
            status="b2b_customer" if groups else "regular_customer",
            primary_group=primary_group,
            message=(
                f"User has {len(groups)} active B2B group membership(s)"
                if groups
                else "User is not a B2B customer"
            ),
        ).to_payload()

    # Category rules

    async def create_category_access_rule(self, payload: Payload) -> dict[str, Any]:
        tenant_id, user_id = await self._authorize("createCategoryAccessRule")
        request = parse_payload(CreateCategoryAccessRuleRequest, payload)

        async with self._unit_of_work() as uow:
            if request.group_id is not None and (
                await uow.groups.get_by_id(tenant_id, request.group_id) is None
            ):
                raise NotFoundError(
                    "B2B group not found", context={"group_id": request.group_id}
                )

            rule = await uow.rules.create(
                B2BCategoryAccessRule(
                    tenant_id=tenant_id,
                    rule_scope=request.rule_scope,
                    group_id=request.group_id,
                    user_id=request.user_id,
                    category_id=request.category_id,
                    access_type=request.access_type,
                    minimum_order_value=request.minimum_order_value,
                    maximum_order_quantity=request.maximum_order_quantity,
                    requires_license=request.requires_license,
                    age_verification_required=request.age_verification_required,
                    priority=request.priority,
                    description=request.description,
                    created_by=user_id,
                )
            )

        _audit(
            "rule.created",
            tenant_id,
            rule_id=rule.id,
            category_id=rule.category_id,
            created_by=user_id,
        )
        return CategoryAccessRuleResult(
            rule_id=rule.id,
            rule_scope=rule.rule_scope,
            category_id=rule.category_id,
            access_type=rule.access_type,
            priority=rule.priority,
            message=f"Category access rule created for {rule.category_id}",
        ).to_payload()

    async def _member_group_ids(
        self, uow: B2BUnitOfWork, tenant_id: str, user_id: str
    ) -> list[int]:
        memberships = await uow.memberships.list_active_for_user(tenant_id, user_id, _today())
        return [m.group_id for m in memberships]

    async def _category_access(
        self,
        uow: B2BUnitOfWork,
        tenant_id: str,
        user_id: str,
        category_id: str,
        group_ids: list[int],
    ) -> CategoryAccessResult:
        rules = await uow.rules.list_applicable(tenant_id, category_id, user_id, group_ids)
        return evaluate_category_rules(rules)

    async def check_category_access(self, payload: Payload) -> dict[str, Any]:
        tenant_id = await self._auth.get_secure_tenant_id()
        request = parse_payload(CheckCategoryAccessRequest, payload)
        user_id = await self._caller_id(request.user_id)

        if user_id is None:
            result = anonymous_category_access()
        else:
            async with self._unit_of_work() as uow:
                group_ids = await self._member_group_ids(uow, tenant_id, user_id)
                result = await self._category_access(
                    uow, tenant_id, user_id, request.category_id, group_ids
                )

        _audit(
            "category.access_checked",
            tenant_id,
            user_id=user_id,
            resource_type="category",
            resource_id=request.category_id,
            access_granted=result.has_access,
            denial_reason=result.restriction_reason,
            applied_rule_id=result.applied_rule_id,
        )
        return result.to_payload()

    async def get_bulk_category_access(self, payload: Payload) -> dict[str, Any]:
        """``checkCategoryAccess`` for up to 100 categories at once."""
        tenant_id = await self._auth.get_secure_tenant_id()
        request = parse_payload(BulkCategoryAccessRequest, payload)
        user_id = await self._caller_id(request.user_id)

        results: list[BulkCategoryAccessEntry] = []
        if user_id is None:
            denied = anonymous_category_access()
            results = [
                BulkCategoryAccessEntry(category_id=category_id, **denied.model_dump())
                for category_id in request.category_ids
            ]
        elif request.category_ids:
            async with self._unit_of_work() as uow:
                group_ids = await self._member_group_ids(uow, tenant_id, user_id)
                for category_id in request.category_ids:
                    access = await self._category_access(
                        uow, tenant_id, user_id, category_id, group_ids
                    )
                    results.append(
                        BulkCategoryAccessEntry(category_id=category_id, **access.model_dump())
                    )

        allowed = sum(1 for entry in results if entry.has_access)
        _audit(
            "category.bulk_access_checked",
            tenant_id,
            user_id=user_id,
            resource_type="category",
            checked=len(results),
            allowed=allowed,
        )
        return BulkCategoryAccessResult(
            results=results,
            summary=BulkAccessSummary(
                total=len(results), allowed=allowed, restricted=len(results) - allowed
            ),
            message=(
                f"Checked access for {len(results)} categories"
                if results
                else "No categories provided"
            ),
        ).to_payload()

    # Price visibility

    async def check_guest_price_access(self, payload: Payload) -> dict[str, Any]:
        tenant_id = await self._auth.get_secure_tenant_id()
        request = parse_payload(CheckGuestPriceAccessRequest, payload)
        user_id = await self._caller_id(None)

        async with self._unit_of_work() as uow:
            if user_id is None:
                stored = await uow.settings.get_for_tenant(tenant_id)
                result = guest_price_access(self._settings_view(stored))
                primary_type = None
            else:
                memberships = await uow.memberships.list_active_for_user(
                    tenant_id, user_id, _today()
                )
                primary = memberships[0].group if memberships else None
                primary_type = primary.group_type if primary is not None else None
                result = member_price_access(primary)

                if request.category_id is not None:
                    rules = await uow.rules.list_applicable(
                        tenant_id,
                        request.category_id,
                        user_id,
                        [m.group_id for m in memberships],
                    )
                    result = apply_category_restriction(
                        result, evaluate_category_rules(rules)
                    )

        _audit(
            "price.access_checked",
            tenant_id,
            user_id=user_id,
            user_type="guest" if user_id is None else "member",
            resource_type="product" if request.product_id else "category",
            resource_id=request.product_id or request.category_id or "unknown",
            action_attempted=request.action,
            access_granted=result.can_view_price,
            denial_reason=result.restriction_reason,
            primary_group=primary_type,
        )
        return result.to_payload()

    async def get_price_visibility_settings(self, payload: Payload) -> dict[str, Any]:
        tenant_id, _ = await self._authorize("getPriceVisibilitySettings")

        async with self._unit_of_work() as uow:
            stored = await uow.settings.get_for_tenant(tenant_id)
            settings = self._settings_view(stored)

        return PriceVisibilitySettingsResult(
            settings=settings, message="B2B settings retrieved successfully"
        ).to_payload()

    async def update_price_visibility_settings(self, payload: Payload) -> dict[str, Any]:
        tenant_id, user_id = await self._authorize("updatePriceVisibilitySettings")
        request = parse_payload(UpdatePriceVisibilitySettingsRequest, payload)
        values = {
            "default_hide_from_guests": request.hide_from_guests,
            "default_hide_price_text": request.hide_price_text,
            "default_login_prompt_text": request.login_prompt_text,
            "default_guest_message": request.guest_message,
            "default_currency": request.default_currency,
            "vat_rate": request.vat_rate,
            "auto_approve_registrations": request.auto_approve_registrations,
            "require_business_verification": request.require_business_verification,
            "minimum_order_for_b2b": request.minimum_order_for_b2b,
            "updated_by": user_id,
        }

        async with self._unit_of_work() as uow:
            stored = await uow.settings.get_for_tenant(tenant_id)
            if stored is None:
                await uow.settings.create(B2BGlobalSettings(tenant_id=tenant_id, **values))
            else:
                await uow.settings.update(stored, values)

        _audit("settings.updated", tenant_id, updated_by=user_id)
        return PriceVisibilitySettingsResult(
            settings=PriceVisibilitySettings.model_validate(request.model_dump()),
            message="B2B price visibility settings updated successfully",
        ).to_payload()

    def _settings_view(self, stored: B2BGlobalSettings | None) -> PriceVisibilitySettings:
        if stored is None:
            return PriceVisibilitySettings(
                default_currency=self._tax_config.default_currency,
                vat_rate=self._tax_config.default_vat_rate,
            )
        return PriceVisibilitySettings(
            hide_from_guests=stored.default_hide_from_guests,
            hide_price_text=stored.default_hide_price_text,
            login_prompt_text=stored.default_login_prompt_text,
            guest_message=stored.default_guest_message,
            default_currency=stored.default_currency,
            vat_rate=stored.vat_rate,
            auto_approve_registrations=stored.auto_approve_registrations,
            require_business_verification=stored.require_business_verification,
            minimum_order_for_b2b=stored.minimum_order_for_b2b,
        )

    async def health(self) -> dict[str, Any]:
        try:
            async with self._unit_of_work() as uow:
                await uow.ping()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("B2B store unreachable: {}", type(e).__name__)
            healthy = False
        else:
            healthy = True

        return {
            "cellId": self.destination.value,
            "status": "healthy" if healthy else "degraded",
            "configurationSource": "database" if healthy else "fallback",
            "endpoints": sorted(self.actions()),
            "metadata": {
                "requiredPermissions": dict(sorted(REQUIRED_PERMISSIONS.items())),
                "defaultCurrency": self._tax_config.default_currency,
            },
            "timestamp": datetime.now(UTC).isoformat(),
        }


def _duplicate_group(
    request: CreateB2BGroupRequest, cause: Exception | None = None
) -> ConflictError:
    return ConflictError(
        "Group name or code already exists",
        context={"group_name": request.group_name, "group_code": request.group_code},
        cause=cause,
    )


def _membership_view(membership: B2BGroupMembership) -> MembershipView:
    group = membership.group
    return MembershipView(
        id=membership.id,
        group_id=membership.group_id,
        group_name=group.group_name,
        group_type=group.group_type,
        membership_status=membership.membership_status,
        membership_type=membership.membership_type,
        price_visibility=group.price_visibility,
        discount_percentage=membership.discount_percentage,
        territory=membership.territory,
        effective_date=membership.effective_date,
        expiry_date=membership.expiry_date,
    )
