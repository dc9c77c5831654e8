"""Payload and result models for the B2BAccessControl cell."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Self

from pydantic import Field, model_validator

from cellgate.core.payloads import CamelModel
from cellgate.infrastructure.database.repository import DEFAULT_PAGINATION_LIMIT

type GroupType = Literal[
    "wholesale", "retail", "vip", "employee", "guest", "distributor", "reseller"
]
type PriceVisibility = Literal["hidden", "visible", "partial", "request_quote"]
type CategoryAccessType = Literal["whitelist", "blacklist", "unrestricted"]
type Currency = Literal["NGN", "USD", "GBP"]
type MembershipType = Literal["regular", "trial", "premium", "lifetime"]
type MembershipStatus = Literal["active", "pending", "revoked"]
type RuleScope = Literal["group", "user", "global"]
type AccessType = Literal["allow", "deny", "request_approval"]
type AccessAction = Literal["view_price", "view_product", "add_to_cart", "purchase"]
type RestrictionLevel = Literal["none", "partial", "full"]

UserId = Annotated[str, Field(min_length=1, max_length=64)]
CategoryId = Annotated[str, Field(min_length=1, max_length=64)]


# Groups


class CreateB2BGroupRequest(CamelModel):
    group_name: str = Field(..., min_length=2, max_length=100)
    group_code: str = Field(..., min_length=2, max_length=50, pattern=r"^[A-Z0-9_]+$")
    description: str | None = None
    group_type: GroupType
    price_visibility: PriceVisibility
    hide_from_guests: bool = False
    hide_price_text: str | None = Field(default=None, max_length=200)
    login_prompt_text: str | None = Field(default=None, max_length=200)
    guest_message: str | None = Field(default=None, max_length=500)
    allowed_categories: list[CategoryId] = Field(default_factory=list)
    restricted_categories: list[CategoryId] = Field(default_factory=list)
    category_access_type: CategoryAccessType = "unrestricted"
    currency_preference: Currency = "NGN"
    min_order_amount: Decimal = Field(default=Decimal(0), ge=0)
    credit_limit: Decimal = Field(default=Decimal(0), ge=0)
    payment_terms_days: int = Field(default=30, ge=0)
    requires_approval: bool = False
    priority_level: int = Field(default=5, ge=1, le=10)


class GroupDetails(CamelModel):
    group_name: str
    group_code: str
    group_type: str
    price_visibility: str
    member_count: int
    permissions: list[str]


class CreateB2BGroupResult(CamelModel):
    group_id: int
    group_details: GroupDetails
    message: str


class ListB2BGroupsRequest(CamelModel):
    group_type: GroupType | None = None
    status: str | None = Field(default=None, max_length=20)
    limit: int = Field(default=DEFAULT_PAGINATION_LIMIT, ge=1, le=DEFAULT_PAGINATION_LIMIT)
    offset: int = Field(default=0, ge=0)


class GroupSummary(CamelModel):
    id: int
    group_name: str
    group_code: str
    description: str | None
    group_type: str
    price_visibility: str
    member_count: int
    status: str
    priority_level: int
    created_at: datetime
    updated_at: datetime


class ListB2BGroupsResult(CamelModel):
    groups: list[GroupSummary]
    total: int
    message: str


# Memberships


class AssignUserToGroupRequest(CamelModel):
    user_id: UserId
    group_id: int = Field(..., ge=1)
    membership_type: MembershipType = "regular"
    effective_date: date | None = None
    expiry_date: date | None = None
    auto_renewal: bool = True
    renewal_period_months: int = Field(default=12, ge=1)
    discount_percentage: Decimal = Field(default=Decimal(0), ge=0, le=100)
    credit_limit_override: Decimal | None = Field(default=None, ge=0)
    sales_rep_id: UserId | None = None
    territory: str | None = Field(default=None, max_length=100)
    business_registration: str | None = Field(default=None, max_length=100)
    tax_identification: str | None = Field(default=None, max_length=50)

    @model_validator(mode="after")
    def expiry_after_effective(self) -> Self:
        if (
            self.effective_date is not None
            and self.expiry_date is not None
            and self.expiry_date < self.effective_date
        ):
            msg = "expiryDate must not be before effectiveDate"
            raise ValueError(msg)
        return self


class AssignUserToGroupResult(CamelModel):
    membership_id: int
    membership_status: Literal["active", "pending"]
    effective_permissions: list[str]
    message: str


class RemoveUserFromGroupRequest(CamelModel):
    user_id: UserId
    group_id: int = Field(..., ge=1)


class RemoveUserFromGroupResult(CamelModel):
    membership_id: int
    message: str


class GroupMembersRequest(CamelModel):
    group_id: int = Field(..., ge=1)
    status: MembershipStatus | None = None
    limit: int = Field(default=DEFAULT_PAGINATION_LIMIT, ge=1, le=DEFAULT_PAGINATION_LIMIT)
    offset: int = Field(default=0, ge=0)


class GroupMember(CamelModel):
    """One membership row; user profile fields belong to the identity service."""

    membership_id: int
    user_id: str
    membership_status: str
    membership_type: str
    effective_date: date
    expiry_date: date | None
    discount_percentage: Decimal
    territory: str | None
    business_registration: str | None
    tax_identification: str | None
    created_at: datetime
    updated_at: datetime


class GroupInfo(CamelModel):
    group_name: str
    group_type: str


class GroupMembersResult(CamelModel):
    members: list[GroupMember]
    group_info: GroupInfo
    total: int
    message: str


class CheckUserB2BStatusRequest(CamelModel):
    user_id: UserId | None = None


class MembershipView(CamelModel):
    id: int
    group_id: int
    group_name: str
    group_type: str
    membership_status: str
    membership_type: str
    price_visibility: str
    discount_percentage: Decimal
    territory: str | None
    effective_date: date
    expiry_date: date | None


class PrimaryGroup(CamelModel):
    group_name: str
    group_type: str
    price_visibility: str


class UserB2BStatus(CamelModel):
    is_b2b_customer: bool
    groups: list[MembershipView]
    status: Literal["guest", "regular_customer", "b2b_customer"]
    primary_group: PrimaryGroup | None = None
    message: str


# Category rules


class CreateCategoryAccessRuleRequest(CamelModel):
    rule_scope: RuleScope
    group_id: int | None = Field(default=None, ge=1)
    user_id: UserId | None = None
    category_id: CategoryId
    access_type: AccessType
    minimum_order_value: Decimal = Field(default=Decimal(0), ge=0)
    maximum_order_quantity: int | None = Field(default=None, ge=1)
    requires_license: bool = False
    age_verification_required: bool = False
    priority: int = Field(default=5, ge=1, le=10)
    description: str | None = None

    @model_validator(mode="after")
    def target_matches_scope(self) -> Self:
        if self.rule_scope == "group" and (self.group_id is None or self.user_id):
            msg = "group rules need groupId and no userId"
            raise ValueError(msg)
        if self.rule_scope == "user" and (self.user_id is None or self.group_id):
            msg = "user rules need userId and no groupId"
            raise ValueError(msg)
        if self.rule_scope == "global" and (self.user_id or self.group_id):
            msg = "global rules take neither groupId nor userId"
            raise ValueError(msg)
        return self


class CategoryAccessRuleResult(CamelModel):
    rule_id: int
    rule_scope: str
    category_id: str
    access_type: str
    priority: int
    message: str


class CheckCategoryAccessRequest(CamelModel):
    category_id: CategoryId
    user_id: UserId | None = None


class CategoryAccessResult(CamelModel):
    has_access: bool
    restriction_level: RestrictionLevel
    restriction_reason: str | None = None
    allowed_actions: list[str]
    required_approvals: list[str] = Field(default_factory=list)
    applied_rule_id: int | None = None


class BulkCategoryAccessRequest(CamelModel):
    category_ids: list[CategoryId] = Field(..., max_length=100)
    user_id: UserId | None = None


class BulkCategoryAccessEntry(CategoryAccessResult):
    category_id: str


class BulkAccessSummary(CamelModel):
    total: int
    allowed: int
    restricted: int


class BulkCategoryAccessResult(CamelModel):
    results: list[BulkCategoryAccessEntry]
    summary: BulkAccessSummary
    message: str


# Price visibility


class CheckGuestPriceAccessRequest(CamelModel):
    product_id: str | None = Field(default=None, max_length=64)
    category_id: CategoryId | None = None
    action: AccessAction = "view_price"


class PriceAccessResult(CamelModel):
    can_view_price: bool
    can_view_product: bool
    restriction_reason: str | None = None
    alternative_message: str | None = None
    login_required: bool
    group_required: bool
    applied_rules: list[str]


class PriceVisibilitySettings(CamelModel):
    """Tenant price visibility settings, defaulted when none are stored."""

    hide_from_guests: bool = False
    hide_price_text: str = Field(default="Login to view prices", max_length=200)
    login_prompt_text: str = Field(
        default="Create account for pricing access", max_length=200
    )
    guest_message: str = Field(default="Contact us for wholesale pricing", max_length=500)
    default_currency: Currency = "NGN"
    vat_rate: Decimal = Field(default=Decimal("0.075"), ge=0, le=1)
    auto_approve_registrations: bool = False
    require_business_verification: bool = True
    minimum_order_for_b2b: Decimal = Field(
        default=Decimal(0), ge=0, alias="minimumOrderForB2B"
    )


class UpdatePriceVisibilitySettingsRequest(PriceVisibilitySettings):
    hide_price_text: str = Field(default="Login to view wholesale prices", max_length=200)
    login_prompt_text: str = Field(
        default="Create account for business pricing", max_length=200
    )
    guest_message: str = Field(
        default="Contact us for B2B rates in Nigerian Naira", max_length=500
    )


class PriceVisibilitySettingsResult(CamelModel):
    settings: PriceVisibilitySettings
    message: str
