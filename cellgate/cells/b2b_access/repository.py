"""Tenant-scoped queries over the B2B tables.

``B2BUnitOfWork`` bundles one repository per table over a single session,
so an action's reads and writes commit or roll back together.
"""

from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import date

from sqlalchemy import and_, func, or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import contains_eager

from cellgate.cells.b2b_access.models import (
    B2BCategoryAccessRule,
    B2BGlobalSettings,
    B2BGroupMembership,
    B2BUserGroup,
)
from cellgate.infrastructure.database.repository import BaseRepository
from cellgate.infrastructure.database.session import session_scope


class GroupRepository(BaseRepository[B2BUserGroup]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, B2BUserGroup)

    async def find_by_name_or_code(
        self, tenant_id: str, group_name: str, group_code: str
    ) -> B2BUserGroup | None:
        stmt = (
            select(B2BUserGroup)
            .where(
                B2BUserGroup.tenant_id == tenant_id,
                or_(
                    B2BUserGroup.group_name == group_name,
                    B2BUserGroup.group_code == group_code,
                ),
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_with_member_counts(
        self,
        tenant_id: str,
        *,
        group_type: str | None = None,
        status: str | None = None,
        limit: int,
        offset: int = 0,
    ) -> list[tuple[B2BUserGroup, int]]:
        """Groups by descending priority, then creation, with active member counts."""
        stmt = (
            select(B2BUserGroup, func.count(B2BGroupMembership.id))
            .outerjoin(
                B2BGroupMembership,
                and_(
                    B2BGroupMembership.group_id == B2BUserGroup.id,
                    B2BGroupMembership.membership_status == "active",
                ),
            )
            .where(B2BUserGroup.tenant_id == tenant_id)
        )
        if group_type is not None:
            stmt = stmt.where(B2BUserGroup.group_type == group_type)
        if status is not None:
            stmt = stmt.where(B2BUserGroup.status == status)

        stmt = (
            stmt.group_by(B2BUserGroup.id)
            .order_by(
                B2BUserGroup.priority_level.desc(),
                B2BUserGroup.created_at,
                B2BUserGroup.id,
            )
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return [(group, count) for group, count in result.tuples().all()]


class MembershipRepository(BaseRepository[B2BGroupMembership]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, B2BGroupMembership)

    async def find_member(
        self, tenant_id: str, user_id: str, group_id: int
    ) -> B2BGroupMembership | None:
        return await self.find_one_by(tenant_id, user_id=user_id, group_id=group_id)

    async def list_active_for_user(
        self, tenant_id: str, user_id: str, today: date
    ) -> list[B2BGroupMembership]:
        """Active, unexpired memberships, highest group priority first."""
        stmt = (
            select(B2BGroupMembership)
            .join(B2BGroupMembership.group)
            .options(contains_eager(B2BGroupMembership.group))
            .where(
                B2BGroupMembership.tenant_id == tenant_id,
                B2BGroupMembership.user_id == user_id,
                B2BGroupMembership.membership_status == "active",
                or_(
                    B2BGroupMembership.expiry_date.is_(None),
                    B2BGroupMembership.expiry_date >= today,
                ),
                B2BUserGroup.tenant_id == tenant_id,
            )
            .order_by(
                B2BUserGroup.priority_level.desc(),
                B2BGroupMembership.created_at,
                B2BGroupMembership.id,
            )
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().unique().all())

    async def list_for_group(
        self,
        tenant_id: str,
        group_id: int,
        *,
        status: str | None = None,
        limit: int,
        offset: int = 0,
    ) -> list[B2BGroupMembership]:
        """A group's memberships, newest first."""
        stmt = select(B2BGroupMembership).where(
            B2BGroupMembership.tenant_id == tenant_id,
            B2BGroupMembership.group_id == group_id,
        )
        if status is not None:
            stmt = stmt.where(B2BGroupMembership.membership_status == status)

        stmt = (
            stmt.order_by(B2BGroupMembership.created_at.desc(), B2BGroupMembership.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().unique().all())


class AccessRuleRepository(BaseRepository[B2BCategoryAccessRule]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, B2BCategoryAccessRule)

    async def list_applicable(
        self,
        tenant_id: str,
        category_id: str,
        user_id: str,
        group_ids: Sequence[int],
    ) -> list[B2BCategoryAccessRule]:
        """Rules for the user, their groups or everyone; strongest first.

        Ties on priority go to the older rule.
        """
        applies = [
            B2BCategoryAccessRule.rule_scope == "global",
            and_(
                B2BCategoryAccessRule.rule_scope == "user",
                B2BCategoryAccessRule.user_id == user_id,
            ),
        ]
        if group_ids:
            applies.append(
                and_(
                    B2BCategoryAccessRule.rule_scope == "group",
                    B2BCategoryAccessRule.group_id.in_(group_ids),
                )
            )

        stmt = (
            select(B2BCategoryAccessRule)
            .where(
                B2BCategoryAccessRule.tenant_id == tenant_id,
                B2BCategoryAccessRule.category_id == category_id,
                or_(*applies),
            )
            .order_by(
                B2BCategoryAccessRule.priority.desc(),
                B2BCategoryAccessRule.created_at,
                B2BCategoryAccessRule.id,
            )
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class SettingsRepository(BaseRepository[B2BGlobalSettings]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, B2BGlobalSettings)

    async def get_for_tenant(self, tenant_id: str) -> B2BGlobalSettings | None:
        return await self.find_one_by(tenant_id)


class B2BUnitOfWork:
    """Repositories for one action, sharing ``session``."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.groups = GroupRepository(session)
        self.memberships = MembershipRepository(session)
        self.rules = AccessRuleRepository(session)
        self.settings = SettingsRepository(session)

    async def ping(self) -> None:
        await self.session.execute(text("SELECT 1"))


@asynccontextmanager
async def open_unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[B2BUnitOfWork]:
    """Yield a unit of work that commits on success and rolls back on error."""
    async with session_scope(session_factory) as session:
        yield B2BUnitOfWork(session)
