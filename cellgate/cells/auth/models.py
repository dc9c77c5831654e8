"""Permission grants held by the in-process identity service."""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cellgate.infrastructure.database.base import TenantScopedModel


class UserPermissionGrant(TenantScopedModel):
    """A single permission granted to a user within a tenant.

    ``permission`` is a dotted name such as ``b2b.groups.create``. A grant
    ending in ``.*`` covers every permission under that prefix and ``*``
    covers everything.
    """

    __tablename__ = "user_permission_grants"
    __table_args__ = (UniqueConstraint("tenant_id", "user_id", "permission"),)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    permission: Mapped[str] = mapped_column(String(100), nullable=False)
