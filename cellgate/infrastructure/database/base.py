"""SQLAlchemy declarative base shared by every cell's tables.

Cells own their tables but not the metadata: all models hang off one
``Base`` so a single engine can serve every cell and constraint names stay
predictable across them.

``BaseModel`` adds the columns every row carries:
- **BigInteger ID**: auto-incrementing surrogate key
- **Timezone-aware timestamps**: ``created_at`` and ``updated_at`` in UTC
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base with constraint naming conventions."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class BaseModel(Base):
    """Abstract model with an ID and creation/update timestamps."""

    __abstract__ = True

    id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=True,
        doc="Primary key with auto-incrementing BigInteger ID",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Timestamp when the record was created (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        doc="Timestamp when the record was last updated (UTC)",
    )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"


class TenantScopedModel(BaseModel):
    """Abstract model for rows owned by a tenant."""

    __abstract__ = True

    tenant_id: Mapped[str] = mapped_column(
        String(64),
        index=True,
        nullable=False,
        doc="Tenant that owns the row",
    )
