"""Async PostgreSQL access shared by all cells.

- **base**: Declarative base and tenant-scoped model fields
- **session**: Engine, session factory and unit-of-work scope
- **repository**: Generic tenant-scoped repository
"""

from cellgate.infrastructure.database.base import Base, BaseModel, TenantScopedModel
from cellgate.infrastructure.database.repository import BaseRepository
from cellgate.infrastructure.database.session import (
    check_database_connection,
    create_database_engine,
    create_session_factory,
    session_scope,
)

__all__ = [
    "Base",
    "BaseModel",
    "BaseRepository",
    "TenantScopedModel",
    "check_database_connection",
    "create_database_engine",
    "create_session_factory",
    "session_scope",
]
