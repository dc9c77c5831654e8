"""Cell Gateway - multi-tenant commerce backend built from routed cells.

Cells are self-contained units of business logic (tax and fee calculation,
B2B access control, identity) that never import each other. Every
cross-cell call goes through the gateway router, which resolves a
``sector/name`` destination and an action to a registered handler.

Architecture Overview:
- **API Layer**: FastAPI routes exposing cell actions and cell health
- **Gateway Layer**: Typed destination registry and call router
- **Cells**: Tax and fee, B2B access control, identity collaborator
- **Core Layer**: Configuration, logging, tracing, exceptions
- **Infrastructure Layer**: Async PostgreSQL access and the configuration cache

Resources with a process lifetime (database engine, session factory, cache,
router) are created by the application lifespan and handed to every cell
through an explicit ``CellContext``.
"""
