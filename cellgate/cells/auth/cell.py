"""``auth/AuthenticationCore``: in-process identity service.

The caller's tenant and user come from the identity headers recorded in
``RequestContext``; permissions come from stored grants. Other cells reach
this one through ``AuthClient`` and never import it.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from cellgate.cells.auth.schemas import CheckPermissionRequest, UserPermissionsRequest
from cellgate.cells.auth.store import PermissionStore, SqlPermissionStore, grant_covers
from cellgate.core.context import RequestContext
from cellgate.core.exceptions import StoreUnavailableError
from cellgate.core.payloads import parse_payload
from cellgate.core.types import ActionHandler, Payload
from cellgate.gateway.context import CellContext
from cellgate.gateway.destinations import Destination


class AuthenticationCoreCell:
    """Identity lookups for the current request.

    Args:
        context: Shared process resources.
        store: Permission grant store; defaults to the SQL store.
    """

    destination = Destination.AUTHENTICATION_CORE

    def __init__(self, context: CellContext, store: PermissionStore | None = None) -> None:
        self._store = store or SqlPermissionStore(context.session_factory)

    def actions(self) -> Mapping[str, ActionHandler]:
        return {
            "getCurrentTenant": self.get_current_tenant,
            "getCurrentUser": self.get_current_user,
            "checkPermission": self.check_permission,
            "getUserPermissions": self.get_user_permissions,
        }

    async def get_current_tenant(self, payload: Payload) -> dict[str, Any]:
        return {"tenantId": RequestContext.get_tenant_id()}

    async def get_current_user(self, payload: Payload) -> dict[str, Any]:
        user_id = RequestContext.get_user_id()
        if user_id is None:
            return {"user": None}
        return {"user": {"id": user_id, "tenantId": RequestContext.get_tenant_id()}}

    async def check_permission(self, payload: Payload) -> dict[str, Any]:
        request = parse_payload(CheckPermissionRequest, payload)
        grants = await self._store.list_permissions(request.tenant_id, request.user_id)
        allowed = any(grant_covers(grant, request.permission) for grant in grants)

        if not allowed:
            logger.info(
                "Permission {} denied for user {}",
                request.permission,
                request.user_id,
                tenant_id=request.tenant_id,
            )
        return {"hasPermission": allowed}

    async def get_user_permissions(self, payload: Payload) -> dict[str, Any]:
        request = parse_payload(UserPermissionsRequest, payload)
        grants = await self._store.list_permissions(request.tenant_id, request.user_id)
        return {"permissions": grants}

    async def health(self) -> dict[str, Any]:
        try:
            await self._store.ping()
        except StoreUnavailableError:
            healthy = False
        else:
            healthy = True

        return {
            "cellId": self.destination.value,
            "status": "healthy" if healthy else "degraded",
            "configurationSource": "database" if healthy else "fallback",
            "endpoints": sorted(self.actions()),
            "timestamp": datetime.now(UTC).isoformat(),
        }
