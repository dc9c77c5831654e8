"""Identity lookups made through the router.

Cells that need the caller's tenant, user or permissions use this client
instead of importing the identity cell, so the identity service can be
swapped for a remote one without touching them.
"""

from typing import Any

from loguru import logger

from cellgate.core.exceptions import PermissionDeniedError, UnauthorizedError
from cellgate.gateway.destinations import Destination
from cellgate.gateway.router import CellRouter


class AuthClient:
    """Thin facade over ``auth/AuthenticationCore`` actions.

    Args:
        router: Router the identity cell is registered with.
    """

    def __init__(self, router: CellRouter) -> None:
        self._router = router

    async def get_secure_tenant_id(self) -> str:
        """Return the caller's tenant.

        Raises:
            UnauthorizedError: If the identity service reports no tenant.
        """
        result = await self._router.invoke(
            Destination.AUTHENTICATION_CORE, "getCurrentTenant", {}
        )
        tenant_id = result.get("tenantId")
        if not tenant_id:
            raise UnauthorizedError("Authentication required: no tenant for caller")
        return str(tenant_id)

    async def get_current_user(self) -> dict[str, Any] | None:
        """Return the caller's user record, or None for guests."""
        result = await self._router.invoke(
            Destination.AUTHENTICATION_CORE, "getCurrentUser", {}
        )
        return result.get("user")

    async def require_user(self) -> dict[str, Any]:
        """Return the caller's user record.

        Raises:
            UnauthorizedError: If the caller is a guest.
        """
        user = await self.get_current_user()
        if user is None:
            raise UnauthorizedError("Authentication required")
        return user

    async def has_permission(self, user_id: str, tenant_id: str, permission: str) -> bool:
        result = await self._router.invoke(
            Destination.AUTHENTICATION_CORE,
            "checkPermission",
            {"userId": user_id, "tenantId": tenant_id, "permission": permission},
        )
        return result.get("hasPermission") is True

    async def require_permission(self, action: str, permission: str) -> tuple[str, str]:
        """Return ``(tenant_id, user_id)`` if the caller may run ``action``.

        Raises:
            UnauthorizedError: If the caller has no tenant or is a guest.
            PermissionDeniedError: If the caller lacks ``permission``.
        """
        tenant_id = await self.get_secure_tenant_id()
        user = await self.require_user()
        user_id = str(user["id"])

        if not await self.has_permission(user_id, tenant_id, permission):
            logger.warning(
                "User {} lacks {} for {}",
                user_id,
                permission,
                action,
                tenant_id=tenant_id,
            )
            raise PermissionDeniedError(
                f"Insufficient permissions for {action}",
                context={"permission": permission, "action": action},
            )
        return tenant_id, user_id

    async def get_user_permissions(self, user_id: str, tenant_id: str) -> list[str]:
        result = await self._router.invoke(
            Destination.AUTHENTICATION_CORE,
            "getUserPermissions",
            {"userId": user_id, "tenantId": tenant_id},
        )
        return list(result.get("permissions", []))
