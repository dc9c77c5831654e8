"""Payload models for the identity cell."""

from typing import Annotated

from pydantic import Field

from cellgate.core.payloads import CamelModel

Identifier = Annotated[str, Field(min_length=1, max_length=64)]


class UserPermissionsRequest(CamelModel):
    user_id: Identifier
    tenant_id: Identifier


class CheckPermissionRequest(UserPermissionsRequest):
    permission: str = Field(..., min_length=1, max_length=100)
