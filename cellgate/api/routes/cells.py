"""Cell endpoints: action invocation, health and metadata.

``{group}/{name}`` must name a registered ``Destination``; anything else is
a 404 before the router is consulted.
"""

from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Body
from fastapi.responses import Response

from cellgate.api.dependencies import CellRouterDep
from cellgate.api.utils.responses import ORJSONResponse
from cellgate.gateway.destinations import Destination

router = APIRouter(prefix="/cells", tags=["cells"])


@router.post("/{group}/{name}/actions/{action}")
async def invoke_action(
    group: str,
    name: str,
    action: str,
    cell_router: CellRouterDep,
    payload: Annotated[dict[str, Any] | None, Body()] = None,
) -> Response:
    """Invoke ``action`` on the cell at ``group/name`` with the JSON body."""
    destination = Destination.from_path(group, name)
    result = await cell_router.invoke(destination, action, payload or {})
    return ORJSONResponse(content=result)


@router.get("/{group}/{name}/health")
async def cell_health(group: str, name: str, cell_router: CellRouterDep) -> Response:
    destination = Destination.from_path(group, name)
    return ORJSONResponse(content=await cell_router.health(destination))


@router.get("/{group}/{name}")
async def cell_metadata(group: str, name: str, cell_router: CellRouterDep) -> Response:
    """Describe the cell at ``group/name``."""
    destination = Destination.from_path(group, name)
    health = await cell_router.health(destination)
    return ORJSONResponse(
        content={
            "cellId": destination.value,
            "sector": destination.group,
            "name": destination.cell_name,
            "status": health.get("status", "unknown"),
            "endpoints": cell_router.actions(destination),
            "timestamp": datetime.now(UTC).isoformat(),
        }
    )
