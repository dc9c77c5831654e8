"""Call routing between cells.

Cells import from here; this package never imports a cell.
"""

from cellgate.gateway.auth_client import AuthClient
from cellgate.gateway.context import CellContext, build_cell_context
from cellgate.gateway.destinations import Destination
from cellgate.gateway.router import Cell, CellRouter

__all__ = [
    "AuthClient",
    "Cell",
    "CellContext",
    "CellRouter",
    "Destination",
    "build_cell_context",
]
