"""Wires every cell into a context's router at startup."""

from loguru import logger

from cellgate.cells.auth import AuthenticationCoreCell
from cellgate.cells.b2b_access import B2BAccessControlCell
from cellgate.cells.tax_and_fee import TaxAndFeeCell
from cellgate.gateway.context import CellContext
from cellgate.gateway.router import Cell


def create_cells(context: CellContext) -> list[Cell]:
    return [
        AuthenticationCoreCell(context),
        TaxAndFeeCell(context),
        B2BAccessControlCell(context),
    ]


def register_cells(context: CellContext, cells: list[Cell] | None = None) -> None:
    """Register ``cells``, or the default set, with the context's router.

    Raises:
        ValueError: If two cells claim the same destination.
    """
    for cell in cells if cells is not None else create_cells(context):
        context.router.register_cell(cell)

    logger.info(
        "Cell registry ready: {}",
        ", ".join(d.value for d in context.router.destinations()),
    )
