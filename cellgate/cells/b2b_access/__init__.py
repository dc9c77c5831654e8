"""B2BAccessControl cell: customer groups, category rules and price visibility."""

from cellgate.cells.b2b_access.cell import B2BAccessControlCell

__all__ = ["B2BAccessControlCell"]
