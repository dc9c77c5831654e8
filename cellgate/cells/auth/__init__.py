"""AuthenticationCore cell: caller identity and permission grants."""

from cellgate.cells.auth.cell import AuthenticationCoreCell

__all__ = ["AuthenticationCoreCell"]
