"""The closed set of addressable cells.

A destination is the ``group/name`` pair a caller addresses; the action is
chosen separately at invocation time. Keeping destinations in an enum means
a typo in a cross-cell call fails at import time, and the HTTP layer can
reject unknown paths before touching the router.
"""

from enum import StrEnum

from cellgate.core.exceptions import NotFoundError


class Destination(StrEnum):
    """Registered cell addresses, valued ``group/name``."""

    TAX_AND_FEE = "inventory/TaxAndFee"
    B2B_ACCESS_CONTROL = "ecommerce/B2BAccessControl"
    AUTHENTICATION_CORE = "auth/AuthenticationCore"

    @property
    def group(self) -> str:
        return self.value.split("/", 1)[0]

    @property
    def cell_name(self) -> str:
        return self.value.split("/", 1)[1]

    @classmethod
    def parse(cls, value: "str | Destination") -> "Destination":
        """Resolve a ``group/name`` string to a destination.

        Raises:
            NotFoundError: If no cell is addressed by ``value``.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as e:
            raise NotFoundError(
                f"No cell registered at '{value}'",
                context={"destination": value},
            ) from e

    @classmethod
    def from_path(cls, group: str, name: str) -> "Destination":
        """Resolve the ``{group}/{name}`` segments of a cell URL."""
        return cls.parse(f"{group}/{name}")
