"""TaxAndFee cell: tenant-configured tax and processing fee calculation."""

from cellgate.cells.tax_and_fee.cell import TaxAndFeeCell

__all__ = ["TaxAndFeeCell"]
