"""Pure amount calculations."""

from backoffice_engine.calculators.withholding import (
    compute_net_amount,
    compute_withholding,
    default_tax,
)

__all__ = [
    "compute_net_amount",
    "compute_withholding",
    "default_tax",
]
