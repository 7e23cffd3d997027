"""ORM models for the stock ledger."""

from ledger_kernel.models.ledger_event import LotModel, RemovalModel
from ledger_kernel.models.material import MaterialModel
from ledger_kernel.models.profile import StandardizedProfileModel

__all__ = [
    "LotModel",
    "MaterialModel",
    "RemovalModel",
    "StandardizedProfileModel",
]
