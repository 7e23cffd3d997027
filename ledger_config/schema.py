"""
Stock ledger configuration schema.

The parsed, frozen form of a configuration set YAML file.  The loader
builds it; ``ledger_config.get_active_config()`` hands it to services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ledger_engines.geometry import DensityTable

SUPPORTED_LENGTH_UNITS = ("mm",)


@dataclass(frozen=True)
class LedgerConfig:
    """
    Runtime configuration of the stock ledger.

    Guarantees:
        - ``densities`` keys are lower-cased grades, values positive kg/m3.
        - ``default_currency`` is a registered ISO 4217 code.
        - ``checksum`` identifies the source document.
    """

    config_id: str
    version: int
    default_density: Decimal
    densities: dict[str, Decimal] = field(default_factory=dict)
    default_currency: str = "EUR"
    length_unit: str = "mm"
    checksum: str = ""

    def density_table(self) -> DensityTable:
        """Density lookup for the geometry engine."""
        from ledger_engines.geometry import DensityTable

        return DensityTable(densities=self.densities, default_density=self.default_density)

    def density_for(self, grade: str | None) -> Decimal:
        return self.density_table().density_for(grade)
