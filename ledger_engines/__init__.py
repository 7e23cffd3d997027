"""
Module: ledger_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    ledger engines: geometry, FIFO allocation, valuation and the mutation
    guard.  This is the import surface for ledger_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel.domain, ledger_kernel.exceptions and
    ledger_kernel.logging_config (and sibling engine modules).
    MUST NOT import ledger_services or ledger_config.

Invariants enforced:
    - Purity: engines never read the clock.  "Now" is the full event list;
      any other instant is passed in as an explicit cutoff.
    - Decimal-only arithmetic for lengths, weights and amounts.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine invocations are traced via ``@traced_engine`` (see
    ``ledger_engines.tracer``), emitting LEDGER_ENGINE_TRACE records.

Usage:
    from ledger_engines import compute_remaining, value_of_removal
    from ledger_engines import MutationGuard, AggregateRemoval
"""

from ledger_engines.fifo import FifoResult, LotBalance, compute_remaining, replay
from ledger_engines.geometry import (
    DEFAULT_DENSITIES,
    DEFAULT_DENSITY,
    DensityTable,
    MassResolution,
    MassSource,
    compute_mass_per_meter,
    compute_mass_per_meter_for,
    require_mass_per_meter,
    resolve_mass_per_meter,
    weight_kg,
)
from ledger_engines.guard import (
    AdditionPlan,
    AggregateRemoval,
    MutationGuard,
    PerLotRemoval,
    RemovalLine,
    RemovalMode,
    RemovalPlan,
    RemovalRequest,
)
from ledger_engines.valuation import (
    HistoryKind,
    HistoryLine,
    RemovalValuation,
    StockValuation,
    ValuationLine,
    ledger_history,
    material_cost_per_piece,
    price_length,
    value_of_lot,
    value_of_removal,
    value_on_hand,
)

__all__ = [
    # fifo
    "FifoResult",
    "LotBalance",
    "compute_remaining",
    "replay",
    # geometry
    "DEFAULT_DENSITIES",
    "DEFAULT_DENSITY",
    "DensityTable",
    "MassResolution",
    "MassSource",
    "compute_mass_per_meter",
    "compute_mass_per_meter_for",
    "require_mass_per_meter",
    "resolve_mass_per_meter",
    "weight_kg",
    # guard
    "AdditionPlan",
    "AggregateRemoval",
    "MutationGuard",
    "PerLotRemoval",
    "RemovalLine",
    "RemovalMode",
    "RemovalPlan",
    "RemovalRequest",
    # valuation
    "HistoryKind",
    "HistoryLine",
    "RemovalValuation",
    "StockValuation",
    "ValuationLine",
    "ledger_history",
    "material_cost_per_piece",
    "price_length",
    "value_of_lot",
    "value_of_removal",
    "value_on_hand",
]
