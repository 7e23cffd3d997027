"""
LotStore -- read model of one material's ledger events.

Responsibility:
    Hold an immutable snapshot of a material's lots and removals as plain
    data, in the order the persistence layer supplied them, and answer the
    ordering questions the engines need (ledger order, "what happened
    before this removal").

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Built by ledger_kernel.selectors.LedgerSelector from the database, or
    directly by callers that already hold the events.  Consumed read-only
    by ledger_engines.

Invariants enforced:
    - Every event belongs to ``material_id``.
    - Append-only: ``with_lot`` / ``with_removal`` return new snapshots.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.ledger import Lot, Removal, ledger_order_key


@dataclass(frozen=True)
class LotStore:
    """Immutable snapshot of the addition and removal events for one material."""

    material_id: UUID
    lots: tuple[Lot, ...] = ()
    removals: tuple[Removal, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "lots", tuple(self.lots))
        object.__setattr__(self, "removals", tuple(self.removals))
        for event in (*self.lots, *self.removals):
            if event.material_id != self.material_id:
                raise ValueError(
                    f"Event for material {event.material_id} does not belong "
                    f"to ledger of material {self.material_id}"
                )

    @classmethod
    def of(
        cls,
        material_id: UUID,
        lots: Iterable[Lot] = (),
        removals: Iterable[Removal] = (),
    ) -> LotStore:
        return cls(material_id=material_id, lots=tuple(lots), removals=tuple(removals))

    def lots_in_order(self) -> list[Lot]:
        # sorted() is stable: equal keys keep insertion order
        return sorted(self.lots, key=ledger_order_key)

    def removals_in_order(self) -> list[Removal]:
        return sorted(self.removals, key=ledger_order_key)

    @property
    def total_added_mm(self) -> Decimal:
        return sum((lot.total_mm for lot in self.lots), Decimal("0"))

    @property
    def total_removed_mm(self) -> Decimal:
        return sum((r.total_mm for r in self.removals), Decimal("0"))

    @property
    def derived_aggregate_mm(self) -> Decimal:
        """Added minus removed.  Negative only for corrupt event data."""
        return self.total_added_mm - self.total_removed_mm

    def lot(self, lot_id: UUID) -> Lot | None:
        return next((lot for lot in self.lots if lot.lot_id == lot_id), None)

    def removal(self, removal_id: UUID) -> Removal | None:
        return next((r for r in self.removals if r.removal_id == removal_id), None)

    def removals_before(self, removal: Removal) -> list[Removal]:
        """Removals strictly earlier than ``removal`` in ledger order.

        A removal never consumes itself; removals sharing its timestamp
        count as earlier only if they were inserted first.
        """
        key = ledger_order_key(removal)
        return [
            r for r in self.removals
            if r.removal_id != removal.removal_id and ledger_order_key(r) < key
        ]

    def lots_until(self, removal: Removal) -> list[Lot]:
        """Lots that existed when ``removal`` happened (timestamp <= removal's)."""
        return [lot for lot in self.lots if lot.timestamp <= removal.timestamp]

    def with_lot(self, lot: Lot) -> LotStore:
        return LotStore(self.material_id, (*self.lots, lot), self.removals)

    def with_removal(self, removal: Removal) -> LotStore:
        return LotStore(self.material_id, self.lots, (*self.removals, removal))
