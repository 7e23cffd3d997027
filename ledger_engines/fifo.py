"""
Module: ledger_engines.fifo
Responsibility:
    Compute each lot's remaining unconsumed length by replaying removals
    against lots in first-in-first-out order.  There is no persisted link
    between a removal and the lots it drew from; this replay IS that link.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel.domain, exceptions and logging_config.

Invariants enforced:
    - FIFO ordering: lots sorted by (timestamp, sequence), stable on ties.
    - No negative remainders: 0 <= remaining_mm <= lot.total_mm.
    - Conservation: total_remaining_mm == added - removed whenever the
      ledger is consistent.
    - Cutoff filter: lots with timestamp <= cutoff, removals with
      timestamp < cutoff (a removal never consumes itself).
    - Purity: output depends only on the multiset of inputs.

Failure modes:
    - Never raises on inconsistent data.  Removals exceeding all lots
      clamp every lot at zero and attach a LedgerIntegrityWarning.

Audit relevance:
    Every remaining-balance figure shown to an operator and every
    per-lot removal check in the guard is derived here, so a replay of
    the same events always reproduces the same balances.

Usage:
    from ledger_engines.fifo import compute_remaining

    result = compute_remaining(store.lots, store.removals)
    for balance in result.available:
        print(balance.lot.lot_id, balance.remaining_mm)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.ledger import (
    LedgerIntegrityWarning,
    Lot,
    Removal,
    ledger_order_key,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.fifo")

ZERO = Decimal("0")


@dataclass(frozen=True)
class LotBalance:
    """
    Remaining length of one lot after FIFO replay.

    Guarantees:
        - ``remaining_mm + consumed_mm == lot.total_mm``.
        - ``0 <= remaining_mm <= lot.total_mm``.
    """

    lot: Lot
    remaining_mm: Decimal
    consumed_mm: Decimal

    @property
    def lot_id(self) -> UUID:
        return self.lot.lot_id

    @property
    def is_available(self) -> bool:
        return self.remaining_mm > ZERO

    @property
    def is_depleted(self) -> bool:
        return self.remaining_mm == ZERO


@dataclass(frozen=True)
class FifoResult:
    """
    Outcome of a FIFO replay.

    Contract:
        Frozen dataclass; ``balances`` is oldest-first.
    Guarantees:
        - ``total_remaining_mm == sum(b.remaining_mm for b in balances)``.
        - ``overconsumed_mm > 0`` iff ``integrity_warning`` is set.
    """

    balances: tuple[LotBalance, ...]
    total_remaining_mm: Decimal
    consumed_mm: Decimal
    overconsumed_mm: Decimal = ZERO
    integrity_warning: LedgerIntegrityWarning | None = None

    @property
    def available(self) -> tuple[LotBalance, ...]:
        """Balances with positive remaining length, oldest first."""
        return tuple(b for b in self.balances if b.is_available)

    @property
    def is_consistent(self) -> bool:
        return self.integrity_warning is None

    def balance_for(self, lot_id: UUID) -> LotBalance | None:
        return next((b for b in self.balances if b.lot_id == lot_id), None)

    def remaining_for(self, lot_id: UUID) -> Decimal:
        """Remaining length of ``lot_id``; zero for lots not in the replay."""
        balance = self.balance_for(lot_id)
        return balance.remaining_mm if balance is not None else ZERO


def _material_id_of(lots: Sequence[Lot], removals: Sequence[Removal]) -> UUID | None:
    for event in (*lots, *removals):
        return event.material_id
    return None


def replay(lots: Iterable[Lot], removals: Iterable[Removal]) -> FifoResult:
    """
    Consume ``removals`` against ``lots`` oldest first.

    No filtering is applied; callers pass exactly the events that count.

    Postconditions:
        See ``FifoResult`` guarantees.
    """
    ordered = sorted(lots, key=ledger_order_key)
    removal_list = list(removals)
    to_consume = sum((r.total_mm for r in removal_list), ZERO)
    total_removed = to_consume

    balances: list[LotBalance] = []
    total_remaining = ZERO
    for lot in ordered:
        if to_consume <= ZERO:
            consumed = ZERO
        else:
            consumed = min(to_consume, lot.total_mm)
            to_consume -= consumed
        remaining = lot.total_mm - consumed
        total_remaining += remaining
        balances.append(LotBalance(lot=lot, remaining_mm=remaining, consumed_mm=consumed))

    overconsumed = max(to_consume, ZERO)
    warning = None
    if overconsumed > ZERO:
        total_added = sum((lot.total_mm for lot in ordered), ZERO)
        warning = LedgerIntegrityWarning(
            material_id=_material_id_of(ordered, removal_list),
            added_mm=total_added,
            removed_mm=total_removed,
        )
        logger.warning("fifo_ledger_overconsumed", extra={
            "material_id": str(warning.material_id) if warning.material_id else None,
            "added_mm": str(total_added),
            "removed_mm": str(total_removed),
            "excess_mm": str(warning.excess_mm),
        })

    return FifoResult(
        balances=tuple(balances),
        total_remaining_mm=total_remaining,
        consumed_mm=total_removed - overconsumed,
        overconsumed_mm=overconsumed,
        integrity_warning=warning,
    )


@traced_engine("fifo", "1.0", fingerprint_fields=("cutoff",))
def compute_remaining(
    lots: Iterable[Lot],
    removals: Iterable[Removal],
    cutoff: datetime | None = None,
) -> FifoResult:
    """
    Remaining length of every lot at ``cutoff`` (None means "now").

    Args:
        lots: Addition events of one material, in any order.
        removals: Removal events of the same material, in any order.
        cutoff: Lots at or before, and removals strictly before, this
            instant are replayed.

    Returns:
        FifoResult with balances oldest first.
    """
    lot_list = list(lots)
    removal_list = list(removals)
    if cutoff is not None:
        lot_list = [lot for lot in lot_list if lot.timestamp <= cutoff]
        removal_list = [r for r in removal_list if r.timestamp < cutoff]

    result = replay(lot_list, removal_list)

    logger.debug("fifo_replay_completed", extra={
        "lot_count": len(lot_list),
        "removal_count": len(removal_list),
        "cutoff": cutoff.isoformat() if cutoff else None,
        "total_remaining_mm": str(result.total_remaining_mm),
    })
    return result
