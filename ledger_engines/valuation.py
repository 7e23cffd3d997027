"""
Module: ledger_engines.valuation
Responsibility:
    Attribute a monetary value to a length of material by tracing which
    lot(s) it logically came from (FIFO replay up to the removal) and
    pricing each portion at that lot's recorded unit price, per metre or
    per kilogram.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Builds on ledger_engines.fifo and ledger_engines.geometry.

Invariants enforced:
    - Replay up to a removal uses lots with timestamp <= removal.timestamp
      and removals strictly earlier in ledger order.
    - Additivity: a removal spanning several lots is valued as the sum of
      the priced portions, one line per lot.
    - Unpriced lots, and per_kg lots whose kg/m is unknown, contribute
      zero for their consumed portion; the portion still counts as
      consumed so later lots are not over-valued.
    - Decimal-only arithmetic; amounts are NOT rounded here.  Display
      callers use ``RemovalValuation.rounded_total``.
    - No currency conversion: when priced lots carry different currencies
      the total takes the first one and WARNING ``valuation_mixed_currencies``
      is logged.

Failure modes:
    - ValueError when events of several materials are mixed.
    - Never raises for missing prices or unknown geometry.

Audit relevance:
    Withdrawal values shown in the history view are reproducible from the
    event log alone: the same events always yield the same lines.

Usage:
    from ledger_engines.valuation import value_of_removal

    valuation = value_of_removal(removal, store.lots, store.removals, kg_m)
    print(valuation.total)        # Money('15.6', 'EUR')
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_engines.fifo import replay
from ledger_engines.geometry import weight_kg
from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.ledger import (
    MM_PER_METER,
    LedgerIntegrityWarning,
    Lot,
    PriceUnit,
    Removal,
    ledger_order_key,
)
from ledger_kernel.domain.lot_store import LotStore
from ledger_kernel.domain.values import Money
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.valuation")

ZERO = Decimal("0")
DEFAULT_CURRENCY = "EUR"


def price_length(
    length_mm: Decimal,
    unit_price: Decimal | None,
    price_unit: PriceUnit | str | None,
    kg_per_meter: Decimal | None,
) -> Decimal | None:
    """
    Price ``length_mm`` of material.

    Returns None when the length cannot be priced: no price, no unit, or
    a per_kg price without a known kg/m.
    """
    if unit_price is None or price_unit is None:
        return None
    unit = PriceUnit(price_unit)
    if unit == PriceUnit.PER_METER:
        return Decimal(str(length_mm)) / MM_PER_METER * unit_price
    kg = weight_kg(length_mm, kg_per_meter)
    if kg is None:
        return None
    return kg * unit_price


def material_cost_per_piece(
    length_mm: Decimal,
    unit_price: Decimal,
    price_unit: PriceUnit | str,
    kg_per_meter: Decimal | None,
) -> Decimal | None:
    """Material cost of one cut piece of ``length_mm`` at a quoted price."""
    if Decimal(str(length_mm)) <= ZERO:
        return ZERO
    return price_length(length_mm, Decimal(str(unit_price)), price_unit, kg_per_meter)


@dataclass(frozen=True)
class ValuationLine:
    """The portion of a removal drawn from one lot."""

    lot_id: UUID
    used_mm: Decimal
    amount: Decimal
    priced: bool
    currency: str | None = None


@dataclass(frozen=True)
class RemovalValuation:
    """
    Value of one removal.

    Guarantees:
        - ``sum(line.used_mm) + unvalued_mm == removal.total_mm``.
        - ``total.amount == sum(line.amount)``.
    """

    removal: Removal
    lines: tuple[ValuationLine, ...]
    total: Money
    unvalued_mm: Decimal = ZERO

    @property
    def currency(self) -> str:
        return self.total.currency.code

    @property
    def is_fully_priced(self) -> bool:
        return self.unvalued_mm == ZERO and all(line.priced for line in self.lines)

    @property
    def lot_ids(self) -> tuple[UUID, ...]:
        return tuple(line.lot_id for line in self.lines)

    @property
    def rounded_total(self) -> Money:
        """Total rounded to the currency's minor unit, for display."""
        return self.total.round()


@dataclass(frozen=True)
class StockValuation:
    """Value of the stock still on hand, each remnant at its own lot's price."""

    remaining_mm: Decimal
    weight_kg: Decimal | None
    value: Money
    unpriced_mm: Decimal = ZERO
    integrity_warning: LedgerIntegrityWarning | None = None


class HistoryKind(str, Enum):
    ADDITION = "addition"
    REMOVAL = "removal"


@dataclass(frozen=True)
class HistoryLine:
    """One row of a material's ledger history, with weight and value."""

    kind: HistoryKind
    event_id: UUID
    timestamp: datetime
    total_mm: Decimal
    weight_kg: Decimal | None
    value: Money
    note: str | None = None

    @property
    def currency(self) -> str:
        return self.value.currency.code


def _lot_amount(used_mm: Decimal, lot: Lot, kg_per_meter: Decimal | None) -> Decimal | None:
    return price_length(used_mm, lot.unit_price, lot.price_unit, kg_per_meter)


def _check_single_currency(
    material_id: UUID,
    currencies: Iterable[str | None],
    chosen: str,
) -> None:
    distinct = sorted({c for c in currencies if c})
    if len(distinct) > 1:
        logger.warning("valuation_mixed_currencies", extra={
            "material_id": str(material_id),
            "currencies": distinct,
            "reported_currency": chosen,
        })


def value_of_lot(
    lot: Lot,
    kg_per_meter: Decimal | None,
    *,
    default_currency: str = DEFAULT_CURRENCY,
) -> Money:
    """Value of an addition as received: its whole length, no FIFO."""
    amount = _lot_amount(lot.total_mm, lot, kg_per_meter)
    return Money.of(amount if amount is not None else ZERO, lot.currency or default_currency)


@traced_engine("valuation", "1.0", fingerprint_fields=("default_currency",))
def value_of_removal(
    removal: Removal,
    lots: Iterable[Lot],
    removals: Iterable[Removal],
    kg_per_meter: Decimal | None,
    *,
    default_currency: str = DEFAULT_CURRENCY,
) -> RemovalValuation:
    """
    Value one removal by replaying FIFO up to the instant before it.

    Args:
        removal: The removal to value.
        lots: All lots of the material.
        removals: All removals of the material (may include ``removal``).
        kg_per_meter: Mass per length, or None when unknown.
        default_currency: Used when no consumed lot carries a currency.

    Returns:
        RemovalValuation with one line per lot drawn from, oldest first.
    """
    store = LotStore.of(removal.material_id, lots, removals)
    state = replay(store.lots_until(removal), store.removals_before(removal))

    to_value = removal.total_mm
    lines: list[ValuationLine] = []
    for balance in state.available:
        if to_value <= ZERO:
            break
        used = min(to_value, balance.remaining_mm)
        to_value -= used
        amount = _lot_amount(used, balance.lot, kg_per_meter)
        lines.append(ValuationLine(
            lot_id=balance.lot_id,
            used_mm=used,
            amount=amount if amount is not None else ZERO,
            priced=amount is not None,
            currency=balance.lot.currency,
        ))

    currency = next((line.currency for line in lines if line.currency), default_currency)
    total = Money.of(sum((line.amount for line in lines), ZERO), currency)
    _check_single_currency(
        removal.material_id, (line.currency for line in lines if line.priced), currency
    )

    if to_value > ZERO:
        logger.warning("valuation_removal_exceeds_stock", extra={
            "material_id": str(removal.material_id),
            "removal_id": str(removal.removal_id),
            "unvalued_mm": str(to_value),
        })
    unpriced = [str(line.lot_id) for line in lines if not line.priced]
    if unpriced:
        logger.debug("valuation_unpriced_portion", extra={
            "removal_id": str(removal.removal_id),
            "lot_ids": unpriced,
            "kg_per_meter_known": kg_per_meter is not None,
        })

    return RemovalValuation(
        removal=removal,
        lines=tuple(lines),
        total=total,
        unvalued_mm=to_value,
    )


@traced_engine("valuation.on_hand", "1.0", fingerprint_fields=("default_currency",))
def value_on_hand(
    lots: Iterable[Lot],
    removals: Iterable[Removal],
    kg_per_meter: Decimal | None,
    *,
    default_currency: str = DEFAULT_CURRENCY,
) -> StockValuation:
    """Remaining length, weight and value of the current stock."""
    state = replay(lots, removals)

    amount = ZERO
    unpriced = ZERO
    currency = None
    priced_currencies: list[str | None] = []
    for balance in state.available:
        priced = _lot_amount(balance.remaining_mm, balance.lot, kg_per_meter)
        if priced is None:
            unpriced += balance.remaining_mm
        else:
            amount += priced
            priced_currencies.append(balance.lot.currency)
        currency = currency or balance.lot.currency
    if state.balances:
        _check_single_currency(
            state.balances[0].lot.material_id, priced_currencies, currency or default_currency
        )

    return StockValuation(
        remaining_mm=state.total_remaining_mm,
        weight_kg=weight_kg(state.total_remaining_mm, kg_per_meter),
        value=Money.of(amount, currency or default_currency),
        unpriced_mm=unpriced,
        integrity_warning=state.integrity_warning,
    )


def ledger_history(
    store: LotStore,
    kg_per_meter: Decimal | None,
    *,
    default_currency: str = DEFAULT_CURRENCY,
) -> tuple[HistoryLine, ...]:
    """
    Every addition and removal of a material, newest first.

    Additions are valued as received; removals through FIFO replay.
    """
    lines: list[HistoryLine] = []
    for lot in store.lots:
        lines.append(HistoryLine(
            kind=HistoryKind.ADDITION,
            event_id=lot.lot_id,
            timestamp=lot.timestamp,
            total_mm=lot.total_mm,
            weight_kg=weight_kg(lot.total_mm, kg_per_meter),
            value=value_of_lot(lot, kg_per_meter, default_currency=default_currency),
            note=lot.note,
        ))
    for removal in store.removals:
        valuation = value_of_removal(
            removal,
            store.lots,
            store.removals,
            kg_per_meter,
            default_currency=default_currency,
        )
        lines.append(HistoryLine(
            kind=HistoryKind.REMOVAL,
            event_id=removal.removal_id,
            timestamp=removal.timestamp,
            total_mm=removal.total_mm,
            weight_kg=weight_kg(removal.total_mm, kg_per_meter),
            value=valuation.total,
            note=removal.note,
        ))

    events = {e.lot_id: e for e in store.lots} | {e.removal_id: e for e in store.removals}
    lines.sort(key=lambda line: ledger_order_key(events[line.event_id]), reverse=True)
    return tuple(lines)
