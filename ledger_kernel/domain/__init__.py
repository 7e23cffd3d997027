"""
Pure domain layer.

This module contains pure data objects with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock itself)
- I/O

All domain objects are immutable and deterministic.
"""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from ledger_kernel.domain.ledger import (
    MM_PER_METER,
    GeometryDescriptor,
    LedgerIntegrityWarning,
    Lot,
    Material,
    PriceUnit,
    ProfileHint,
    Removal,
    Shape,
    StockReplenished,
    ledger_order_key,
)
from ledger_kernel.domain.lot_store import LotStore
from ledger_kernel.domain.values import Currency, Money

__all__ = [
    "Clock",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DeterministicClock",
    "GeometryDescriptor",
    "LedgerIntegrityWarning",
    "Lot",
    "LotStore",
    "MM_PER_METER",
    "Material",
    "Money",
    "PriceUnit",
    "ProfileHint",
    "Removal",
    "Shape",
    "StockReplenished",
    "SystemClock",
    "ledger_order_key",
]
