"""
Ledger -- Immutable event and material types for the stock ledger.

Responsibility:
    Define the plain data the ledger engines compute over: the material
    and its geometric descriptor, addition events (lots), removal events,
    the replenishment event emitted on additions, and the integrity
    warning attached to read results.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by ledger_engines (read paths and guard) and by
    ledger_kernel.selectors (ORM rows are mapped into these types).

Invariants enforced:
    - Events are frozen dataclasses; they are never edited, only appended.
    - Lot and removal lengths and piece counts are strictly positive.
    - Lot unit price, when present, is non-negative.
    - FIFO order is ``ledger_order_key``: timestamp ascending, then
      insertion sequence.

Failure modes:
    - ValueError from __post_init__ on non-positive length/pieces, negative
      price, or a non-Decimal-convertible number.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

MM_PER_METER = Decimal("1000")


def to_decimal(value: Any, name: str) -> Decimal:
    """Convert ``value`` to Decimal via ``str`` so floats keep their printed form."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"{name} is not a number: {value!r}") from e


class Shape(str, Enum):
    """Cross-section shapes with a closed-form area formula."""

    ROUND_BAR = "Round bar"
    SQUARE_BAR = "Square bar"
    RECTANGULAR_BAR = "Rectangular bar"
    HEX_BAR = "Hex bar"
    ROUND_TUBE = "Round tube"
    SQUARE_TUBE = "Square tube"
    RECTANGULAR_TUBE = "Rectangular tube"
    SHEET = "Sheet"

    @classmethod
    def parse(cls, raw: str | Shape | None) -> Shape | None:
        """Resolve a display name ("Round bar") or snake name ("round_bar").

        Returns None for anything unrecognised; callers treat that as
        unknown geometry rather than an error.
        """
        if raw is None:
            return None
        if isinstance(raw, Shape):
            return raw
        key = str(raw).strip().lower().replace("_", " ").replace("-", " ")
        for shape in cls:
            if shape.value.lower() == key:
                return shape
        return None


class PriceUnit(str, Enum):
    """What a lot's unit price is quoted against."""

    PER_KG = "per_kg"
    PER_METER = "per_meter"


@dataclass(frozen=True)
class ProfileHint:
    """
    Pointer to a precomputed kg/m for irregular rolled sections.

    Either the value is embedded (``kg_per_meter``) or it must be resolved
    from the standardized profile table by ``profile_id``.
    """

    kg_per_meter: Decimal | None = None
    profile_id: str | None = None

    def __post_init__(self) -> None:
        if self.kg_per_meter is not None:
            object.__setattr__(
                self, "kg_per_meter", to_decimal(self.kg_per_meter, "kg_per_meter")
            )


@dataclass(frozen=True)
class GeometryDescriptor:
    """Shape, dimensions (mm) and grade describing a material's cross-section."""

    shape: str | None
    dimensions: Mapping[str, Any] = field(default_factory=dict)
    material_grade: str | None = None
    profile: ProfileHint | None = None

    @property
    def parsed_shape(self) -> Shape | None:
        return Shape.parse(self.shape)


@dataclass(frozen=True)
class Material:
    """
    A stock-keeping unit of continuous-length raw material.

    ``aggregate_mm`` is a cached sum maintained by the ledger service;
    the events are the source of truth.
    """

    material_id: UUID
    name: str
    geometry: GeometryDescriptor
    aggregate_mm: Decimal = Decimal("0")
    version: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "aggregate_mm", to_decimal(self.aggregate_mm, "aggregate_mm")
        )


@dataclass(frozen=True)
class Lot:
    """
    One purchase of stock: ``pieces`` bars of ``length_per_piece_mm`` each.

    Remaining length is NOT stored here; it is recomputed by FIFO replay
    (ledger_engines.fifo) every time it is read.
    """

    lot_id: UUID
    material_id: UUID
    timestamp: datetime
    length_per_piece_mm: Decimal
    pieces: int = 1
    sequence: int = 0
    unit_price: Decimal | None = None
    price_unit: PriceUnit | None = None
    supplier_id: str | None = None
    currency: str | None = None
    location: str | None = None
    note: str | None = None

    def __post_init__(self) -> None:
        length = to_decimal(self.length_per_piece_mm, "length_per_piece_mm")
        if length <= 0:
            raise ValueError(f"Lot length must be positive, got {length}")
        if self.pieces <= 0:
            raise ValueError(f"Lot pieces must be positive, got {self.pieces}")
        object.__setattr__(self, "length_per_piece_mm", length)

        if self.unit_price is not None:
            price = to_decimal(self.unit_price, "unit_price")
            if price < 0:
                raise ValueError(f"Lot unit price cannot be negative, got {price}")
            object.__setattr__(self, "unit_price", price)
        if self.price_unit is not None and not isinstance(self.price_unit, PriceUnit):
            object.__setattr__(self, "price_unit", PriceUnit(self.price_unit))

    @property
    def total_mm(self) -> Decimal:
        return self.length_per_piece_mm * self.pieces

    @property
    def is_priced(self) -> bool:
        """True when both a unit price and its unit were recorded."""
        return self.unit_price is not None and self.price_unit is not None


@dataclass(frozen=True)
class Removal:
    """
    One withdrawal of stock.

    ``source_lot_id`` records the lot an operator picked on the per-lot
    path.  It is informational only: which lots a removal drew from is
    always re-derived by FIFO replay.
    """

    removal_id: UUID
    material_id: UUID
    timestamp: datetime
    length_per_piece_mm: Decimal
    pieces: int = 1
    sequence: int = 0
    note: str | None = None
    source_lot_id: UUID | None = None

    def __post_init__(self) -> None:
        length = to_decimal(self.length_per_piece_mm, "length_per_piece_mm")
        if length <= 0:
            raise ValueError(f"Removal length must be positive, got {length}")
        if self.pieces <= 0:
            raise ValueError(f"Removal pieces must be positive, got {self.pieces}")
        object.__setattr__(self, "length_per_piece_mm", length)

    @property
    def total_mm(self) -> Decimal:
        return self.length_per_piece_mm * self.pieces


def ledger_order_key(event: Lot | Removal) -> tuple[datetime, int]:
    """FIFO sort key: timestamp ascending, ties broken by insertion sequence."""
    return (event.timestamp, event.sequence)


@dataclass(frozen=True)
class StockReplenished:
    """
    Emitted after an addition is accepted.

    Downstream workflows (closing a pending reorder request for the
    material) subscribe to this; the ledger does not own them.
    """

    material_id: UUID
    lot_id: UUID | None
    added_mm: Decimal
    new_aggregate_mm: Decimal
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class LedgerIntegrityWarning:
    """
    FIFO replay found more removed length than was ever added.

    Structurally impossible while the mutation guard is honoured; raised
    only by out-of-band data.  Carried on results for operator review.
    """

    material_id: UUID | None
    added_mm: Decimal
    removed_mm: Decimal

    @property
    def excess_mm(self) -> Decimal:
        return self.removed_mm - self.added_mm
