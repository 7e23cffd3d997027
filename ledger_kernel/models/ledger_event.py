"""
Module: ledger_kernel.models.ledger_event
Responsibility: ORM persistence for the append-only ledger events of a
    material: additions (lots) and removals.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only.  Rows are never updated or deleted (ORM listeners in
      db/immutability.py).
    - Lengths and piece counts are positive (enforced by the mutation guard
      before insert, and by the domain types when rows are read back).
    - (material_id, timestamp, sequence) is the FIFO order; indexed.

Non-goals:
    - Lots do NOT store remaining length, and removals do NOT store the
      lots they drew from.  Both are recomputed by FIFO replay.
      ``source_lot_id`` only records the operator's selection on the
      per-lot path.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class LotModel(TrackedBase):
    """One purchase of stock: ``pieces`` bars of ``length_per_piece_mm``."""

    __tablename__ = "material_lots"

    __table_args__ = (
        Index("idx_material_lot_fifo", "material_id", "timestamp", "sequence"),
        Index("idx_material_lot_supplier", "supplier_id"),
    )

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id"),
        nullable=False,
    )

    timestamp: Mapped[datetime] = mapped_column(nullable=False)

    sequence: Mapped[int] = mapped_column(nullable=False)

    length_per_piece_mm: Mapped[Decimal] = mapped_column(nullable=False)

    pieces: Mapped[int] = mapped_column(nullable=False, default=1)

    unit_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    # "per_kg" | "per_meter"
    price_unit: Mapped[str | None] = mapped_column(String(20), nullable=True)

    supplier_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    location: Mapped[str | None] = mapped_column(String(100), nullable=True)

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Lot {self.id}: material={self.material_id} "
            f"{self.pieces}x{self.length_per_piece_mm}mm @ {self.unit_price} {self.price_unit}>"
        )


class RemovalModel(TrackedBase):
    """One withdrawal of stock."""

    __tablename__ = "material_removals"

    __table_args__ = (
        Index("idx_material_removal_fifo", "material_id", "timestamp", "sequence"),
    )

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id"),
        nullable=False,
    )

    timestamp: Mapped[datetime] = mapped_column(nullable=False)

    sequence: Mapped[int] = mapped_column(nullable=False)

    length_per_piece_mm: Mapped[Decimal] = mapped_column(nullable=False)

    pieces: Mapped[int] = mapped_column(nullable=False, default=1)

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Informational: the lot picked on the per-lot path (no FK on purpose)
    source_lot_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Removal {self.id}: material={self.material_id} "
            f"{self.pieces}x{self.length_per_piece_mm}mm>"
        )
