"""
Module: ledger_kernel.models.material
Responsibility: ORM persistence for materials: the stock-keeping units of
    continuous-length raw material, their cross-section descriptor, and the
    cached aggregate length on hand.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - aggregate_mm is a cached sum (added - removed) maintained by the ledger
      service in the same transaction as each event; never edited directly.
    - next_sequence is the per-material insertion counter used to break
      timestamp ties in FIFO order.  Incremented under the row lock.
    - version is the optimistic lock column: a concurrent writer that read
      a stale row fails its flush with StaleDataError.

Audit relevance:
    The events (material_lots, material_removals) are the source of truth;
    the selector can always re-derive aggregate_mm from them.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class MaterialModel(TrackedBase):
    """
    Persistent storage for a material and its cached aggregate length.

    Guarantees:
        - dimensions is a JSON object of named measurements in millimetres,
          stored as decimal strings.
        - profile_kg_per_meter, when set, is an embedded precomputed kg/m;
          profile_id refers to standardized_profiles.profile_id.
    """

    __tablename__ = "materials"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    shape: Mapped[str | None] = mapped_column(String(50), nullable=True)

    dimensions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    material_grade: Mapped[str | None] = mapped_column(String(50), nullable=True)

    profile_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    profile_kg_per_meter: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Cached: sum(lot lengths) - sum(removal lengths)
    aggregate_mm: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    next_sequence: Mapped[int] = mapped_column(nullable=False, default=0)

    version: Mapped[int] = mapped_column(nullable=False, default=0)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Material {self.id}: {self.name} aggregate={self.aggregate_mm}mm>"
