"""
Module: ledger_kernel.models.profile
Responsibility: ORM persistence for the standardized profile table: rolled
    sections (angles, channels, beams) whose kg/m is published rather than
    derived from a simple area formula.
Architecture position: Kernel > Models.  Read-only reference data for the
    ledger; loaded by inventory setup.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class StandardizedProfileModel(Base):
    """profile_id -> precomputed kg/m."""

    __tablename__ = "standardized_profiles"

    profile_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    kg_per_meter: Mapped[Decimal] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<StandardizedProfile {self.profile_id}: {self.kg_per_meter} kg/m>"
