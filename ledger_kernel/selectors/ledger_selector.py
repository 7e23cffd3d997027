"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only queries over a material's ledger: the material with
    its geometry, the Lot Store snapshot of its events, and standardized
    profile kg/m lookups.
Architecture position: Kernel > Selectors.  May import from models/, domain/
    and selectors/base.py.

Invariants enforced:
    - Events are returned in ledger order (timestamp, sequence).
    - Timestamps are timezone-aware UTC; stores that drop the offset
      (SQLite) have it restored here.
    - No stored remaining balances are read: balances come from FIFO replay
      over the snapshot.

Failure modes:
    - MaterialNotFoundError for an unknown material id.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.ledger import (
    GeometryDescriptor,
    Lot,
    Material,
    ProfileHint,
    Removal,
)
from ledger_kernel.domain.lot_store import LotStore
from ledger_kernel.exceptions import MaterialNotFoundError
from ledger_kernel.models.ledger_event import LotModel, RemovalModel
from ledger_kernel.models.material import MaterialModel
from ledger_kernel.models.profile import StandardizedProfileModel
from ledger_kernel.selectors.base import BaseSelector


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def material_from_model(model: MaterialModel) -> Material:
    profile = None
    if model.profile_id or model.profile_kg_per_meter is not None:
        profile = ProfileHint(
            kg_per_meter=model.profile_kg_per_meter,
            profile_id=model.profile_id,
        )
    return Material(
        material_id=model.id,
        name=model.name,
        geometry=GeometryDescriptor(
            shape=model.shape,
            dimensions=dict(model.dimensions or {}),
            material_grade=model.material_grade,
            profile=profile,
        ),
        aggregate_mm=model.aggregate_mm,
        version=model.version,
    )


def lot_from_model(model: LotModel) -> Lot:
    return Lot(
        lot_id=model.id,
        material_id=model.material_id,
        timestamp=_aware(model.timestamp),
        length_per_piece_mm=model.length_per_piece_mm,
        pieces=model.pieces,
        sequence=model.sequence,
        unit_price=model.unit_price,
        price_unit=model.price_unit,
        supplier_id=model.supplier_id,
        currency=model.currency,
        location=model.location,
        note=model.note,
    )


def removal_from_model(model: RemovalModel) -> Removal:
    return Removal(
        removal_id=model.id,
        material_id=model.material_id,
        timestamp=_aware(model.timestamp),
        length_per_piece_mm=model.length_per_piece_mm,
        pieces=model.pieces,
        sequence=model.sequence,
        note=model.note,
        source_lot_id=model.source_lot_id,
    )


class LedgerSelector(BaseSelector):
    """Read access to materials, their events and the profile table."""

    def material(self, material_id: UUID) -> Material:
        model = self.session.get(MaterialModel, material_id)
        if model is None:
            raise MaterialNotFoundError(str(material_id))
        return material_from_model(model)

    def lot_store(self, material_id: UUID) -> LotStore:
        """Snapshot of every lot and removal of ``material_id``, in ledger order."""
        lots = self.session.execute(
            select(LotModel)
            .where(LotModel.material_id == material_id)
            .order_by(LotModel.timestamp, LotModel.sequence)
        ).scalars().all()
        removals = self.session.execute(
            select(RemovalModel)
            .where(RemovalModel.material_id == material_id)
            .order_by(RemovalModel.timestamp, RemovalModel.sequence)
        ).scalars().all()
        return LotStore.of(
            material_id,
            (lot_from_model(m) for m in lots),
            (removal_from_model(m) for m in removals),
        )

    def removal(self, removal_id: UUID) -> Removal | None:
        model = self.session.get(RemovalModel, removal_id)
        return removal_from_model(model) if model is not None else None

    def profile_kg_per_meter(self, profile_id: str) -> Decimal | None:
        return self.session.execute(
            select(StandardizedProfileModel.kg_per_meter)
            .where(StandardizedProfileModel.profile_id == profile_id)
        ).scalar_one_or_none()
