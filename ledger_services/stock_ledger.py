"""
ledger_services.stock_ledger -- Validate -> append -> update aggregate.

Responsibility:
    The single writer of ledger events.  Every addition or removal locks
    the material row, runs the mutation guard against the current balance,
    appends the event(s), and updates the cached aggregate length in the
    caller's transaction.  Read paths load a Lot Store snapshot and hand it
    to the pure engines (FIFO, geometry, valuation).

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes MutationGuard, compute_remaining, value_of_removal and the
    geometry engine; persists through ledger_kernel.models.

Invariants enforced:
    - Single writer per material: SELECT ... FOR UPDATE on the material row
      plus the optimistic version column, so two concurrent removals cannot
      both pass validation against a stale balance.
    - Atomic append: the event rows and the aggregate update are flushed
      together; the caller owns commit/rollback.
    - Monotonic ordering: each event takes the material's next sequence
      number, breaking timestamp ties in insertion order.
    - Append-only: events are never updated or deleted.

Failure modes:
    - MaterialNotFoundError / RemovalNotFoundError for unknown ids.
    - LedgerMutationError subclasses from the guard (nothing persisted).
    - OptimisticLockError when a concurrent writer won the race.

Audit relevance:
    Every accepted mutation is logged with material, actor, lengths and
    the new aggregate.  StockReplenished events are dispatched to listeners
    after the addition is flushed.

Usage:
    with session_scope() as session:
        ledger = StockLedgerService(session, SystemClock(), get_active_config())
        lot = ledger.add_stock(material_id, Decimal("6000"), 2,
                               unit_price=Decimal("1.85"), price_unit="per_kg",
                               actor_id=user_id)
        ledger.remove_stock(material_id, Decimal("1500"), actor_id=user_id)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_config import LedgerConfig, get_active_config
from ledger_engines.fifo import FifoResult, compute_remaining
from ledger_engines.geometry import compute_mass_per_meter_for
from ledger_engines.guard import (
    AggregateRemoval,
    MutationGuard,
    PerLotRemoval,
    RemovalPlan,
)
from ledger_engines.valuation import (
    HistoryLine,
    RemovalValuation,
    StockValuation,
    ledger_history,
    value_of_removal,
    value_on_hand,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.currency import CurrencyRegistry
from ledger_kernel.domain.ledger import (
    LedgerIntegrityWarning,
    Lot,
    Material,
    PriceUnit,
    Removal,
    StockReplenished,
    to_decimal,
)
from ledger_kernel.exceptions import (
    InvalidInputError,
    MaterialNotFoundError,
    OptimisticLockError,
    RemovalNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.ledger_event import LotModel, RemovalModel
from ledger_kernel.models.material import MaterialModel
from ledger_kernel.selectors.ledger_selector import (
    LedgerSelector,
    lot_from_model,
    material_from_model,
    removal_from_model,
)

logger = get_logger("services.stock_ledger")


class ReplenishmentListener(Protocol):
    """Receives StockReplenished after an addition has been flushed."""

    def on_stock_replenished(self, event: StockReplenished) -> None: ...


class ReorderCloser:
    """
    Closes pending reorder requests when stock for the material arrives.

    Holds the set of materials with an open reorder request; an addition
    for one of them moves it to ``closed``.
    """

    def __init__(self, pending: Iterable[UUID] = ()):
        self.pending: set[UUID] = set(pending)
        self.closed: list[StockReplenished] = []

    def request_reorder(self, material_id: UUID) -> None:
        self.pending.add(material_id)

    def on_stock_replenished(self, event: StockReplenished) -> None:
        if event.material_id not in self.pending:
            return
        self.pending.discard(event.material_id)
        self.closed.append(event)
        logger.info("reorder_closed", extra={
            "material_id": str(event.material_id),
            "lot_id": str(event.lot_id) if event.lot_id else None,
            "added_mm": str(event.added_mm),
        })


@dataclass(frozen=True)
class IntegrityReport:
    """Cached aggregate compared with what the events say."""

    material_id: UUID
    cached_aggregate_mm: Decimal
    derived_aggregate_mm: Decimal
    fifo_remaining_mm: Decimal
    integrity_warning: LedgerIntegrityWarning | None = None

    @property
    def is_consistent(self) -> bool:
        return (
            self.integrity_warning is None
            and self.cached_aggregate_mm == self.derived_aggregate_mm == self.fifo_remaining_mm
        )


class StockLedgerService:
    """
    Ledger writes and reads for materials.

    Contract:
        Receives a Session from the caller; flushes, never commits.
    Guarantees:
        - A rejected request leaves no trace in the session.
        - ``aggregate_mm`` stays equal to added - removed.
    Non-goals:
        - Does not own reorder workflows; listeners do.  A listener that
          raises fails the addition's transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
        listeners: Sequence[ReplenishmentListener] = (),
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.config = config or get_active_config()
        self.listeners = tuple(listeners)
        self._selector = LedgerSelector(session)
        self._guard = MutationGuard()
        self._density_table = self.config.density_table()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def register_material(
        self,
        name: str,
        shape: str | None = None,
        dimensions: Mapping[str, Any] | None = None,
        material_grade: str | None = None,
        *,
        profile_id: str | None = None,
        profile_kg_per_meter: Decimal | None = None,
        actor_id: UUID,
    ) -> Material:
        """Create a material with an empty ledger."""
        if not name or not name.strip():
            raise InvalidInputError("name", name, "must not be empty")
        model = MaterialModel(
            id=uuid4(),
            name=name.strip(),
            shape=shape,
            dimensions={
                k: (None if v is None else str(v)) for k, v in (dimensions or {}).items()
            },
            material_grade=material_grade,
            profile_id=profile_id,
            profile_kg_per_meter=(
                to_decimal(profile_kg_per_meter, "profile_kg_per_meter")
                if profile_kg_per_meter is not None else None
            ),
            aggregate_mm=Decimal("0"),
            next_sequence=0,
            created_by_id=actor_id,
        )
        self.session.add(model)
        self.session.flush()

        logger.info("material_registered", extra={
            "material_id": str(model.id),
            "material_name": model.name,
            "shape": shape,
        })
        return material_from_model(model)

    def add_stock(
        self,
        material_id: UUID,
        length_per_piece_mm: Decimal,
        pieces: int = 1,
        *,
        unit_price: Decimal | None = None,
        price_unit: PriceUnit | str | None = None,
        supplier_id: str | None = None,
        currency: str | None = None,
        location: str | None = None,
        note: str | None = None,
        actor_id: UUID,
    ) -> Lot:
        """
        Append a lot and raise the aggregate.

        Raises:
            InvalidInputError: non-positive length or pieces, negative
                price, unknown price unit or currency.
            MaterialNotFoundError: unknown material.
        """
        with LogContext.bind(material_id=str(material_id), actor_id=str(actor_id)):
            model = self._lock_material(material_id)
            plan = self._guard.validate_addition(
                material_from_model(model), length_per_piece_mm, pieces
            )
            price, unit, currency = self._validate_pricing(unit_price, price_unit, currency)

            timestamp = self.clock.now()
            lot_model = LotModel(
                id=uuid4(),
                material_id=material_id,
                timestamp=timestamp,
                sequence=self._next_sequence(model),
                length_per_piece_mm=plan.length_per_piece_mm,
                pieces=plan.pieces,
                unit_price=price,
                price_unit=unit.value if unit else None,
                supplier_id=supplier_id,
                currency=currency,
                location=location,
                note=note,
                created_by_id=actor_id,
            )
            self.session.add(lot_model)
            model.aggregate_mm = plan.new_aggregate_mm
            self._flush(model)

            lot = lot_from_model(lot_model)
            logger.info("stock_added", extra={
                "lot_id": str(lot.lot_id),
                "total_mm": str(plan.total_mm),
                "new_aggregate_mm": str(plan.new_aggregate_mm),
            })

            event = plan.replenished(lot.lot_id, timestamp)
            for listener in self.listeners:
                listener.on_stock_replenished(event)
            return lot

    def remove_stock(
        self,
        material_id: UUID,
        requested_mm: Decimal,
        *,
        note: str | None = None,
        actor_id: UUID,
    ) -> tuple[Removal, ...]:
        """
        Remove ``requested_mm``; FIFO replay decides which lots it drew from.

        Raises:
            InvalidInputError: non-positive request.
            InsufficientBalanceError: request exceeds the aggregate.
        """
        with LogContext.bind(material_id=str(material_id), actor_id=str(actor_id)):
            model = self._lock_material(material_id)
            plan = self._guard.validate_removal(
                material_from_model(model), AggregateRemoval(requested_mm)
            )
            return self._append_removals(model, plan, {None: note}, actor_id)

    def remove_from_lots(
        self,
        material_id: UUID,
        selections: Mapping[UUID, Decimal],
        *,
        stated_total_mm: Decimal | None = None,
        notes: Mapping[UUID, str] | None = None,
        actor_id: UUID,
    ) -> tuple[Removal, ...]:
        """
        Remove an explicit length from each selected lot.

        One removal event (pieces = 1) is appended per selected lot.

        Raises:
            LotNotFoundError / LotDepletedError / InsufficientBalanceError /
            RemovalTotalMismatchError / InvalidInputError from the guard.
        """
        with LogContext.bind(material_id=str(material_id), actor_id=str(actor_id)):
            model = self._lock_material(material_id)
            plan = self._guard.validate_removal(
                material_from_model(model),
                PerLotRemoval(selections, stated_total_mm),
                self._selector.lot_store(material_id),
            )
            lot_notes = {UUID(str(lot_id)): note for lot_id, note in (notes or {}).items()}
            return self._append_removals(model, plan, lot_notes, actor_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def material(self, material_id: UUID) -> Material:
        return self._selector.material(material_id)

    def balances(self, material_id: UUID) -> FifoResult:
        """Remaining length per lot, now."""
        self._selector.material(material_id)
        store = self._selector.lot_store(material_id)
        return compute_remaining(store.lots, store.removals)

    def mass_per_meter(self, material_id: UUID) -> Decimal | None:
        """kg/m of the material, or None when its geometry is unknown."""
        material = self._selector.material(material_id)
        return compute_mass_per_meter_for(
            material.geometry,
            profile_lookup=self._selector.profile_kg_per_meter,
            density_table=self._density_table,
        )

    def value_removal(self, removal_id: UUID) -> RemovalValuation:
        removal = self._selector.removal(removal_id)
        if removal is None:
            raise RemovalNotFoundError(str(removal_id))
        store = self._selector.lot_store(removal.material_id)
        return value_of_removal(
            removal,
            store.lots,
            store.removals,
            self.mass_per_meter(removal.material_id),
            default_currency=self.config.default_currency,
        )

    def history(self, material_id: UUID) -> tuple[HistoryLine, ...]:
        """Additions and removals with weight and value, newest first."""
        kg_per_meter = self.mass_per_meter(material_id)
        return ledger_history(
            self._selector.lot_store(material_id),
            kg_per_meter,
            default_currency=self.config.default_currency,
        )

    def value_on_hand(self, material_id: UUID) -> StockValuation:
        kg_per_meter = self.mass_per_meter(material_id)
        store = self._selector.lot_store(material_id)
        return value_on_hand(
            store.lots,
            store.removals,
            kg_per_meter,
            default_currency=self.config.default_currency,
        )

    def check_integrity(self, material_id: UUID) -> IntegrityReport:
        """Compare the cached aggregate with the events."""
        material = self._selector.material(material_id)
        store = self._selector.lot_store(material_id)
        fifo = compute_remaining(store.lots, store.removals)
        report = IntegrityReport(
            material_id=material_id,
            cached_aggregate_mm=material.aggregate_mm,
            derived_aggregate_mm=store.derived_aggregate_mm,
            fifo_remaining_mm=fifo.total_remaining_mm,
            integrity_warning=fifo.integrity_warning,
        )
        if not report.is_consistent:
            logger.warning("ledger_integrity_mismatch", extra={
                "material_id": str(material_id),
                "cached_aggregate_mm": str(report.cached_aggregate_mm),
                "derived_aggregate_mm": str(report.derived_aggregate_mm),
                "fifo_remaining_mm": str(report.fifo_remaining_mm),
            })
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_material(self, material_id: UUID) -> MaterialModel:
        model = self.session.execute(
            select(MaterialModel)
            .where(MaterialModel.id == material_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise MaterialNotFoundError(str(material_id))
        return model

    def _next_sequence(self, model: MaterialModel) -> int:
        model.next_sequence += 1
        return model.next_sequence

    def _flush(self, model: MaterialModel) -> None:
        # The session is unusable after a failed flush; read the id first.
        material_id = str(model.id)
        try:
            self.session.flush()
        except StaleDataError as e:
            logger.warning("material_version_conflict", extra={
                "material_id": material_id,
            })
            raise OptimisticLockError("Material", material_id) from e

    def _validate_pricing(
        self,
        unit_price: Decimal | None,
        price_unit: PriceUnit | str | None,
        currency: str | None,
    ) -> tuple[Decimal | None, PriceUnit | None, str | None]:
        price = None
        if unit_price is not None:
            try:
                price = to_decimal(unit_price, "unit_price")
            except ValueError as e:
                raise InvalidInputError("unit_price", unit_price, "must be a number") from e
            if price < 0:
                raise InvalidInputError("unit_price", unit_price, "cannot be negative")

        unit = None
        if price_unit is not None:
            try:
                unit = PriceUnit(price_unit)
            except ValueError as e:
                raise InvalidInputError(
                    "price_unit", price_unit, "must be 'per_kg' or 'per_meter'"
                ) from e

        if currency is not None:
            currency = currency.upper()
            if not CurrencyRegistry.is_valid(currency):
                raise InvalidInputError("currency", currency, "unknown ISO 4217 code")
        return price, unit, currency

    def _append_removals(
        self,
        model: MaterialModel,
        plan: RemovalPlan,
        notes: Mapping[UUID | None, str | None],
        actor_id: UUID,
    ) -> tuple[Removal, ...]:
        timestamp = self.clock.now()
        rows: list[RemovalModel] = []
        for line in plan.lines:
            row = RemovalModel(
                id=uuid4(),
                material_id=model.id,
                timestamp=timestamp,
                sequence=self._next_sequence(model),
                length_per_piece_mm=line.length_mm,
                pieces=1,
                note=notes.get(line.lot_id),
                source_lot_id=line.lot_id,
                created_by_id=actor_id,
            )
            self.session.add(row)
            rows.append(row)
        model.aggregate_mm = plan.new_aggregate_mm
        self._flush(model)

        removals = tuple(removal_from_model(row) for row in rows)
        logger.info("stock_removed", extra={
            "mode": plan.mode.value,
            "removal_ids": [str(r.removal_id) for r in removals],
            "total_mm": str(plan.total_mm),
            "new_aggregate_mm": str(plan.new_aggregate_mm),
        })
        return removals
