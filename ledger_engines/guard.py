"""
Module: ledger_engines.guard
Responsibility:
    Validate addition and removal requests against current balances
    before anything is persisted.  Produces a plan the persistence
    collaborator applies atomically; performs no persistence itself.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock.
    Called by ledger_services.stock_ledger inside the validate -> append
    transaction, after the material row is locked.

Invariants enforced:
    - Aggregate quantity never drops below zero.
    - All-or-nothing: any failing selection rejects the whole request
      before a plan exists.
    - Per-lot removals: each selected lot exists, has positive remaining
      length at "now", and covers the requested length; the selection sum
      is covered by the aggregate and matches a stated total when given.

Failure modes:
    - InvalidInputError: non-positive length, pieces or requested total;
      per-lot request with no positive selection or no lot store.
    - InsufficientBalanceError: aggregate or per-lot shortfall, with the
      actual available length so the caller can retry.
    - LotNotFoundError / LotDepletedError: bad per-lot selection.
    - RemovalTotalMismatchError: selections do not add up to the stated
      total.

Audit relevance:
    Every rejection is logged with the requested and available lengths.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import NoReturn
from uuid import UUID

from ledger_engines.fifo import compute_remaining
from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.ledger import Material, StockReplenished, to_decimal
from ledger_kernel.domain.lot_store import LotStore
from ledger_kernel.exceptions import (
    InsufficientBalanceError,
    InvalidInputError,
    LotDepletedError,
    LotNotFoundError,
    RemovalTotalMismatchError,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.guard")

ZERO = Decimal("0")


class RemovalMode(str, Enum):
    AGGREGATE = "aggregate"
    PER_LOT = "per_lot"


@dataclass(frozen=True)
class AggregateRemoval:
    """Remove ``requested_mm`` from the material; FIFO decides the lots."""

    requested_mm: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "requested_mm", to_decimal(self.requested_mm, "requested_mm"))


def _as_lot_id(value: UUID | str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise ValueError(f"lot id is not a UUID: {value!r}") from e


@dataclass(frozen=True)
class PerLotRemoval:
    """
    Remove an explicit length from each selected lot.

    ``stated_total_mm`` is the total the operator meant to remove, if the
    caller knows one; the selections must then add up to it exactly.
    """

    selections: Mapping[UUID, Decimal]
    stated_total_mm: Decimal | None = None

    def __post_init__(self) -> None:
        selections: dict[UUID, Decimal] = {}
        for lot_id, mm in self.selections.items():
            key = _as_lot_id(lot_id)
            if key in selections:
                raise ValueError(f"lot {key} selected more than once")
            selections[key] = to_decimal(mm, "selection_mm")
        object.__setattr__(self, "selections", selections)
        if self.stated_total_mm is not None:
            object.__setattr__(
                self, "stated_total_mm", to_decimal(self.stated_total_mm, "stated_total_mm")
            )


RemovalRequest = AggregateRemoval | PerLotRemoval


@dataclass(frozen=True)
class AdditionPlan:
    """An accepted addition, ready to be persisted."""

    material_id: UUID
    length_per_piece_mm: Decimal
    pieces: int
    total_mm: Decimal
    new_aggregate_mm: Decimal

    def replenished(self, lot_id: UUID | None, occurred_at: datetime | None = None) -> StockReplenished:
        """The event to emit once the lot has been persisted."""
        return StockReplenished(
            material_id=self.material_id,
            lot_id=lot_id,
            added_mm=self.total_mm,
            new_aggregate_mm=self.new_aggregate_mm,
            occurred_at=occurred_at,
        )


@dataclass(frozen=True)
class RemovalLine:
    """One removal event to persist; ``lot_id`` is None in aggregate mode."""

    lot_id: UUID | None
    length_mm: Decimal


@dataclass(frozen=True)
class RemovalPlan:
    """
    An accepted removal, ready to be persisted.

    Guarantees:
        - ``total_mm == sum(line.length_mm for line in lines)``.
        - ``new_aggregate_mm >= 0``.
    """

    material_id: UUID
    mode: RemovalMode
    lines: tuple[RemovalLine, ...] = field(default_factory=tuple)
    total_mm: Decimal = ZERO
    new_aggregate_mm: Decimal = ZERO


class MutationGuard:
    """
    Validate ledger mutations against a material's current balance.

    Contract:
        Stateless; every method is a pure function of its arguments.
    Non-goals:
        - Does not lock, persist, or emit events; the caller does that
          in the same transaction as the validation.
    """

    @traced_engine("guard.addition", "1.0")
    def validate_addition(
        self,
        material: Material,
        length_per_piece_mm: Decimal,
        pieces: int,
    ) -> AdditionPlan:
        """
        Accept an addition of ``pieces`` x ``length_per_piece_mm``.

        Raises:
            InvalidInputError: length or piece count is not positive.
        """
        length = to_decimal(length_per_piece_mm, "length_per_piece_mm")
        if length <= ZERO:
            self._reject_input(material, "length_per_piece_mm", length)
        if isinstance(pieces, bool) or not isinstance(pieces, int) or pieces <= 0:
            self._reject_input(material, "pieces", pieces, "must be a positive integer")

        total = length * pieces
        plan = AdditionPlan(
            material_id=material.material_id,
            length_per_piece_mm=length,
            pieces=pieces,
            total_mm=total,
            new_aggregate_mm=material.aggregate_mm + total,
        )
        logger.info("guard_addition_accepted", extra={
            "material_id": str(material.material_id),
            "total_mm": str(total),
            "new_aggregate_mm": str(plan.new_aggregate_mm),
        })
        return plan

    @traced_engine("guard.removal", "1.0")
    def validate_removal(
        self,
        material: Material,
        request: RemovalRequest,
        store: LotStore | None = None,
    ) -> RemovalPlan:
        """
        Accept a removal request or raise.

        Args:
            material: The material, with its current cached aggregate.
            request: AggregateRemoval or PerLotRemoval.
            store: The material's events; required for per-lot removals.
        """
        match request:
            case AggregateRemoval():
                return self._validate_aggregate(material, request)
            case PerLotRemoval():
                return self._validate_per_lot(material, request, store)
            case _:
                raise TypeError(f"Unsupported removal request: {type(request).__name__}")

    def _validate_aggregate(self, material: Material, request: AggregateRemoval) -> RemovalPlan:
        requested = request.requested_mm
        if requested <= ZERO:
            self._reject_input(material, "requested_mm", requested)
        self._check_aggregate(material, requested)

        return self._accepted(
            material,
            RemovalMode.AGGREGATE,
            (RemovalLine(lot_id=None, length_mm=requested),),
        )

    def _validate_per_lot(
        self,
        material: Material,
        request: PerLotRemoval,
        store: LotStore | None,
    ) -> RemovalPlan:
        if store is None:
            self._reject_input(material, "store", None, "required for per-lot removal")
        material_id = str(material.material_id)

        balances = compute_remaining(store.lots, store.removals)
        lines: list[RemovalLine] = []
        for lot_id, mm in request.selections.items():
            if mm < ZERO:
                self._reject_input(material, "selection_mm", mm)
            if mm == ZERO:
                continue
            if store.lot(lot_id) is None:
                logger.warning("guard_removal_rejected", extra={
                    "material_id": material_id,
                    "reason": "lot_not_found",
                    "lot_id": str(lot_id),
                })
                raise LotNotFoundError(str(lot_id), material_id)
            remaining = balances.remaining_for(lot_id)
            if remaining <= ZERO:
                logger.warning("guard_removal_rejected", extra={
                    "material_id": material_id,
                    "reason": "lot_depleted",
                    "lot_id": str(lot_id),
                })
                raise LotDepletedError(str(lot_id), material_id)
            if mm > remaining:
                logger.warning("guard_removal_rejected", extra={
                    "material_id": material_id,
                    "reason": "insufficient_lot_balance",
                    "lot_id": str(lot_id),
                    "requested_mm": str(mm),
                    "available_mm": str(remaining),
                })
                raise InsufficientBalanceError(material_id, mm, remaining, lot_id=str(lot_id))
            lines.append(RemovalLine(lot_id=lot_id, length_mm=mm))

        if not lines:
            self._reject_input(
                material, "selections", dict(request.selections),
                "must select at least one lot with a positive length",
            )

        selected = sum((line.length_mm for line in lines), ZERO)
        if request.stated_total_mm is not None and selected != request.stated_total_mm:
            logger.warning("guard_removal_rejected", extra={
                "material_id": material_id,
                "reason": "total_mismatch",
                "stated_total_mm": str(request.stated_total_mm),
                "selected_total_mm": str(selected),
            })
            raise RemovalTotalMismatchError(material_id, request.stated_total_mm, selected)
        self._check_aggregate(material, selected)

        return self._accepted(material, RemovalMode.PER_LOT, tuple(lines))

    def _check_aggregate(self, material: Material, requested: Decimal) -> None:
        available = material.aggregate_mm
        if requested > available:
            logger.warning("guard_removal_rejected", extra={
                "material_id": str(material.material_id),
                "reason": "insufficient_balance",
                "requested_mm": str(requested),
                "available_mm": str(available),
            })
            raise InsufficientBalanceError(str(material.material_id), requested, available)

    def _accepted(
        self,
        material: Material,
        mode: RemovalMode,
        lines: tuple[RemovalLine, ...],
    ) -> RemovalPlan:
        total = sum((line.length_mm for line in lines), ZERO)
        plan = RemovalPlan(
            material_id=material.material_id,
            mode=mode,
            lines=lines,
            total_mm=total,
            new_aggregate_mm=material.aggregate_mm - total,
        )
        logger.info("guard_removal_accepted", extra={
            "material_id": str(material.material_id),
            "mode": mode.value,
            "total_mm": str(total),
            "new_aggregate_mm": str(plan.new_aggregate_mm),
        })
        return plan

    def _reject_input(
        self,
        material: Material,
        field_name: str,
        value: object,
        reason: str = "must be positive",
    ) -> NoReturn:
        logger.warning("guard_invalid_input", extra={
            "material_id": str(material.material_id),
            "field": field_name,
            "value": str(value),
            "reason": reason,
        })
        raise InvalidInputError(field_name, value, reason)
