"""
Typed Exception Hierarchy for the Stock Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock movements are rejected for a handful of precise reasons (bad input,
not enough material, a lot that is already used up).  Callers must be able
to tell these apart without parsing message strings:

    try:
        service.remove_stock(material_id, Decimal("1200"))
    except InsufficientBalanceError as e:
        show(f"Only {e.available_mm} mm left")     # structured data
        api_response(code=e.code)                  # machine-readable

Every exception has:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockLedgerError (base)
    |
    +-- LedgerMutationError
    |   +-- InvalidInputError
    |   +-- InsufficientBalanceError
    |   +-- LotNotFoundError
    |   +-- LotDepletedError
    |   +-- RemovalTotalMismatchError
    |
    +-- MaterialNotFoundError
    +-- RemovalNotFoundError
    |
    +-- GeometryError
    |   +-- UnknownGeometryError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|--------------------------------------
Mutation     | INVALID_INPUT             | Non-positive length, pieces or total
             | INSUFFICIENT_BALANCE      | Removal exceeds aggregate or lot balance
             | LOT_NOT_FOUND             | Per-lot removal names an unknown lot
             | LOT_DEPLETED              | Per-lot removal names a used-up lot
             | REMOVAL_TOTAL_MISMATCH    | Per-lot amounts != stated total
-------------|---------------------------|--------------------------------------
Lookup       | MATERIAL_NOT_FOUND        | Material id doesn't exist
             | REMOVAL_NOT_FOUND         | Removal id doesn't exist
-------------|---------------------------|--------------------------------------
Geometry     | UNKNOWN_GEOMETRY          | Strict caller needs kg/m, none derivable
-------------|---------------------------|--------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT  | Material row changed under the writer
-------------|---------------------------|--------------------------------------
Immutability | IMMUTABILITY_VIOLATION    | UPDATE/DELETE of a lot or removal row

Ledger integrity problems found on the read path (more removed than ever
added) are NOT exceptions: see ``LedgerIntegrityWarning`` in
``ledger_kernel.domain.ledger``.  Read paths clamp and report, never raise.

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Inherit from Exception (not ValueError).  Domain rejections are caught
   as a group; programming errors (ValueError from value objects) stay
   distinct.

2. ``code`` is a class attribute so it can be read without instantiation.

3. Quantities are stored as ``Decimal`` attributes so the caller can
   retry with the reported available amount.
===============================================================================
"""

from decimal import Decimal


class StockLedgerError(Exception):
    """
    Base exception for all stock ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_LEDGER_ERROR"


# Mutation guard rejections


class LedgerMutationError(StockLedgerError):
    """Base exception for rejected additions and removals."""

    code: str = "LEDGER_MUTATION_ERROR"


class InvalidInputError(LedgerMutationError):
    """A length, piece count or total was not strictly positive."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, value: object, reason: str = "must be positive"):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}: {value!r} ({reason})")


class InsufficientBalanceError(LedgerMutationError):
    """
    Requested removal exceeds the available balance.

    ``lot_id`` is set when the shortfall is against a single lot (per-lot
    removal); it is None for aggregate shortfalls.
    """

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        material_id: str,
        requested_mm: Decimal,
        available_mm: Decimal,
        lot_id: str | None = None,
    ):
        self.material_id = material_id
        self.requested_mm = requested_mm
        self.available_mm = available_mm
        self.lot_id = lot_id
        scope = f"lot {lot_id}" if lot_id else f"material {material_id}"
        super().__init__(
            f"Cannot remove {requested_mm} mm from {scope}: "
            f"only {available_mm} mm available"
        )


class LotNotFoundError(LedgerMutationError):
    """A per-lot removal referenced a lot that is not in the ledger."""

    code: str = "LOT_NOT_FOUND"

    def __init__(self, lot_id: str, material_id: str):
        self.lot_id = lot_id
        self.material_id = material_id
        super().__init__(f"Lot {lot_id} not found for material {material_id}")


class LotDepletedError(LedgerMutationError):
    """A per-lot removal referenced a lot with no remaining length."""

    code: str = "LOT_DEPLETED"

    def __init__(self, lot_id: str, material_id: str):
        self.lot_id = lot_id
        self.material_id = material_id
        super().__init__(
            f"Lot {lot_id} of material {material_id} has no remaining length"
        )


class RemovalTotalMismatchError(LedgerMutationError):
    """Per-lot removal amounts do not add up to the stated total."""

    code: str = "REMOVAL_TOTAL_MISMATCH"

    def __init__(self, material_id: str, stated_total_mm: Decimal, selected_total_mm: Decimal):
        self.material_id = material_id
        self.stated_total_mm = stated_total_mm
        self.selected_total_mm = selected_total_mm
        super().__init__(
            f"Per-lot removals for material {material_id} sum to "
            f"{selected_total_mm} mm, expected {stated_total_mm} mm"
        )


# Lookup errors


class MaterialNotFoundError(StockLedgerError):
    """Material with given ID was not found."""

    code: str = "MATERIAL_NOT_FOUND"

    def __init__(self, material_id: str):
        self.material_id = material_id
        super().__init__(f"Material not found: {material_id}")


class RemovalNotFoundError(StockLedgerError):
    """Removal event with given ID was not found."""

    code: str = "REMOVAL_NOT_FOUND"

    def __init__(self, removal_id: str):
        self.removal_id = removal_id
        super().__init__(f"Removal not found: {removal_id}")


# Geometry errors


class GeometryError(StockLedgerError):
    """Base exception for geometry-related errors."""

    code: str = "GEOMETRY_ERROR"


class UnknownGeometryError(GeometryError):
    """
    No mass-per-length value can be derived for a material.

    Only raised by callers that explicitly demand a weight; the ledger's
    own read paths degrade to "unavailable" instead.
    """

    code: str = "UNKNOWN_GEOMETRY"

    def __init__(self, shape: str | None, missing: tuple[str, ...] = ()):
        self.shape = shape
        self.missing = missing
        detail = f" (missing: {', '.join(missing)})" if missing else ""
        super().__init__(f"Cannot derive kg/m for shape {shape!r}{detail}")


# Concurrency errors


class ConcurrencyError(StockLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability errors


class ImmutabilityError(StockLedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an immutable ledger event."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
