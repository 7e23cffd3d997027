"""
Module: ledger_engines.geometry
Responsibility:
    Convert a material's cross-section descriptor (shape + dimensions in
    millimetres + material grade, or a standardized-profile reference)
    into a mass-per-length value in kg/m.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Profile lookups are injected as a callable; this module never touches
    the database.

Invariants enforced:
    - Precedence: an embedded profile kg/m wins, then a looked-up profile
      kg/m, then area formula x density.
    - Unknown is not zero: an unresolvable descriptor yields ``None``;
      ``Decimal("0")`` is reserved for a genuinely weightless result.
    - Decimal-only arithmetic.

Failure modes:
    - None (unknown) for unrecognised shapes, missing, non-numeric or
      non-positive dimensions, and tubes whose wall fills the section.
    - UnknownGeometryError only from ``require_mass_per_meter``.

Usage:
    from ledger_engines.geometry import compute_mass_per_meter

    kg_m = compute_mass_per_meter("Round bar", {"diameter": 20}, "C45")
    # Decimal('2.466150233...')
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.ledger import (
    MM_PER_METER,
    GeometryDescriptor,
    ProfileHint,
    Shape,
)
from ledger_kernel.exceptions import UnknownGeometryError
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.geometry")

PI = Decimal("3.14159265358979323846264338327950288")
SQRT_3 = Decimal(3).sqrt()

DEFAULT_DENSITY = Decimal("7850")  # kg/m3, structural and engineering steel

DEFAULT_DENSITIES: Mapping[str, Decimal] = {
    "s355": Decimal("7850"),
    "s235": Decimal("7850"),
    "c45": Decimal("7850"),
    "c60": Decimal("7850"),
    "42crmo4": Decimal("7850"),
    "16mncr5": Decimal("7850"),
    "1.4301": Decimal("8000"),  # stainless
    "1.4305": Decimal("8000"),  # stainless, free machining
    "alsimg1": Decimal("2700"),  # aluminium
    "x153crmov12": Decimal("7700"),  # tool steel
}

# Required dimensions per shape, in the order they are reported when missing
REQUIRED_DIMENSIONS: Mapping[Shape, tuple[str, ...]] = {
    Shape.ROUND_BAR: ("diameter",),
    Shape.SQUARE_BAR: ("side",),
    Shape.RECTANGULAR_BAR: ("width", "height"),
    Shape.HEX_BAR: ("diameter",),
    Shape.ROUND_TUBE: ("outerDiameter", "wallThickness"),
    Shape.SQUARE_TUBE: ("side", "wallThickness"),
    Shape.RECTANGULAR_TUBE: ("width", "height", "wallThickness"),
    Shape.SHEET: ("thickness", "width"),
}

ProfileLookup = Callable[[str], Decimal | None]


class MassSource(str, Enum):
    """Where a kg/m value came from."""

    EMBEDDED_PROFILE = "embedded_profile"
    PROFILE_TABLE = "profile_table"
    FORMULA = "formula"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DensityTable:
    """
    Case-insensitive material grade -> density (kg/m3) lookup.

    Grades not in the table fall back to ``default_density`` (ferrous).
    """

    densities: Mapping[str, Decimal]
    default_density: Decimal = DEFAULT_DENSITY

    def __post_init__(self) -> None:
        normalized = {
            str(grade).strip().lower(): Decimal(str(value))
            for grade, value in self.densities.items()
        }
        object.__setattr__(self, "densities", normalized)

    @classmethod
    def standard(cls) -> DensityTable:
        return cls(densities=DEFAULT_DENSITIES)

    def density_for(self, grade: str | None) -> Decimal:
        if not grade:
            return self.default_density
        return self.densities.get(str(grade).strip().lower(), self.default_density)


@dataclass(frozen=True)
class MassResolution:
    """Outcome of resolving a descriptor to kg/m."""

    kg_per_meter: Decimal | None
    source: MassSource
    missing: tuple[str, ...] = ()

    @property
    def is_known(self) -> bool:
        return self.kg_per_meter is not None


def _dimension_key(name: str) -> str:
    return name.replace("_", "").lower()


def _read_dimensions(
    dimensions: Mapping[str, Any] | None,
    required: tuple[str, ...],
) -> tuple[dict[str, Decimal], tuple[str, ...]]:
    """Pick the required dimensions (camelCase or snake_case keys) as metres."""
    by_key = {_dimension_key(str(k)): v for k, v in (dimensions or {}).items()}
    found: dict[str, Decimal] = {}
    missing: list[str] = []
    for name in required:
        raw = by_key.get(_dimension_key(name))
        try:
            value = Decimal(str(raw)) if raw not in (None, "") else None
        except (InvalidOperation, ValueError):
            value = None
        if value is None or not value.is_finite() or value <= 0:
            missing.append(name)
        else:
            found[name] = value / MM_PER_METER
    return found, tuple(missing)


def cross_section_area(shape: Shape, dims: Mapping[str, Decimal]) -> Decimal | None:
    """Cross-sectional area in m2 from dimensions already converted to metres.

    Returns None when a hollow section has no material left (wall too thick).
    """
    match shape:
        case Shape.ROUND_BAR:
            r = dims["diameter"] / 2
            return PI * r * r
        case Shape.SQUARE_BAR:
            return dims["side"] * dims["side"]
        case Shape.RECTANGULAR_BAR:
            return dims["width"] * dims["height"]
        case Shape.HEX_BAR:
            r = dims["diameter"] / 2
            return (3 * SQRT_3 / 2) * r * r
        case Shape.ROUND_TUBE:
            outer_r = dims["outerDiameter"] / 2
            inner_r = outer_r - dims["wallThickness"]
            if inner_r <= 0:
                return None
            return PI * (outer_r * outer_r - inner_r * inner_r)
        case Shape.SQUARE_TUBE:
            outer = dims["side"]
            inner = outer - 2 * dims["wallThickness"]
            if inner <= 0:
                return None
            return outer * outer - inner * inner
        case Shape.RECTANGULAR_TUBE:
            outer_w, outer_h = dims["width"], dims["height"]
            inner_w = outer_w - 2 * dims["wallThickness"]
            inner_h = outer_h - 2 * dims["wallThickness"]
            if inner_w <= 0 or inner_h <= 0:
                return None
            return outer_w * outer_h - inner_w * inner_h
        case Shape.SHEET:
            return dims["thickness"] * dims["width"]
    return None


def _positive(value: Decimal | None) -> Decimal | None:
    if value is None:
        return None
    value = Decimal(str(value))
    return value if value > 0 else None


@traced_engine("geometry", "1.0", fingerprint_fields=("shape", "dimensions", "material_grade"))
def resolve_mass_per_meter(
    shape: str | Shape | None,
    dimensions: Mapping[str, Any] | None,
    material_grade: str | None = None,
    profile_hint: ProfileHint | None = None,
    *,
    profile_lookup: ProfileLookup | None = None,
    density_table: DensityTable | None = None,
) -> MassResolution:
    """
    Resolve a cross-section descriptor to kg/m, reporting the source.

    Preconditions:
        Dimensions are millimetres.  ``profile_lookup`` (when given) maps a
        profile id to its kg/m or None.

    Postconditions:
        ``kg_per_meter`` is None (unknown) or a Decimal >= 0.
    """
    if profile_hint is not None:
        embedded = _positive(profile_hint.kg_per_meter)
        if embedded is not None:
            return MassResolution(embedded, MassSource.EMBEDDED_PROFILE)
        if profile_hint.profile_id and profile_lookup is not None:
            looked_up = _positive(profile_lookup(profile_hint.profile_id))
            if looked_up is not None:
                return MassResolution(looked_up, MassSource.PROFILE_TABLE)
            logger.debug("geometry_profile_unresolved", extra={
                "profile_id": profile_hint.profile_id,
            })

    parsed = Shape.parse(shape)
    if parsed is None:
        logger.debug("geometry_unknown_shape", extra={"shape": str(shape)})
        return MassResolution(None, MassSource.UNKNOWN)

    required = REQUIRED_DIMENSIONS[parsed]
    dims, missing = _read_dimensions(dimensions, required)
    if missing:
        logger.debug("geometry_unknown", extra={
            "shape": parsed.value,
            "missing": list(missing),
        })
        return MassResolution(None, MassSource.UNKNOWN, missing)

    area = cross_section_area(parsed, dims)
    if area is None:
        logger.debug("geometry_wall_exceeds_section", extra={
            "shape": parsed.value,
            "dimensions": {k: str(v) for k, v in dims.items()},
        })
        return MassResolution(None, MassSource.UNKNOWN, ("wallThickness",))

    table = density_table or DensityTable.standard()
    density = table.density_for(material_grade)
    return MassResolution(area * density, MassSource.FORMULA)


def compute_mass_per_meter(
    shape: str | Shape | None,
    dimensions: Mapping[str, Any] | None,
    material_grade: str | None = None,
    profile_hint: ProfileHint | None = None,
    *,
    profile_lookup: ProfileLookup | None = None,
    density_table: DensityTable | None = None,
) -> Decimal | None:
    """kg/m for a cross-section, or None when it cannot be derived."""
    return resolve_mass_per_meter(
        shape,
        dimensions,
        material_grade,
        profile_hint,
        profile_lookup=profile_lookup,
        density_table=density_table,
    ).kg_per_meter


def compute_mass_per_meter_for(
    geometry: GeometryDescriptor,
    *,
    profile_lookup: ProfileLookup | None = None,
    density_table: DensityTable | None = None,
) -> Decimal | None:
    """Convenience wrapper taking a material's GeometryDescriptor."""
    return compute_mass_per_meter(
        geometry.shape,
        geometry.dimensions,
        geometry.material_grade,
        geometry.profile,
        profile_lookup=profile_lookup,
        density_table=density_table,
    )


def require_mass_per_meter(
    geometry: GeometryDescriptor,
    *,
    profile_lookup: ProfileLookup | None = None,
    density_table: DensityTable | None = None,
) -> Decimal:
    """Like ``compute_mass_per_meter_for`` but raises when unknown.

    Raises:
        UnknownGeometryError: the descriptor cannot be resolved.
    """
    resolution = resolve_mass_per_meter(
        geometry.shape,
        geometry.dimensions,
        geometry.material_grade,
        geometry.profile,
        profile_lookup=profile_lookup,
        density_table=density_table,
    )
    if resolution.kg_per_meter is None:
        raise UnknownGeometryError(geometry.shape, resolution.missing)
    return resolution.kg_per_meter


def weight_kg(length_mm: Decimal, kg_per_meter: Decimal | None) -> Decimal | None:
    """Weight of ``length_mm`` of material; None when kg/m is unknown."""
    if kg_per_meter is None:
        return None
    return Decimal(str(length_mm)) / MM_PER_METER * kg_per_meter
