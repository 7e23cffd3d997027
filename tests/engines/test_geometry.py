"""
Tests for the Geometry Engine.

Covers:
- Area formulas for every supported shape
- Density lookup (case-insensitive, stainless, default)
- Profile precedence (embedded, lookup, formula)
- Unknown geometry returns None, never zero and never an error
- Weight helper
"""

from decimal import Decimal

import pytest

from ledger_engines.geometry import (
    DensityTable,
    MassSource,
    compute_mass_per_meter,
    compute_mass_per_meter_for,
    require_mass_per_meter,
    resolve_mass_per_meter,
    weight_kg,
)
from ledger_kernel.domain.ledger import GeometryDescriptor, ProfileHint, Shape
from ledger_kernel.exceptions import UnknownGeometryError

TOLERANCE = Decimal("0.0001")


def assert_close(actual: Decimal | None, expected: str) -> None:
    assert actual is not None
    assert abs(actual - Decimal(expected)) < TOLERANCE, f"{actual} != {expected}"


class TestAreaFormulas:
    """kg/m for each shape, S355 steel (7850 kg/m3) unless stated."""

    def test_round_bar(self):
        result = compute_mass_per_meter("Round bar", {"diameter": 20}, "S355")
        assert_close(result, "2.46615")

    def test_square_bar(self):
        result = compute_mass_per_meter("Square bar", {"side": 20}, "S355")
        assert result == Decimal("3.14")

    def test_rectangular_bar(self):
        result = compute_mass_per_meter("Rectangular bar", {"width": 40, "height": 10}, "S355")
        assert result == Decimal("3.14")

    def test_hex_bar(self):
        result = compute_mass_per_meter("Hex bar", {"diameter": 20}, "S355")
        assert_close(result, "2.03949")

    def test_round_tube(self):
        result = compute_mass_per_meter(
            "Round tube", {"outerDiameter": 40, "wallThickness": 5}, "S355"
        )
        assert_close(result, "4.31576")

    def test_square_tube(self):
        result = compute_mass_per_meter("Square tube", {"side": 40, "wallThickness": 2}, "S355")
        assert result == Decimal("2.3864")

    def test_rectangular_tube(self):
        result = compute_mass_per_meter(
            "Rectangular tube", {"width": 60, "height": 40, "wallThickness": 3}, "S355"
        )
        assert result == Decimal("4.4274")

    def test_sheet(self):
        result = compute_mass_per_meter("Sheet", {"thickness": 2, "width": 1000}, "S235")
        assert result == Decimal("15.7")

    def test_shape_enum_and_snake_name_accepted(self):
        by_enum = compute_mass_per_meter(Shape.SQUARE_BAR, {"side": 20}, "C45")
        by_snake = compute_mass_per_meter("square_bar", {"side": 20}, "C45")
        assert by_enum == by_snake == Decimal("3.14")

    def test_snake_case_dimension_keys(self):
        camel = compute_mass_per_meter("Round tube", {"outerDiameter": 40, "wallThickness": 5})
        snake = compute_mass_per_meter("Round tube", {"outer_diameter": 40, "wall_thickness": 5})
        assert camel == snake

    def test_string_dimensions(self):
        result = compute_mass_per_meter("Square bar", {"side": "20"}, "S355")
        assert result == Decimal("3.14")


class TestDensity:
    """Density lookup by material grade."""

    def test_stainless_grades(self):
        assert compute_mass_per_meter("Square bar", {"side": 20}, "1.4301") == Decimal("3.2")
        assert compute_mass_per_meter("Square bar", {"side": 20}, "1.4305") == Decimal("3.2")

    def test_aluminium(self):
        assert compute_mass_per_meter("Square bar", {"side": 20}, "AlSiMg1") == Decimal("1.08")

    def test_lookup_is_case_insensitive(self):
        upper = compute_mass_per_meter("Square bar", {"side": 20}, "42CRMO4")
        lower = compute_mass_per_meter("Square bar", {"side": 20}, "42crmo4")
        assert upper == lower == Decimal("3.14")

    def test_unknown_grade_uses_default(self):
        assert compute_mass_per_meter("Square bar", {"side": 20}, "Unobtainium") == Decimal("3.14")

    def test_missing_grade_uses_default(self):
        assert compute_mass_per_meter("Square bar", {"side": 20}) == Decimal("3.14")

    def test_custom_table(self):
        table = DensityTable(densities={"Brass": 8500}, default_density=Decimal("7000"))
        assert table.density_for("brass") == Decimal("8500")
        assert table.density_for("other") == Decimal("7000")
        result = compute_mass_per_meter("Square bar", {"side": 20}, "BRASS", density_table=table)
        assert result == Decimal("3.4")


class TestProfilePrecedence:
    """Precomputed kg/m wins over the formula."""

    def test_embedded_value_wins(self):
        resolution = resolve_mass_per_meter(
            "Square bar", {"side": 20}, "S355", ProfileHint(kg_per_meter=Decimal("5.5"))
        )
        assert resolution.kg_per_meter == Decimal("5.5")
        assert resolution.source == MassSource.EMBEDDED_PROFILE

    def test_lookup_used_for_profile_id(self):
        lookup = {"L50x5": Decimal("3.77")}.get
        resolution = resolve_mass_per_meter(
            None, {}, None, ProfileHint(profile_id="L50x5"), profile_lookup=lookup
        )
        assert resolution.kg_per_meter == Decimal("3.77")
        assert resolution.source == MassSource.PROFILE_TABLE

    def test_unresolved_profile_falls_back_to_formula(self):
        resolution = resolve_mass_per_meter(
            "Square bar",
            {"side": 20},
            "S355",
            ProfileHint(profile_id="missing"),
            profile_lookup=lambda profile_id: None,
        )
        assert resolution.kg_per_meter == Decimal("3.14")
        assert resolution.source == MassSource.FORMULA

    def test_zero_embedded_value_is_ignored(self):
        result = compute_mass_per_meter(
            "Square bar", {"side": 20}, "S355", ProfileHint(kg_per_meter=Decimal("0"))
        )
        assert result == Decimal("3.14")

    def test_profile_without_lookup_or_shape_is_unknown(self):
        assert compute_mass_per_meter(None, {}, None, ProfileHint(profile_id="HEB100")) is None


class TestUnknownGeometry:
    """Unresolvable descriptors yield None (unknown), never zero."""

    def test_round_tube_missing_wall_thickness(self):
        resolution = resolve_mass_per_meter("Round tube", {"outerDiameter": 40}, "S355")
        assert resolution.kg_per_meter is None
        assert resolution.missing == ("wallThickness",)
        assert not resolution.is_known

    def test_unrecognised_shape(self):
        assert compute_mass_per_meter("Triangle", {"side": 20}, "S355") is None

    def test_no_shape(self):
        assert compute_mass_per_meter(None, {"side": 20}, "S355") is None

    @pytest.mark.parametrize("value", [0, -5, "abc", None, ""])
    def test_bad_dimension_values(self, value):
        assert compute_mass_per_meter("Round bar", {"diameter": value}, "S355") is None

    def test_wall_consumes_whole_tube(self):
        assert compute_mass_per_meter(
            "Round tube", {"outerDiameter": 20, "wallThickness": 10}
        ) is None
        assert compute_mass_per_meter("Square tube", {"side": 20, "wallThickness": 12}) is None
        assert compute_mass_per_meter(
            "Rectangular tube", {"width": 60, "height": 10, "wallThickness": 5}
        ) is None

    def test_require_raises(self):
        geometry = GeometryDescriptor(shape="Round tube", dimensions={"outerDiameter": 40})
        with pytest.raises(UnknownGeometryError) as exc_info:
            require_mass_per_meter(geometry)
        assert exc_info.value.code == "UNKNOWN_GEOMETRY"
        assert exc_info.value.missing == ("wallThickness",)

    def test_require_returns_known_value(self):
        geometry = GeometryDescriptor(shape="Square bar", dimensions={"side": 20}, material_grade="S355")
        assert require_mass_per_meter(geometry) == Decimal("3.14")


class TestDescriptorAndWeight:

    def test_compute_for_descriptor(self):
        geometry = GeometryDescriptor(
            shape="Rectangular bar",
            dimensions={"width": 40, "height": 10},
            material_grade="S355",
        )
        assert compute_mass_per_meter_for(geometry) == Decimal("3.14")

    def test_weight_kg(self):
        assert weight_kg(Decimal("1500"), Decimal("2")) == Decimal("3")

    def test_weight_unknown(self):
        assert weight_kg(Decimal("1500"), None) is None


class TestGeometryTrace:

    def _fingerprints(self, captured_logs):
        return [
            r["input_fingerprint"] for r in captured_logs()
            if r["message"] == "LEDGER_ENGINE_TRACE" and r["engine_name"] == "geometry"
        ]

    def test_distinct_inputs_fingerprint_differently(self, captured_logs):
        compute_mass_per_meter("Round bar", {"diameter": 20}, "C45")
        compute_mass_per_meter("Square bar", {"side": 50}, "1.4301")

        first, second = self._fingerprints(captured_logs)
        assert first != second

    def test_descriptor_path_matches_direct_call(self, captured_logs):
        geometry = GeometryDescriptor(
            shape="Square bar", dimensions={"side": 20}, material_grade="S355"
        )
        compute_mass_per_meter_for(geometry)
        compute_mass_per_meter(shape="Square bar", dimensions={"side": 20}, material_grade="S355")

        first, second = self._fingerprints(captured_logs)
        assert first == second
