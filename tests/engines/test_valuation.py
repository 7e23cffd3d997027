"""
Tests for the Valuation engine.

Covers:
- Pricing per metre and per kilogram
- Removal valuation through FIFO replay (single lot, spanning lots)
- Replay boundary: later lots and later removals are ignored
- Unpriced lots and unknown geometry degrade to zero, never raise
- Stock on hand and ledger history
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_engines.geometry import compute_mass_per_meter
from ledger_engines.valuation import (
    HistoryKind,
    ledger_history,
    material_cost_per_piece,
    price_length,
    value_of_lot,
    value_of_removal,
    value_on_hand,
)
from ledger_kernel.domain.ledger import PriceUnit
from ledger_kernel.domain.lot_store import LotStore
from ledger_kernel.domain.values import Money

from tests.conftest import build_lot, build_removal

KG_M = Decimal("2")


class TestPriceLength:

    def test_per_meter(self):
        assert price_length(Decimal("1500"), Decimal("4"), PriceUnit.PER_METER, None) == Decimal("6")

    def test_per_kg(self):
        assert price_length(Decimal("1500"), Decimal("4"), "per_kg", KG_M) == Decimal("12")

    def test_per_kg_without_geometry_is_unpriced(self):
        assert price_length(Decimal("1500"), Decimal("4"), PriceUnit.PER_KG, None) is None

    def test_no_price(self):
        assert price_length(Decimal("1500"), None, PriceUnit.PER_METER, KG_M) is None
        assert price_length(Decimal("1500"), Decimal("4"), None, KG_M) is None

    def test_cost_per_piece(self):
        assert material_cost_per_piece(Decimal("250"), Decimal("8"), "per_meter", None) == Decimal("2")

    def test_cost_per_piece_zero_length(self):
        assert material_cost_per_piece(Decimal("0"), Decimal("8"), "per_kg", None) == Decimal("0")


class TestValueOfRemoval:
    """FIFO-attributed value of one removal."""

    def setup_method(self):
        self.material_id = uuid4()

    def test_removal_spanning_two_lots_is_additive(self):
        lot_a = build_lot(
            self.material_id, 300, minutes=0, unit_price=10, price_unit="per_kg", currency="EUR"
        )
        lot_b = build_lot(
            self.material_id, 1000, minutes=1, unit_price=12, price_unit="per_kg", currency="EUR"
        )
        removal = build_removal(self.material_id, 700, minutes=2)

        valuation = value_of_removal(removal, [lot_a, lot_b], [removal], KG_M)

        assert valuation.total == Money.of("15.6", "EUR")
        assert valuation.lot_ids == (lot_a.lot_id, lot_b.lot_id)
        assert [line.used_mm for line in valuation.lines] == [Decimal("300"), Decimal("400")]
        assert [line.amount for line in valuation.lines] == [Decimal("6"), Decimal("9.6")]
        assert valuation.is_fully_priced
        assert valuation.unvalued_mm == Decimal("0")

    def test_earlier_removals_consume_first(self):
        lot_a = build_lot(self.material_id, 1000, minutes=0, unit_price=5, price_unit="per_meter")
        lot_b = build_lot(self.material_id, 1000, minutes=1, unit_price=8, price_unit="per_meter")
        first = build_removal(self.material_id, 1000, minutes=2, sequence=1)
        second = build_removal(self.material_id, 500, minutes=3, sequence=2)

        valuation = value_of_removal(second, [lot_a, lot_b], [first, second], None)

        assert valuation.lot_ids == (lot_b.lot_id,)
        assert valuation.total.amount == Decimal("4")

    def test_later_events_ignored(self):
        lot_a = build_lot(self.material_id, 1000, minutes=0, unit_price=5, price_unit="per_meter")
        removal = build_removal(self.material_id, 500, minutes=1)
        later_lot = build_lot(self.material_id, 1000, minutes=2, unit_price=99, price_unit="per_meter")
        later_removal = build_removal(self.material_id, 900, minutes=3)

        valuation = value_of_removal(
            removal, [lot_a, later_lot], [removal, later_removal], None
        )

        assert valuation.lot_ids == (lot_a.lot_id,)
        assert valuation.total.amount == Decimal("2.5")

    def test_same_timestamp_removal_uses_sequence(self):
        lot = build_lot(self.material_id, 1000, sequence=1, unit_price=10, price_unit="per_meter")
        lot_b = build_lot(
            self.material_id, 1000, minutes=0, sequence=2, unit_price=20, price_unit="per_meter"
        )
        first = build_removal(self.material_id, 1000, minutes=5, sequence=3)
        second = build_removal(self.material_id, 1000, minutes=5, sequence=4)

        assert value_of_removal(first, [lot, lot_b], [first, second], None).total.amount == Decimal("10")
        assert value_of_removal(second, [lot, lot_b], [first, second], None).total.amount == Decimal("20")

    def test_per_kg_lot_with_unknown_geometry_is_zero(self):
        lot = build_lot(self.material_id, 1000, unit_price=10, price_unit="per_kg", currency="EUR")
        removal = build_removal(self.material_id, 400, minutes=1)

        valuation = value_of_removal(removal, [lot], [removal], None)

        assert valuation.total == Money.zero("EUR")
        assert not valuation.is_fully_priced
        assert valuation.lines[0].used_mm == Decimal("400")

    def test_unpriced_lot_still_consumes_its_portion(self):
        unpriced = build_lot(self.material_id, 300, minutes=0)
        priced = build_lot(self.material_id, 1000, minutes=1, unit_price=10, price_unit="per_meter")
        removal = build_removal(self.material_id, 500, minutes=2)

        valuation = value_of_removal(removal, [unpriced, priced], [removal], None)

        assert valuation.lines[0].priced is False
        assert valuation.lines[0].amount == Decimal("0")
        assert valuation.lines[1].used_mm == Decimal("200")
        assert valuation.total.amount == Decimal("2")

    def test_currency_from_lot(self):
        lot = build_lot(self.material_id, 1000, unit_price=3, price_unit="per_meter", currency="USD")
        removal = build_removal(self.material_id, 1000, minutes=1)
        valuation = value_of_removal(removal, [lot], [removal], None, default_currency="EUR")
        assert valuation.currency == "USD"

    def test_default_currency_when_lots_have_none(self):
        lot = build_lot(self.material_id, 1000, unit_price=3, price_unit="per_meter")
        removal = build_removal(self.material_id, 1000, minutes=1)
        valuation = value_of_removal(removal, [lot], [removal], None, default_currency="CHF")
        assert valuation.currency == "CHF"

    def test_removal_exceeding_stock_reports_unvalued(self, captured_logs):
        lot = build_lot(self.material_id, 100, unit_price=1, price_unit="per_meter")
        removal = build_removal(self.material_id, 300, minutes=1)

        valuation = value_of_removal(removal, [lot], [removal], None)

        assert valuation.unvalued_mm == Decimal("200")
        assert not valuation.is_fully_priced
        assert any(r["message"] == "valuation_removal_exceeds_stock" for r in captured_logs())

    def test_rounded_total_for_display(self):
        lot = build_lot(self.material_id, 1000, unit_price="0.335", price_unit="per_meter", currency="EUR")
        removal = build_removal(self.material_id, 1000, minutes=1)

        valuation = value_of_removal(removal, [lot], [removal], None)

        assert valuation.total.amount == Decimal("0.335")
        assert valuation.rounded_total == Money.of("0.34", "EUR")

    def test_mixed_currencies_warned(self, captured_logs):
        lot_a = build_lot(
            self.material_id, 300, minutes=0, unit_price=10, price_unit="per_meter", currency="EUR"
        )
        lot_b = build_lot(
            self.material_id, 1000, minutes=1, unit_price=12, price_unit="per_meter", currency="USD"
        )
        removal = build_removal(self.material_id, 700, minutes=2)

        valuation = value_of_removal(removal, [lot_a, lot_b], [removal], None)

        assert valuation.currency == "EUR"
        warning = next(r for r in captured_logs() if r["message"] == "valuation_mixed_currencies")
        assert warning["currencies"] == ["EUR", "USD"]
        assert warning["reported_currency"] == "EUR"

    def test_single_currency_not_warned(self, captured_logs):
        lot = build_lot(self.material_id, 1000, unit_price=3, price_unit="per_meter", currency="USD")
        unpriced = build_lot(self.material_id, 1000, minutes=1, currency="EUR")
        removal = build_removal(self.material_id, 1500, minutes=2)

        value_of_removal(removal, [lot, unpriced], [removal], None)

        assert not any(r["message"] == "valuation_mixed_currencies" for r in captured_logs())

    def test_mixed_materials_rejected(self):
        lot = build_lot(uuid4(), 100)
        removal = build_removal(self.material_id, 50, minutes=1)
        with pytest.raises(ValueError):
            value_of_removal(removal, [lot], [removal], None)


class TestValueOnHand:

    def setup_method(self):
        self.material_id = uuid4()

    def test_remnants_valued_at_own_lot_price(self):
        lot_a = build_lot(self.material_id, 1000, minutes=0, unit_price=5, price_unit="per_meter")
        lot_b = build_lot(self.material_id, 2000, minutes=1, unit_price=8, price_unit="per_meter")
        removal = build_removal(self.material_id, 1500, minutes=2)

        stock = value_on_hand([lot_a, lot_b], [removal], KG_M)

        assert stock.remaining_mm == Decimal("1500")
        assert stock.weight_kg == Decimal("3")
        assert stock.value.amount == Decimal("12")
        assert stock.unpriced_mm == Decimal("0")
        assert stock.integrity_warning is None

    def test_unknown_geometry_has_no_weight(self):
        lot = build_lot(self.material_id, 1000, unit_price=5, price_unit="per_kg")
        stock = value_on_hand([lot], [], None)
        assert stock.weight_kg is None
        assert stock.unpriced_mm == Decimal("1000")
        assert stock.value.is_zero

    def test_mixed_currencies_warned(self, captured_logs):
        lot_a = build_lot(self.material_id, 1000, unit_price=5, price_unit="per_meter", currency="CHF")
        lot_b = build_lot(
            self.material_id, 1000, minutes=1, unit_price=5, price_unit="per_meter", currency="EUR"
        )

        stock = value_on_hand([lot_a, lot_b], [], None)

        assert stock.value.currency.code == "CHF"
        warning = next(r for r in captured_logs() if r["message"] == "valuation_mixed_currencies")
        assert warning["currencies"] == ["CHF", "EUR"]

    def test_empty_stock(self):
        stock = value_on_hand([], [], KG_M, default_currency="EUR")
        assert stock.remaining_mm == Decimal("0")
        assert stock.value == Money.zero("EUR")


class TestLedgerHistory:

    def test_newest_first_with_values(self):
        material_id = uuid4()
        lot = build_lot(material_id, 2000, minutes=0, sequence=1, unit_price=6, price_unit="per_meter")
        first = build_removal(material_id, 500, minutes=1, sequence=2)
        second = build_removal(material_id, 250, minutes=2, sequence=3)
        store = LotStore.of(material_id, [lot], [first, second])

        history = ledger_history(store, KG_M)

        assert [line.event_id for line in history] == [
            second.removal_id, first.removal_id, lot.lot_id,
        ]
        assert history[2].kind == HistoryKind.ADDITION
        assert history[2].value.amount == Decimal("12")
        assert history[2].weight_kg == Decimal("4")
        assert history[1].kind == HistoryKind.REMOVAL
        assert history[1].value.amount == Decimal("3")
        assert history[0].value.amount == Decimal("1.5")

    def test_value_of_lot_unpriced(self):
        lot = build_lot(uuid4(), 1000)
        assert value_of_lot(lot, KG_M, default_currency="GBP") == Money.zero("GBP")


class TestUnknownGeometryValuation:

    def test_round_tube_without_wall_values_per_kg_removal_at_zero(self):
        material_id = uuid4()
        kg_m = compute_mass_per_meter("Round tube", {"outerDiameter": 40}, "S355")
        lot = build_lot(material_id, 6000, unit_price="1.85", price_unit="per_kg", currency="EUR")
        removal = build_removal(material_id, 1500, minutes=1)

        valuation = value_of_removal(removal, [lot], [removal], kg_m)

        assert kg_m is None
        assert valuation.total == Money.zero("EUR")
