"""Tests for the LotStore read model."""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.lot_store import LotStore

from tests.conftest import build_lot, build_removal


class TestLotStore:

    def setup_method(self):
        self.material_id = uuid4()

    def test_totals(self):
        store = LotStore.of(
            self.material_id,
            [build_lot(self.material_id, 1000, pieces=2), build_lot(self.material_id, 500)],
            [build_removal(self.material_id, 300, minutes=1)],
        )
        assert store.total_added_mm == Decimal("2500")
        assert store.total_removed_mm == Decimal("300")
        assert store.derived_aggregate_mm == Decimal("2200")

    def test_rejects_foreign_events(self):
        with pytest.raises(ValueError):
            LotStore.of(self.material_id, [build_lot(uuid4(), 100)])

    def test_ordered_views(self):
        late = build_lot(self.material_id, 100, minutes=10)
        early = build_lot(self.material_id, 100, minutes=1)
        store = LotStore.of(self.material_id, [late, early])
        assert store.lots_in_order() == [early, late]
        assert store.lots == (late, early)

    def test_lookup(self):
        lot = build_lot(self.material_id, 100)
        removal = build_removal(self.material_id, 10, minutes=1)
        store = LotStore.of(self.material_id, [lot], [removal])
        assert store.lot(lot.lot_id) == lot
        assert store.lot(uuid4()) is None
        assert store.removal(removal.removal_id) == removal

    def test_removals_before_excludes_self_and_later(self):
        first = build_removal(self.material_id, 10, minutes=1, sequence=1)
        tied = build_removal(self.material_id, 10, minutes=1, sequence=2)
        later = build_removal(self.material_id, 10, minutes=2, sequence=3)
        store = LotStore.of(self.material_id, [], [later, tied, first])

        assert store.removals_before(tied) == [first]
        assert store.removals_before(first) == []
        assert store.removals_in_order() == [first, tied, later]

    def test_lots_until_includes_same_instant(self):
        same = build_lot(self.material_id, 100, minutes=5)
        after = build_lot(self.material_id, 100, minutes=6)
        removal = build_removal(self.material_id, 10, minutes=5)
        store = LotStore.of(self.material_id, [same, after], [removal])
        assert store.lots_until(removal) == [same]

    def test_append_returns_new_snapshot(self):
        store = LotStore.of(self.material_id)
        grown = store.with_lot(build_lot(self.material_id, 100))
        assert store.lots == ()
        assert len(grown.lots) == 1
        shrunk = grown.with_removal(build_removal(self.material_id, 40, minutes=1))
        assert shrunk.derived_aggregate_mm == Decimal("60")
