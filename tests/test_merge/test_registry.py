"""
Merge registry tests — kind lookup and reference counting.
"""

import pytest

from procurement.errors import ValidationError
from procurement.models.reference import Location, Site
from procurement.services.merge.registry import REGISTRY, count_references, get_kind


class TestGetKind:
    @pytest.mark.parametrize("name", ["site", "sites"])
    def test_singular_and_table_names(self, name):
        kind = get_kind(name)
        assert kind.model is Site
        assert kind.table == "sites"

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            get_kind("users")

    def test_every_kind_repoints_purchase_orders(self):
        for kind in REGISTRY.values():
            assert any(rule.column.table.name == "purchase_orders" for rule in kind.repoint)

    def test_only_sites_discard_rows(self):
        assert [k.name for k in REGISTRY.values() if k.discard] == ["site"]


class TestCountReferences:
    def test_counts_per_column_and_omits_zero(self, db, make_po, sample_site, sample_location):
        make_po()
        make_po()

        assert count_references(db, get_kind("location"), sample_location.id) == {
            "purchase_orders.location_id": 2
        }
        assert count_references(db, get_kind("site"), sample_site.id) == {
            "purchase_orders.site_id": 2,
            "locations.site_id": 1,
        }

    def test_unreferenced(self, db, sample_site):
        spare = Location(name="Spare", site_id=sample_site.id)
        db.add(spare)
        db.commit()
        assert count_references(db, get_kind("location"), spare.id) == {}
