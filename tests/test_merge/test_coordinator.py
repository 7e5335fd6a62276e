"""
Merge coordinator tests.

Covers:
  - the location scenario (3 POs repointed, source gone, one MERGE record)
  - stage, supplier and site merges, including the site-only discard rule
  - replaying a merge fails cleanly and writes nothing
  - a failure during the audit write rolls the whole merge back
  - validation: same entity, unknown kind, missing rows, locations on
    different sites
"""

import pytest
from datetime import date

from sqlalchemy import func, select

from procurement.errors import NotFoundError, StorageError, ValidationError
from procurement.models.audit import AuditRecord
from procurement.models.purchasing import POSequence, PurchaseOrder
from procurement.models.reference import Location, Site, Stage, Supplier
from procurement.schemas.reference import SiteIn
from procurement.services import reference_data
from procurement.services.audit import ledger
from procurement.services.merge import coordinator


def _merge_records(db, table=None):
    stmt = select(AuditRecord).where(AuditRecord.action == "MERGE")
    if table:
        stmt = stmt.where(AuditRecord.table_name == table)
    return list(db.scalars(stmt).all())


def _po_column(db, column):
    return sorted(db.scalars(select(column).order_by(PurchaseOrder.id)).all())


@pytest.fixture
def duplicate_location(db, make_location, make_po):
    """A second location referenced by three POs; the sample location has none."""
    duplicate = make_location("Plot One")
    for _ in range(3):
        make_po(location_id=duplicate.id)
    return duplicate


class TestLocationMerge:
    def test_location_scenario(self, db, actor, sample_location, duplicate_location):
        keep_id, merge_id = sample_location.id, duplicate_location.id

        result = coordinator.merge(db, "location", keep_id, merge_id, actor)

        assert result.repointed == {"purchase_orders.location_id": 3}
        assert result.merged_into == {"id": keep_id, "name": "Plot 1"}
        assert result.deleted == {"id": merge_id, "name": "Plot One"}
        assert result.message == 'Successfully merged "Plot One" into "Plot 1"'

        assert _po_column(db, PurchaseOrder.location_id) == [keep_id] * 3
        assert db.get(Location, merge_id) is None

        (record,) = _merge_records(db)
        assert record.id == result.audit_id
        assert record.table_name == "locations"
        assert record.record_id == merge_id
        assert record.old_values["name"] == "Plot One"
        assert record.new_values["id"] == keep_id
        assert record.performed_by == actor.id

    def test_repointed_pos_get_no_update_records(self, db, actor, sample_location, duplicate_location):
        before = db.scalar(select(func.count()).select_from(AuditRecord))
        coordinator.merge(db, "locations", sample_location.id, duplicate_location.id, actor)
        after = db.scalar(select(func.count()).select_from(AuditRecord))
        assert after == before + 1

    def test_replay_fails_and_writes_nothing(self, db, actor, sample_location, duplicate_location):
        coordinator.merge(db, "location", sample_location.id, duplicate_location.id, actor)

        with pytest.raises(NotFoundError):
            coordinator.merge(db, "location", sample_location.id, duplicate_location.id, actor)
        assert len(_merge_records(db)) == 1

    def test_audit_failure_rolls_back_everything(
        self, db, actor, monkeypatch, sample_location, duplicate_location
    ):
        def broken_record(*args, **kwargs):
            raise StorageError("audit store unavailable")

        monkeypatch.setattr(ledger, "record", broken_record)

        with pytest.raises(StorageError):
            coordinator.merge(db, "location", sample_location.id, duplicate_location.id, actor)

        assert _po_column(db, PurchaseOrder.location_id) == [duplicate_location.id] * 3
        assert db.get(Location, duplicate_location.id) is not None
        assert _merge_records(db) == []

    def test_unreferenced_source_still_merges(self, db, actor, sample_location, make_location):
        spare = make_location("Spare")
        result = coordinator.merge(db, "location", sample_location.id, spare.id, actor)
        assert result.repointed == {"purchase_orders.location_id": 0}
        assert db.get(Location, spare.id) is None


class TestMergeValidation:
    def test_cannot_merge_into_itself(self, db, actor, sample_location):
        with pytest.raises(ValidationError):
            coordinator.merge(db, "location", sample_location.id, sample_location.id, actor)
        assert _merge_records(db) == []

    def test_both_ids_required(self, db, actor, sample_location):
        with pytest.raises(ValidationError):
            coordinator.merge(db, "location", sample_location.id, None, actor)

    def test_unknown_kind(self, db, actor):
        with pytest.raises(ValidationError):
            coordinator.merge(db, "purchase_order", 1, 2, actor)

    def test_locations_on_different_sites(self, db, actor, make_po, sample_location):
        orchard = reference_data.create_reference(
            db, "site", SiteIn(name="Orchard", site_letter="O"), actor
        )
        orchard_location = db.scalar(select(Location).where(Location.site_id == orchard.id))
        po = make_po()

        with pytest.raises(ValidationError, match="different sites"):
            coordinator.merge(db, "location", orchard_location.id, sample_location.id, actor)

        assert db.get(PurchaseOrder, po.id).location_id == sample_location.id
        assert db.get(Location, sample_location.id) is not None
        assert _merge_records(db) == []

    def test_missing_target(self, db, actor, sample_location):
        with pytest.raises(NotFoundError):
            coordinator.merge(db, "location", 9999, sample_location.id, actor)
        assert db.get(Location, sample_location.id) is not None


class TestOtherKinds:
    def test_stage_merge(self, db, actor, make_po, sample_stage):
        duplicate = Stage(name="Foundation")
        db.add(duplicate)
        db.commit()
        make_po(stage_id=duplicate.id)
        make_po()

        result = coordinator.merge(db, "stage", sample_stage.id, duplicate.id, actor)

        assert result.repointed == {"purchase_orders.stage_id": 1}
        assert _po_column(db, PurchaseOrder.stage_id) == [sample_stage.id] * 2
        assert db.get(Stage, duplicate.id) is None
        assert len(_merge_records(db, "stages")) == 1

    def test_supplier_merge(self, db, actor, make_po, sample_supplier):
        duplicate = Supplier(name="Murphy Concrete Limited")
        db.add(duplicate)
        db.commit()
        make_po(supplier_id=duplicate.id)
        make_po(supplier_id=duplicate.id)

        result = coordinator.merge(db, "supplier", sample_supplier.id, duplicate.id, actor)

        assert result.repointed == {"purchase_orders.supplier_id": 2}
        assert _po_column(db, PurchaseOrder.supplier_id) == [sample_supplier.id] * 2
        assert len(_merge_records(db, "suppliers")) == 1

    def test_site_merge_moves_locations_and_drops_sequences(
        self, db, actor, make_po, sample_stage, sample_supplier
    ):
        keep = reference_data.create_reference(db, "site", SiteIn(name="North", site_letter="N"), actor)
        gone = reference_data.create_reference(db, "site", SiteIn(name="North 2", site_letter="Q"), actor)
        gone_location = db.scalar(select(Location).where(Location.site_id == gone.id))
        po = make_po(site_id=gone.id, location_id=gone_location.id, po_date=date(2025, 5, 2))
        assert po.po_number == "Q505001"

        result = coordinator.merge(db, "site", keep.id, gone.id, actor)

        assert result.repointed == {
            "purchase_orders.site_id": 1,
            "locations.site_id": 1,
        }
        assert result.discarded == {"po_sequences": 1}
        assert db.get(Site, gone.id) is None
        assert db.get(PurchaseOrder, po.id).site_id == keep.id
        assert db.get(Location, gone_location.id).site_id == keep.id
        assert db.scalar(
            select(func.count()).select_from(POSequence).where(POSequence.site_id == gone.id)
        ) == 0
        # PO numbers are never rewritten by a merge.
        assert db.get(PurchaseOrder, po.id).po_number == "Q505001"
        (record,) = _merge_records(db, "sites")
        assert record.old_values["site_letter"] == "Q"
