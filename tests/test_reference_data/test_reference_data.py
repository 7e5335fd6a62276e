"""
Reference data service tests: create / update / delete with audit records,
and the refusal to delete rows that are still referenced.
"""

import pytest

from sqlalchemy import select

from procurement.errors import ConflictError, NotFoundError, StorageError, ValidationError
from procurement.models.audit import AuditRecord
from procurement.models.reference import Location, Site, Stage
from procurement.schemas.reference import LocationIn, SiteIn, StageIn, SupplierIn
from procurement.services import reference_data
from procurement.services.audit import ledger


def _audit(db, table):
    return list(
        db.scalars(
            select(AuditRecord).where(AuditRecord.table_name == table).order_by(AuditRecord.id)
        ).all()
    )


class TestSites:
    def test_new_site_gets_default_location(self, db, actor):
        site = reference_data.create_reference(
            db, "site", SiteIn(name="  Harbour View ", site_letter="h"), actor
        )

        assert site.name == "Harbour View"
        assert site.site_letter == "H"
        (default,) = db.scalars(select(Location).where(Location.site_id == site.id)).all()
        assert (default.name, default.type) == ("Site", "system")

        (record,) = _audit(db, "sites")
        assert record.action == "CREATE"
        assert record.new_values["site_letter"] == "H"

    def test_site_letter_is_unique(self, db, actor, sample_site):
        with pytest.raises(ConflictError, match="already in use"):
            reference_data.create_reference(
                db, "site", SiteIn(name="Other", site_letter="r"), actor
            )
        assert _audit(db, "sites") == []

    def test_site_with_locations_cannot_be_deleted(self, db, actor):
        site = reference_data.create_reference(
            db, "site", SiteIn(name="Temp", site_letter="T"), actor
        )
        with pytest.raises(ConflictError, match="locations.site_id"):
            reference_data.delete_reference(db, "site", site.id, actor)
        assert db.get(Site, site.id) is not None

    def test_letter_is_locked_once_pos_exist(self, db, actor, make_po, sample_site):
        make_po()
        with pytest.raises(ConflictError, match="cannot be changed"):
            reference_data.update_reference(
                db, "site", sample_site.id, SiteIn(name="Riverside", site_letter="Z"), actor
            )
        assert db.get(Site, sample_site.id).site_letter == "R"
        assert _audit(db, "sites") == []

    def test_letter_can_change_before_any_po(self, db, actor, sample_site):
        site = reference_data.update_reference(
            db, "site", sample_site.id, SiteIn(name="Riverside", site_letter="z"), actor
        )
        assert site.site_letter == "Z"


class TestLocations:
    def test_location_needs_existing_site(self, db, actor):
        with pytest.raises(NotFoundError):
            reference_data.create_reference(
                db, "location", LocationIn(name="Plot 4", site_id=404), actor
            )

    def test_list_filters_inactive(self, db, actor, sample_site):
        reference_data.create_reference(
            db, "location", LocationIn(name="A", site_id=sample_site.id), actor
        )
        reference_data.create_reference(
            db, "location", LocationIn(name="B", site_id=sample_site.id, active=False), actor
        )
        assert [loc.name for loc in reference_data.list_references(db, "location")] == ["A", "B"]
        assert [
            loc.name for loc in reference_data.list_references(db, "location", include_inactive=False)
        ] == ["A"]

    def test_location_in_use_cannot_change_site(self, db, actor, make_po, sample_site, sample_location):
        orchard = Site(name="Orchard", site_letter="O")
        db.add(orchard)
        db.commit()
        make_po()

        with pytest.raises(ConflictError, match="another site"):
            reference_data.update_reference(
                db,
                "location",
                sample_location.id,
                LocationIn(name="Plot 1", type="plot", site_id=orchard.id),
                actor,
            )
        assert db.get(Location, sample_location.id).site_id == sample_site.id

    def test_unused_location_can_change_site(self, db, actor, sample_location):
        orchard = Site(name="Orchard", site_letter="O")
        db.add(orchard)
        db.commit()

        moved = reference_data.update_reference(
            db,
            "location",
            sample_location.id,
            LocationIn(name="Plot 1", type="plot", site_id=orchard.id),
            actor,
        )
        assert moved.site_id == orchard.id


class TestStagesAndSuppliers:
    def test_update_writes_before_and_after(self, db, actor, sample_stage):
        reference_data.update_reference(
            db, "stage", sample_stage.id, StageIn(name="Groundworks"), actor
        )

        (record,) = _audit(db, "stages")
        assert record.action == "UPDATE"
        assert record.old_values["name"] == "Foundations"
        assert record.new_values["name"] == "Groundworks"

    def test_delete_unreferenced(self, db, actor, sample_stage):
        stage_id = sample_stage.id
        reference_data.delete_reference(db, "stage", stage_id, actor)

        assert db.get(Stage, stage_id) is None
        (record,) = _audit(db, "stages")
        assert record.action == "DELETE"
        assert record.old_values["name"] == "Foundations"
        assert record.new_values is None

    def test_delete_referenced_is_refused(self, db, actor, make_po, sample_stage):
        make_po()
        with pytest.raises(ConflictError, match="Merge it into another stage"):
            reference_data.delete_reference(db, "stage", sample_stage.id, actor)
        assert db.get(Stage, sample_stage.id) is not None
        assert _audit(db, "stages") == []

    def test_delete_rolls_back_when_audit_write_fails(self, db, actor, monkeypatch, sample_stage):
        def broken_record(*args, **kwargs):
            raise StorageError("audit store unavailable")

        monkeypatch.setattr(ledger, "record", broken_record)

        with pytest.raises(StorageError):
            reference_data.delete_reference(db, "stage", sample_stage.id, actor)
        assert db.get(Stage, sample_stage.id) is not None
        assert _audit(db, "stages") == []

    def test_delete_missing(self, db, actor):
        with pytest.raises(NotFoundError):
            reference_data.delete_reference(db, "supplier", 77, actor)

    def test_create_supplier(self, db, actor):
        supplier = reference_data.create_reference(
            db, "supplier", SupplierIn(name="Kelly Electrical", phone="01 555 0103"), actor
        )
        assert reference_data.get_reference(db, "supplier", supplier.id).phone == "01 555 0103"

    def test_unknown_kind(self, db, actor):
        with pytest.raises(ValidationError):
            reference_data.list_references(db, "invoice")
