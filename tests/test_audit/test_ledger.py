"""
Audit ledger tests: writing records, snapshot shape, append-only enforcement.
"""

import pytest
from decimal import Decimal

from sqlalchemy import delete, func, select, update

from procurement.database import transaction
from procurement.errors import ConflictError, ValidationError
from procurement.models.audit import AuditAction, AuditRecord, TrackedTable
from procurement.services.audit import ledger
from procurement.services.audit.ledger import Actor


def _count(db) -> int:
    return db.scalar(select(func.count()).select_from(AuditRecord))


def _write(db, actor, **kwargs) -> AuditRecord:
    fields = dict(
        table=TrackedTable.STAGES,
        record_id=7,
        action=AuditAction.CREATE,
        old_values=None,
        new_values={"id": 7, "name": "Foundations"},
        actor=actor,
    )
    fields.update(kwargs)
    with transaction(db):
        entry = ledger.record(db, **fields)
    return entry


class TestRecord:
    def test_create_record_is_persisted_with_actor(self, db, actor):
        entry = _write(db, actor)

        stored = db.get(AuditRecord, entry.id)
        assert stored.table_name == "stages"
        assert stored.record_id == 7
        assert stored.action == "CREATE"
        assert stored.old_values is None
        assert stored.new_values == {"id": 7, "name": "Foundations"}
        assert stored.performed_by == actor.id
        assert stored.performed_by_name == actor.name
        assert stored.ip_address == "10.0.0.1"
        assert stored.user_agent == "pytest"
        assert stored.created_at is not None

    def test_system_actor_has_no_user_id(self, db):
        entry = _write(db, Actor.system())
        assert entry.performed_by is None
        assert entry.performed_by_name == "System"

    def test_snapshots_are_made_json_safe(self, db, actor):
        entry = _write(
            db,
            actor,
            action=AuditAction.UPDATE,
            old_values={"net_amount": Decimal("10.50")},
            new_values={"net_amount": Decimal("12.00")},
        )
        assert entry.old_values == {"net_amount": "10.50"}
        assert entry.new_values == {"net_amount": "12.00"}

    def test_unknown_table_rejected(self, db, actor):
        with pytest.raises(ValidationError):
            _write(db, actor, table="audit_log")
        assert _count(db) == 0

    def test_unknown_action_rejected(self, db, actor):
        with pytest.raises(ValidationError):
            _write(db, actor, action="ARCHIVE")

    def test_record_needs_a_snapshot(self, db, actor):
        with pytest.raises(ValidationError):
            _write(db, actor, action=AuditAction.DELETE, old_values=None, new_values=None)

    def test_login_carries_new_values_only(self, db, actor):
        with pytest.raises(ValidationError):
            _write(
                db,
                actor,
                table=TrackedTable.USERS,
                action=AuditAction.LOGIN,
                old_values={"email": "x@example.com"},
            )

    def test_record_login(self, db, actor, super_admin):
        with transaction(db):
            entry = ledger.record_login(db, super_admin, actor)

        assert entry.table_name == "users"
        assert entry.action == "LOGIN"
        assert entry.old_values is None
        assert entry.new_values == {"email": "root@example.com", "role": "super_admin"}


class TestSnapshot:
    def test_snapshot_excludes_bookkeeping_timestamps(self, db, sample_supplier):
        values = ledger.snapshot(sample_supplier)

        assert values["id"] == sample_supplier.id
        assert values["name"] == "Murphy Concrete Ltd"
        assert values["active"] is True
        assert "created_at" not in values
        assert "updated_at" not in values


class TestAppendOnly:
    def test_orm_update_refused(self, db, actor):
        entry = _write(db, actor)
        entry.action = AuditAction.DELETE

        with pytest.raises(ConflictError):
            db.flush()
        db.rollback()

        assert db.get(AuditRecord, entry.id).action == "CREATE"

    def test_orm_delete_refused(self, db, actor):
        entry = _write(db, actor)
        db.delete(entry)

        with pytest.raises(ConflictError):
            db.flush()
        db.rollback()

        assert _count(db) == 1

    def test_bulk_update_refused(self, db, actor):
        _write(db, actor)
        with pytest.raises(ConflictError):
            db.execute(update(AuditRecord).values(performed_by_name="Someone else"))

    def test_bulk_delete_refused(self, db, actor):
        _write(db, actor)
        with pytest.raises(ConflictError):
            db.execute(delete(AuditRecord))
        db.rollback()
        assert _count(db) == 1
