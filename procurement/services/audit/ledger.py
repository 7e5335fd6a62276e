"""
Audit Ledger — the only way to write AuditRecord rows.

Design rules enforced here:
  - created_at is always server-set (DB default) — never passed by application
  - Snapshots are always serialized to plain JSON-safe dicts (no ORM objects)
  - All writes go through record() — no direct AuditRecord instantiation elsewhere
  - record() runs in the caller's transaction and never commits. If the audit
    write fails the caller's mutation must fail with it, so failures raise
    StorageError instead of being logged and swallowed.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from procurement.errors import StorageError, ValidationError
from procurement.models.audit import AuditAction, AuditRecord, TrackedTable

logger = logging.getLogger(__name__)

# Bookkeeping columns that change on every write and carry no business meaning.
_UNSNAPSHOTTED = frozenset({"created_at", "updated_at"})


@dataclass(frozen=True)
class Actor:
    """
    Who is performing a mutation, plus the request it arrived on.
    Passed explicitly to every write — there is no ambient "current user".
    """

    id: Optional[int]
    name: str
    role: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def system(cls, name: str = "System") -> "Actor":
        return cls(id=None, name=name)


def record(
    db: Session,
    table: str,
    record_id: int,
    action: str,
    old_values: Optional[dict[str, Any]],
    new_values: Optional[dict[str, Any]],
    actor: Actor,
) -> AuditRecord:
    """
    Append one audit record inside the caller's transaction.

    Args:
        db:         SQLAlchemy session (caller manages the transaction)
        table:      One of TrackedTable.ALL
        record_id:  Primary key of the entity that changed
        action:     One of AuditAction.ALL
        old_values: Snapshot before the change (None for CREATE / LOGIN)
        new_values: Snapshot after the change (None for DELETE)
        actor:      Who did it, with request IP / user agent

    Raises:
        ValidationError: unknown table/action, or a snapshot combination the
                         log does not accept
        StorageError:    the row could not be flushed
    """
    if table not in TrackedTable.ALL:
        raise ValidationError(f"Table {table!r} is not audited")
    if action not in AuditAction.ALL:
        raise ValidationError(f"Unknown audit action {action!r}")
    if old_values is None and new_values is None:
        raise ValidationError("An audit record needs an old or a new snapshot")
    if action == AuditAction.LOGIN and (old_values is not None or new_values is None):
        raise ValidationError("LOGIN records carry new values only")

    entry = AuditRecord(
        table_name=table,
        record_id=record_id,
        action=action,
        old_values=_safe_payload(old_values) if old_values is not None else None,
        new_values=_safe_payload(new_values) if new_values is not None else None,
        performed_by=actor.id,
        performed_by_name=actor.name,
        ip_address=actor.ip_address,
        user_agent=actor.user_agent,
        # created_at is left to the server_default
    )
    try:
        db.add(entry)
        db.flush()  # Assigns ID without committing the outer transaction
    except SQLAlchemyError as exc:
        logger.error(
            "Failed to write audit record %s for %s:%s — %s",
            action,
            table,
            record_id,
            exc,
        )
        raise StorageError(f"Could not write audit record for {table}:{record_id}") from exc

    logger.info(
        "Audit: %s on %s#%s by %s", action, table, record_id, actor.id or actor.name
    )
    return entry


def snapshot(entity) -> dict[str, Any]:
    """
    Column values of an ORM entity, in mapper order, as a JSON-safe dict.
    Relationships are not followed; foreign keys appear as their ids.
    """
    mapper = inspect(entity).mapper
    values = {
        attr.key: getattr(entity, attr.key)
        for attr in mapper.column_attrs
        if attr.key not in _UNSNAPSHOTTED
    }
    return _safe_payload(values)


def record_login(db: Session, user, actor: Actor) -> AuditRecord:
    """LOGIN record; written by the upstream authentication layer."""
    return record(
        db,
        TrackedTable.USERS,
        user.id,
        AuditAction.LOGIN,
        old_values=None,
        new_values={"email": user.email, "role": user.role},
        actor=actor,
    )


def _safe_payload(payload: dict) -> dict:
    """
    Ensure payload is JSON-serializable.
    Converts common non-serializable types (UUID, datetime, date, Decimal) to strings.
    """

    def default(obj: Any) -> Any:
        if isinstance(obj, uuid.UUID):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

    # Round-trip through JSON to strip any non-serializable types
    return json.loads(json.dumps(payload, default=default))
