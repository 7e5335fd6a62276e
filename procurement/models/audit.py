"""
AuditRecord — the immutable audit log.

CRITICAL DESIGN RULE:
  This table is append-only. No UPDATE or DELETE statements may ever be
  issued against it. The mapper and session hooks at the bottom of this
  module refuse both, whether they come from a loaded object or from a bulk
  statement.

  The DB-level server_default on created_at (not application code) ensures
  the timestamp is authoritative and cannot be spoofed.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Integer, String, Text, event, func
from sqlalchemy.orm import Mapped, Session, mapped_column

from procurement.errors import ConflictError
from procurement.models.base import Base, JSONType


class AuditAction:
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    MERGE = "MERGE"
    CANCEL = "CANCEL"
    LOGIN = "LOGIN"

    ALL = [CREATE, UPDATE, DELETE, MERGE, CANCEL, LOGIN]


class TrackedTable:
    PURCHASE_ORDERS = "purchase_orders"
    INVOICES = "invoices"
    SITES = "sites"
    LOCATIONS = "locations"
    STAGES = "stages"
    SUPPLIERS = "suppliers"
    USERS = "users"

    ALL = [PURCHASE_ORDERS, INVOICES, SITES, LOCATIONS, STAGES, SUPPLIERS, USERS]


class AuditRecord(Base):
    """
    One row per mutation of a tracked entity.

    table_name + record_id: the thing that changed
    action: what happened (AuditAction)
    old_values / new_values: column snapshots before and after. CREATE and
        LOGIN carry new only, DELETE and CANCEL carry old (CANCEL also new),
        MERGE carries the source (old) and the surviving target (new).
    performed_by / performed_by_name: who caused it. The name is copied at
        write time so the record still reads correctly after the user is
        renamed or removed.
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ── What changed ─────────────────────────────────────────────────────────
    table_name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    record_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    # ── State snapshots ──────────────────────────────────────────────────────
    old_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    new_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    # ── Who caused it ────────────────────────────────────────────────────────
    # Not a foreign key: the log must outlive the users it mentions.
    performed_by: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, index=True, comment="users.id; NULL for system writes"
    )
    performed_by_name: Mapped[str] = mapped_column(
        String(255), nullable=False, default="System"
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Timestamp (server-authoritative, never set by application code) ───────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<AuditRecord action={self.action!r} "
            f"entity={self.table_name}:{self.record_id} "
            f"by={self.performed_by}>"
        )


# ── Append-only enforcement ──────────────────────────────────────────────────


@event.listens_for(AuditRecord, "before_update")
def _refuse_update(mapper, connection, target) -> None:
    raise ConflictError("Audit records are append-only and cannot be modified")


@event.listens_for(AuditRecord, "before_delete")
def _refuse_delete(mapper, connection, target) -> None:
    raise ConflictError("Audit records are append-only and cannot be deleted")


@event.listens_for(Session, "do_orm_execute")
def _refuse_bulk_writes(orm_execute_state) -> None:
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    for mapper in orm_execute_state.all_mappers:
        if mapper.class_ is AuditRecord:
            raise ConflictError("Audit records are append-only")
