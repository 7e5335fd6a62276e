"""
Audit Query Service — read path over the audit log.

Ordering is always newest first (created_at DESC, id DESC). created_at has
second resolution on some stores, so id breaks ties deterministically and
consecutive pages never overlap.
"""

import math
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from procurement.errors import NotFoundError, ValidationError
from procurement.models.audit import AuditAction, AuditRecord, TrackedTable
from procurement.settings import settings

_NEWEST_FIRST = (AuditRecord.created_at.desc(), AuditRecord.id.desc())


@dataclass
class Pagination:
    page: int
    limit: int
    total: int
    total_pages: int


@dataclass
class AuditPage:
    records: list[AuditRecord]
    pagination: Pagination


def clamp_page(page, page_size) -> tuple[int, int]:
    """
    Normalize paging input.
    Anything that is not a positive integer falls back to the defaults
    (page 1, configured page size); oversized pages clamp to the maximum.
    """
    page = _positive_int(page) or 1
    page_size = _positive_int(page_size) or settings.audit_default_page_size
    return page, min(page_size, settings.audit_max_page_size)


def query_audit(
    db: Session,
    table: Optional[str] = None,
    action: Optional[str] = None,
    performed_by: Optional[int] = None,
    page=1,
    page_size=None,
) -> AuditPage:
    """Filtered, paginated audit records. Absent filters are unrestricted."""
    if table is not None and table not in TrackedTable.ALL:
        raise ValidationError(f"Unknown table filter {table!r}")
    if action is not None and action not in AuditAction.ALL:
        raise ValidationError(f"Unknown action filter {action!r}")
    page, page_size = clamp_page(page, page_size)

    conditions = []
    if table is not None:
        conditions.append(AuditRecord.table_name == table)
    if action is not None:
        conditions.append(AuditRecord.action == action)
    if performed_by is not None:
        conditions.append(AuditRecord.performed_by == performed_by)

    total = db.scalar(
        select(func.count()).select_from(AuditRecord).where(*conditions)
    )
    records = db.scalars(
        select(AuditRecord)
        .where(*conditions)
        .order_by(*_NEWEST_FIRST)
        .limit(page_size)
        .offset((page - 1) * page_size)
    ).all()

    return AuditPage(
        records=list(records),
        pagination=Pagination(
            page=page,
            limit=page_size,
            total=total,
            total_pages=math.ceil(total / page_size),
        ),
    )


def record_history(db: Session, table: str, record_id: int) -> list[AuditRecord]:
    """Every audit record for one entity, newest first."""
    if table not in TrackedTable.ALL:
        raise ValidationError(f"Unknown table {table!r}")
    return list(
        db.scalars(
            select(AuditRecord)
            .where(AuditRecord.table_name == table, AuditRecord.record_id == record_id)
            .order_by(*_NEWEST_FIRST)
        ).all()
    )


def get_record(db: Session, audit_id: int) -> AuditRecord:
    entry = db.get(AuditRecord, audit_id)
    if entry is None:
        raise NotFoundError(f"Audit record {audit_id} not found")
    return entry


def _positive_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    return number if number > 0 else None
