"""
Audit log API — super admin only, read only.

  GET /audit                          → filtered, paginated log (newest first)
  GET /audit/{audit_id}/diff          → field-by-field diff of one record
  GET /audit/{table}/{record_id}      → full history of one entity

There is deliberately no write, edit or delete route: the log is append-only
and is only ever written by the services, inside their own transactions.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from procurement.database import get_db
from procurement.models.user import UserRole
from procurement.routers.auth import require_role
from procurement.schemas.audit import (
    AuditPageResponse,
    AuditRecordResponse,
    FieldChangeResponse,
    PaginationResponse,
)
from procurement.services.audit import query
from procurement.services.audit.diff import diff_snapshots
from procurement.services.audit.ledger import Actor

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=AuditPageResponse)
def list_audit_records(
    table: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    # Raw strings: malformed paging falls back to defaults instead of a 422.
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(UserRole.SUPER_ADMIN)),
) -> AuditPageResponse:
    result = query.query_audit(
        db,
        table=table or None,
        action=action.upper() if action else None,
        performed_by=user_id,
        page=page,
        page_size=limit,
    )
    return AuditPageResponse(
        data=[AuditRecordResponse.model_validate(r) for r in result.records],
        pagination=PaginationResponse(
            page=result.pagination.page,
            limit=result.pagination.limit,
            total=result.pagination.total,
            total_pages=result.pagination.total_pages,
        ),
    )


@router.get("/{audit_id}/diff", response_model=list[FieldChangeResponse])
def diff_audit_record(
    audit_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(UserRole.SUPER_ADMIN)),
) -> list[FieldChangeResponse]:
    entry = query.get_record(db, audit_id)
    return [
        FieldChangeResponse.model_validate(change)
        for change in diff_snapshots(entry.old_values, entry.new_values)
    ]


@router.get("/{table}/{record_id}", response_model=list[AuditRecordResponse])
def record_history(
    table: str,
    record_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(UserRole.SUPER_ADMIN)),
) -> list[AuditRecordResponse]:
    return [
        AuditRecordResponse.model_validate(entry)
        for entry in query.record_history(db, table, record_id)
    ]
