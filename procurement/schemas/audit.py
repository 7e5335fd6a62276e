"""
Audit log schemas — the read side of the ledger.

old_values / new_values are returned as parsed objects, never JSON strings.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from procurement.schemas.common import BaseSchema


class AuditRecordResponse(BaseSchema):
    id: int
    table_name: str
    record_id: int
    action: str
    old_values: Optional[dict[str, Any]]
    new_values: Optional[dict[str, Any]]
    performed_by: Optional[int]
    performed_by_name: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime


class PaginationResponse(BaseSchema):
    page: int
    limit: int
    total: int
    total_pages: int = Field(..., serialization_alias="totalPages")


class AuditPageResponse(BaseSchema):
    data: list[AuditRecordResponse]
    pagination: PaginationResponse


class FieldChangeResponse(BaseSchema):
    field: str
    old: Any = None
    new: Any = None
    changed: bool
