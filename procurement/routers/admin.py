"""
Admin API routes: reference data maintenance and duplicate merging.

Reference data (kind = sites | locations | stages | suppliers):
  GET    /admin/{kind}                 → all rows, active and inactive
  POST   /admin/{kind}                 → create
  PUT    /admin/{kind}/{id}            → full replace
  DELETE /admin/{kind}/{id}            → delete, only while nothing references it

Merges (SUPER_ADMIN only):
  POST /admin/merge-locations          → { keep_location_id, merge_location_id }
  POST /admin/merge-stages             → { keep_stage_id,    merge_stage_id }
  POST /admin/merge-sites              → { keep_site_id,     merge_site_id }
  POST /admin/merge-suppliers          → { keep_supplier_id, merge_supplier_id }

A merge repoints every reference from the merge_* row to the keep_* row,
deletes the merge_* row and writes one MERGE audit record, atomically.
"""

from typing import Type

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from procurement.database import get_db
from procurement.models.user import UserRole
from procurement.routers.auth import require_role
from procurement.schemas.common import BaseSchema, MessageResponse
from procurement.schemas.reference import (
    LocationIn,
    LocationMergeRequest,
    LocationResponse,
    MergeResponse,
    SiteIn,
    SiteMergeRequest,
    SiteResponse,
    StageIn,
    StageMergeRequest,
    StageResponse,
    SupplierIn,
    SupplierMergeRequest,
    SupplierResponse,
)
from procurement.services import reference_data
from procurement.services.audit.ledger import Actor
from procurement.services.merge import coordinator
from procurement.services.merge.coordinator import MergeResult

router = APIRouter(prefix="/admin", tags=["admin"])

_ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN)
_MERGE_ROLES = (UserRole.SUPER_ADMIN,)


# ── Merges ────────────────────────────────────────────────────────────────────


@router.post("/merge-locations", response_model=MergeResponse)
def merge_locations(
    payload: LocationMergeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_MERGE_ROLES)),
) -> MergeResponse:
    result = coordinator.merge(
        db, "location", payload.keep_location_id, payload.merge_location_id, actor
    )
    return _to_merge_response(result)


@router.post("/merge-stages", response_model=MergeResponse)
def merge_stages(
    payload: StageMergeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_MERGE_ROLES)),
) -> MergeResponse:
    result = coordinator.merge(
        db, "stage", payload.keep_stage_id, payload.merge_stage_id, actor
    )
    return _to_merge_response(result)


@router.post("/merge-sites", response_model=MergeResponse)
def merge_sites(
    payload: SiteMergeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_MERGE_ROLES)),
) -> MergeResponse:
    result = coordinator.merge(
        db, "site", payload.keep_site_id, payload.merge_site_id, actor
    )
    return _to_merge_response(result)


@router.post("/merge-suppliers", response_model=MergeResponse)
def merge_suppliers(
    payload: SupplierMergeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_MERGE_ROLES)),
) -> MergeResponse:
    result = coordinator.merge(
        db, "supplier", payload.keep_supplier_id, payload.merge_supplier_id, actor
    )
    return _to_merge_response(result)


def _to_merge_response(result: MergeResult) -> MergeResponse:
    return MergeResponse(
        message=result.message,
        merged_into=result.merged_into,
        deleted=result.deleted,
        repointed=result.repointed,
        discarded=result.discarded,
        audit_id=result.audit_id,
    )


# ── Reference data ────────────────────────────────────────────────────────────


def _add_reference_routes(
    path: str,
    kind: str,
    in_schema: Type[BaseSchema],
    response_schema: Type[BaseSchema],
) -> None:
    """Register list/create/update/delete for one reference kind."""

    @router.get(f"/{path}", response_model=list[response_schema], name=f"list_{path}")
    def list_rows(
        include_inactive: bool = True,
        db: Session = Depends(get_db),
        actor: Actor = Depends(require_role(*UserRole.ALL)),
    ):
        return [
            response_schema.model_validate(row)
            for row in reference_data.list_references(db, kind, include_inactive)
        ]

    @router.post(
        f"/{path}",
        response_model=response_schema,
        status_code=status.HTTP_201_CREATED,
        name=f"create_{kind}",
    )
    def create_row(
        payload: in_schema,
        db: Session = Depends(get_db),
        actor: Actor = Depends(require_role(*_ADMIN_ROLES)),
    ):
        entity = reference_data.create_reference(db, kind, payload, actor)
        return response_schema.model_validate(entity)

    @router.put(f"/{path}/{{entity_id}}", response_model=response_schema, name=f"update_{kind}")
    def update_row(
        entity_id: int,
        payload: in_schema,
        db: Session = Depends(get_db),
        actor: Actor = Depends(require_role(*_ADMIN_ROLES)),
    ):
        entity = reference_data.update_reference(db, kind, entity_id, payload, actor)
        return response_schema.model_validate(entity)

    @router.delete(f"/{path}/{{entity_id}}", response_model=MessageResponse, name=f"delete_{kind}")
    def delete_row(
        entity_id: int,
        db: Session = Depends(get_db),
        actor: Actor = Depends(require_role(*_ADMIN_ROLES)),
    ):
        reference_data.delete_reference(db, kind, entity_id, actor)
        return MessageResponse(message=f"{kind.capitalize()} {entity_id} deleted")


_add_reference_routes("sites", "site", SiteIn, SiteResponse)
_add_reference_routes("locations", "location", LocationIn, LocationResponse)
_add_reference_routes("stages", "stage", StageIn, StageResponse)
_add_reference_routes("suppliers", "supplier", SupplierIn, SupplierResponse)
