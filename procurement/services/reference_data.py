"""
Reference data maintenance: sites, locations, stages, suppliers.

Same contract as services/purchasing: explicit actor, one audit record per
write, one transaction. Direct deletes are only allowed once nothing in the
merge registry still points at the row; otherwise the caller is told to
merge instead.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from procurement.database import transaction
from procurement.errors import ConflictError, NotFoundError
from procurement.models.audit import AuditAction
from procurement.models.purchasing import PurchaseOrder
from procurement.models.reference import Location, Site
from procurement.services.audit import ledger
from procurement.services.audit.ledger import Actor
from procurement.services.merge.registry import MergeableKind, count_references, get_kind

logger = logging.getLogger(__name__)

# Every new site gets a catch-all location so POs can be raised immediately.
DEFAULT_LOCATION_NAME = "Site"
DEFAULT_LOCATION_TYPE = "system"


def list_references(db: Session, kind_name: str, include_inactive: bool = True) -> list:
    kind = get_kind(kind_name)
    stmt = select(kind.model).order_by(kind.model.name, kind.model.id)
    if not include_inactive:
        stmt = stmt.where(kind.model.active.is_(True))
    return list(db.scalars(stmt).all())


def get_reference(db: Session, kind_name: str, entity_id: int):
    kind = get_kind(kind_name)
    return _get(db, kind, entity_id)


def create_reference(db: Session, kind_name: str, data, actor: Actor):
    kind = get_kind(kind_name)
    values = data.model_dump()
    with transaction(db):
        if kind.model is Site:
            _check_site_letter(db, values["site_letter"])
        if kind.model is Location:
            _require_site(db, values["site_id"])

        entity = kind.model(**values)
        db.add(entity)
        db.flush()

        if kind.model is Site:
            db.add(
                Location(
                    name=DEFAULT_LOCATION_NAME,
                    type=DEFAULT_LOCATION_TYPE,
                    site_id=entity.id,
                    active=True,
                )
            )
            db.flush()

        ledger.record(
            db,
            kind.table,
            entity.id,
            AuditAction.CREATE,
            old_values=None,
            new_values=ledger.snapshot(entity),
            actor=actor,
        )

    logger.info("Created %s %s (%s)", kind.name, entity.id, entity.name)
    return entity


def update_reference(db: Session, kind_name: str, entity_id: int, data, actor: Actor):
    kind = get_kind(kind_name)
    values = data.model_dump()
    with transaction(db):
        entity = _get(db, kind, entity_id, for_update=True)
        if kind.model is Site and values["site_letter"] != entity.site_letter:
            if _site_has_purchase_orders(db, entity.id):
                raise ConflictError(
                    "The site letter cannot be changed once purchase orders have been raised"
                )
            _check_site_letter(db, values["site_letter"])
        if kind.model is Location and values["site_id"] != entity.site_id:
            if count_references(db, kind, entity.id):
                raise ConflictError(
                    "A location cannot be moved to another site while purchase orders use it"
                )
            _require_site(db, values["site_id"])
        before = ledger.snapshot(entity)

        for key, value in values.items():
            setattr(entity, key, value)
        db.flush()

        ledger.record(
            db,
            kind.table,
            entity.id,
            AuditAction.UPDATE,
            old_values=before,
            new_values=ledger.snapshot(entity),
            actor=actor,
        )
    return entity


def delete_reference(db: Session, kind_name: str, entity_id: int, actor: Actor) -> None:
    """
    Physically delete an unreferenced entity.

    Raises ConflictError while any registered column still points at it —
    merging is the only way to retire a row that is in use.
    """
    kind = get_kind(kind_name)
    with transaction(db):
        entity = _get(db, kind, entity_id, for_update=True)
        references = count_references(db, kind, entity_id)
        if references:
            detail = ", ".join(f"{count} in {label}" for label, count in references.items())
            logger.warning("Refused to delete %s %s: %s", kind.name, entity_id, detail)
            raise ConflictError(
                f"This {kind.name} cannot be deleted because it is still referenced "
                f"({detail}). Merge it into another {kind.name} instead."
            )

        before = ledger.snapshot(entity)
        db.delete(entity)
        db.flush()

        ledger.record(
            db,
            kind.table,
            entity_id,
            AuditAction.DELETE,
            old_values=before,
            new_values=None,
            actor=actor,
        )
    logger.info("Deleted %s %s", kind.name, entity_id)


# ── Helpers ───────────────────────────────────────────────────────────────────


def _get(db: Session, kind: MergeableKind, entity_id: int, for_update: bool = False):
    stmt = select(kind.model).where(kind.model.id == entity_id)
    if for_update:
        stmt = stmt.with_for_update()
    entity = db.scalars(stmt.execution_options(populate_existing=True)).first()
    if entity is None:
        raise NotFoundError(f"{kind.name.capitalize()} {entity_id} not found")
    return entity


def _check_site_letter(db: Session, letter: str) -> None:
    taken = db.scalar(select(Site.id).where(Site.site_letter == letter))
    if taken is not None:
        raise ConflictError("This site letter is already in use")


def _site_has_purchase_orders(db: Session, site_id: int) -> bool:
    po_id = db.scalar(select(PurchaseOrder.id).where(PurchaseOrder.site_id == site_id).limit(1))
    return po_id is not None


def _require_site(db: Session, site_id: int) -> None:
    if db.get(Site, site_id) is None:
        raise NotFoundError(f"Site {site_id} not found")
