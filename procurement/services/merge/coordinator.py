"""
Merge Coordinator — consolidate a duplicate reference entity into a canonical one.

Steps (all inside one transaction):
  1. VALIDATE  both rows exist, same kind, source != target, same parent
               (locations only merge within one site)
  2. LOCK      source and target rows (SELECT ... FOR UPDATE)
  3. REPOINT   every registered FK column from source to target (bulk UPDATE)
  4. DISCARD   registered rows keyed by source that cannot be repointed
  5. DELETE    the source row
  6. AUDIT     exactly one MERGE record: old = source, new = target
  7. COMMIT    or roll everything back

Repointed rows do not get their own UPDATE records; the MERGE record is the
history for all of them.

Merges are not idempotent. Replaying one after it committed fails with
NotFoundError because the source is gone, and writes nothing. Two merges
racing on the same rows serialize on the row locks: the loser either works
against the already-merged state or finds its source deleted.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from procurement.database import transaction
from procurement.errors import NotFoundError, ValidationError
from procurement.models.audit import AuditAction
from procurement.services.audit import ledger
from procurement.services.audit.ledger import Actor
from procurement.services.merge.registry import MergeableKind, get_kind

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    kind: str
    merged_into: dict
    deleted: dict
    repointed: dict[str, int] = field(default_factory=dict)
    discarded: dict[str, int] = field(default_factory=dict)
    audit_id: Optional[int] = None

    @property
    def message(self) -> str:
        return (
            f'Successfully merged "{self.deleted["name"]}" '
            f'into "{self.merged_into["name"]}"'
        )


def merge(
    db: Session,
    kind_name: str,
    target_id: int,
    source_id: int,
    actor: Actor,
) -> MergeResult:
    """
    Merge source_id into target_id for the given kind ("location", "stage",
    "site", "supplier", or the table name).

    Raises:
        ValidationError: unknown kind, missing ids, source == target, or
                         locations on different sites
        NotFoundError:   either entity is absent (including a replayed merge)
        StorageError:    the transaction could not be committed
    """
    kind = get_kind(kind_name)
    if not target_id or not source_id:
        raise ValidationError(f"Both {kind.name}s are required")
    if target_id == source_id:
        raise ValidationError(f"Cannot merge a {kind.name} into itself")

    with transaction(db):
        # Lock in id order.
        locked = {i: _lock(db, kind, i) for i in sorted((source_id, target_id))}
        source, target = locked[source_id], locked[target_id]
        if kind.same_parent and (
            getattr(source, kind.same_parent) != getattr(target, kind.same_parent)
        ):
            parent = kind.same_parent.removesuffix("_id")
            raise ValidationError(f"Cannot merge {kind.name}s that belong to different {parent}s")
        source_snapshot = ledger.snapshot(source)
        target_snapshot = ledger.snapshot(target)

        result = MergeResult(
            kind=kind.name,
            merged_into={"id": target.id, "name": target.name},
            deleted={"id": source.id, "name": source.name},
        )

        for rule in kind.repoint:
            moved = db.execute(
                update(rule.column.table)
                .where(rule.column == source_id)
                .values({rule.column.name: target_id})
            ).rowcount
            result.repointed[rule.label] = moved
            logger.debug("Repointed %s rows in %s", moved, rule.label)

        for rule in kind.discard:
            dropped = db.execute(
                delete(rule.column.table).where(rule.column == source_id)
            ).rowcount
            result.discarded[rule.label] = dropped

        deleted = db.execute(
            delete(kind.model.__table__).where(kind.model.__table__.c.id == source_id)
        ).rowcount
        if deleted != 1:
            # Someone else removed it between our lock and the delete.
            raise NotFoundError(f"{kind.name.capitalize()} {source_id} not found")
        db.expunge(source)

        entry = ledger.record(
            db,
            kind.table,
            source_id,
            AuditAction.MERGE,
            old_values=source_snapshot,
            new_values=target_snapshot,
            actor=actor,
        )
        result.audit_id = entry.id

    logger.info(
        "Merged %s %s into %s (%s)",
        kind.name,
        source_id,
        target_id,
        ", ".join(f"{k}={v}" for k, v in result.repointed.items()),
    )
    return result


def _lock(db: Session, kind: MergeableKind, entity_id: int):
    entity = db.scalars(
        select(kind.model)
        .where(kind.model.id == entity_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    if entity is None:
        raise NotFoundError(f"{kind.name.capitalize()} {entity_id} not found")
    return entity
