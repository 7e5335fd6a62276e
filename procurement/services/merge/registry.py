"""
Merge registry — which foreign keys point at each mergeable entity kind.

This table is maintained by hand on purpose. Adding a table that references
a site / location / stage / supplier means adding a line here, and that line
is what a reviewer sees; nothing is discovered by schema reflection.

Two rule types:
  Repoint — UPDATE <table> SET <column> = target WHERE <column> = source
  Discard — DELETE FROM <table> WHERE <column> = source, for rows keyed by
            the source that cannot move to the target without colliding
            with a unique key.

The same rules answer "is anything still pointing at this row?" for direct
deletes (count_references).
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import Column, func, select
from sqlalchemy.orm import Session

from procurement.errors import ValidationError
from procurement.models.audit import TrackedTable
from procurement.models.purchasing import POSequence, PurchaseOrder
from procurement.models.reference import Location, Site, Stage, Supplier


@dataclass(frozen=True)
class Repoint:
    column: Column

    @property
    def label(self) -> str:
        return f"{self.column.table.name}.{self.column.name}"


@dataclass(frozen=True)
class Discard:
    column: Column

    @property
    def label(self) -> str:
        return self.column.table.name


@dataclass(frozen=True)
class MergeableKind:
    name: str  # singular, used in request bodies: keep_<name>_id
    model: type
    table: str  # TrackedTable value the MERGE record is filed under
    repoint: tuple[Repoint, ...]
    discard: tuple[Discard, ...] = ()
    # Parent column both sides must share, e.g. locations only merge within a site.
    same_parent: Optional[str] = None


REGISTRY: dict[str, MergeableKind] = {
    "location": MergeableKind(
        name="location",
        model=Location,
        table=TrackedTable.LOCATIONS,
        repoint=(Repoint(PurchaseOrder.__table__.c.location_id),),
        same_parent="site_id",
    ),
    "stage": MergeableKind(
        name="stage",
        model=Stage,
        table=TrackedTable.STAGES,
        repoint=(Repoint(PurchaseOrder.__table__.c.stage_id),),
    ),
    "supplier": MergeableKind(
        name="supplier",
        model=Supplier,
        table=TrackedTable.SUPPLIERS,
        repoint=(Repoint(PurchaseOrder.__table__.c.supplier_id),),
    ),
    "site": MergeableKind(
        name="site",
        model=Site,
        table=TrackedTable.SITES,
        repoint=(
            Repoint(PurchaseOrder.__table__.c.site_id),
            Repoint(Location.__table__.c.site_id),
        ),
        # Sequences are unique per (site, year, month). The source's counters
        # numbered POs under the source's letter, so the target never needs them.
        discard=(Discard(POSequence.__table__.c.site_id),),
    ),
}

# Lookup by tracked-table name as well ("locations" -> location kind).
_BY_TABLE = {kind.table: kind for kind in REGISTRY.values()}


def get_kind(name: str) -> MergeableKind:
    """Resolve a kind by singular name ("site") or table name ("sites")."""
    kind = REGISTRY.get(name) or _BY_TABLE.get(name)
    if kind is None:
        raise ValidationError(f"{name!r} is not a mergeable entity kind")
    return kind


def count_references(db: Session, kind: MergeableKind, entity_id: int) -> dict[str, int]:
    """Rows that still point at entity_id, per repoint column. Zero counts omitted."""
    counts = {}
    for rule in kind.repoint:
        count = db.scalar(
            select(func.count()).select_from(rule.column.table).where(rule.column == entity_id)
        )
        if count:
            counts[rule.label] = count
    return counts
