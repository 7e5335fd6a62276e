"""
Purchase order and invoice mutations.

Every public write here:
  - takes an explicit Actor
  - validates and applies the change
  - writes exactly one audit record via the ledger
  - commits both in one transaction (procurement.database.transaction)

Deletion is logical: POs and invoices are cancelled (status = cancelled,
audited as CANCEL), never removed, so their history stays intact.
A PO cannot be cancelled while it still has active invoices; cancel the
invoices first. Cancellation does not cascade.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from procurement.database import transaction
from procurement.errors import ConflictError, NotFoundError, ValidationError
from procurement.models.audit import AuditAction, TrackedTable
from procurement.models.purchasing import (
    DocumentStatus,
    Invoice,
    POLineItem,
    POSequence,
    PurchaseOrder,
)
from procurement.models.reference import Location, Site, Stage, Supplier
from procurement.schemas.purchasing import InvoiceCreate, InvoiceUpdate, PurchaseOrderIn
from procurement.services.audit import ledger
from procurement.services.audit.ledger import Actor
from procurement.services.reconciliation import (
    Reconciliation,
    line_items_total,
    normalize_vat_rate,
    reconcile_rows,
    to_money,
    vat_amount,
)
from procurement.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class PurchaseOrderView:
    """A PO with its invoices and freshly computed balances."""

    purchase_order: PurchaseOrder
    invoices: list[Invoice]
    reconciliation: Reconciliation


# ── Reads ─────────────────────────────────────────────────────────────────────


def get_purchase_order(db: Session, po_id: int) -> PurchaseOrderView:
    po = db.get(PurchaseOrder, po_id, populate_existing=True)
    if po is None:
        raise NotFoundError(f"Purchase order {po_id} not found")
    invoices = list_invoices(db, po_id, include_cancelled=True)
    return PurchaseOrderView(po, invoices, reconcile_rows(po, invoices))


def list_purchase_orders(
    db: Session, include_cancelled: bool = False
) -> list[PurchaseOrderView]:
    """Dashboard list, newest PO date first, balances computed per row."""
    stmt = (
        select(PurchaseOrder)
        .options(
            selectinload(PurchaseOrder.supplier),
            selectinload(PurchaseOrder.site),
            selectinload(PurchaseOrder.location),
            selectinload(PurchaseOrder.stage),
        )
        .order_by(PurchaseOrder.po_date.desc(), PurchaseOrder.id.desc())
        .execution_options(populate_existing=True)
    )
    if not include_cancelled:
        stmt = stmt.where(PurchaseOrder.status == DocumentStatus.ACTIVE)
    orders = db.scalars(stmt).all()

    by_po: dict[int, list[Invoice]] = {po.id: [] for po in orders}
    if by_po:
        invoices = db.scalars(
            select(Invoice)
            .where(
                Invoice.purchase_order_id.in_(by_po),
                Invoice.status == DocumentStatus.ACTIVE,
            )
            .execution_options(populate_existing=True)
        ).all()
        for invoice in invoices:
            by_po[invoice.purchase_order_id].append(invoice)

    return [
        PurchaseOrderView(po, by_po[po.id], reconcile_rows(po, by_po[po.id]))
        for po in orders
    ]


def list_invoices(
    db: Session, po_id: int, include_cancelled: bool = False
) -> list[Invoice]:
    stmt = (
        select(Invoice)
        .where(Invoice.purchase_order_id == po_id)
        .order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
        .execution_options(populate_existing=True)
    )
    if not include_cancelled:
        stmt = stmt.where(Invoice.status == DocumentStatus.ACTIVE)
    return list(db.scalars(stmt).all())


# ── Purchase orders ───────────────────────────────────────────────────────────


def create_purchase_order(db: Session, data: PurchaseOrderIn, actor: Actor) -> PurchaseOrder:
    with transaction(db):
        site = _check_references(db, data)
        po = PurchaseOrder(
            po_number=next_po_number(db, site, data.po_date),
            status=DocumentStatus.ACTIVE,
            created_by=actor.id,
        )
        _apply_po_fields(po, data)
        db.add(po)
        db.flush()

        ledger.record(
            db,
            TrackedTable.PURCHASE_ORDERS,
            po.id,
            AuditAction.CREATE,
            old_values=None,
            new_values=_po_snapshot(po),
            actor=actor,
        )

    logger.info("Created purchase order %s (id=%s)", po.po_number, po.id)
    return po


def update_purchase_order(
    db: Session, po_id: int, data: PurchaseOrderIn, actor: Actor
) -> PurchaseOrder:
    """Full replace of the editable fields. The PO number never changes."""
    with transaction(db):
        po = _get_po_for_update(db, po_id)
        if not po.is_active:
            raise ConflictError(f"Purchase order {po.po_number} is cancelled")
        _check_references(db, data)
        before = _po_snapshot(po)

        _apply_po_fields(po, data)
        db.flush()

        ledger.record(
            db,
            TrackedTable.PURCHASE_ORDERS,
            po.id,
            AuditAction.UPDATE,
            old_values=before,
            new_values=_po_snapshot(po),
            actor=actor,
        )
    return po


def cancel_purchase_order(db: Session, po_id: int, actor: Actor) -> PurchaseOrder:
    with transaction(db):
        po = _get_po_for_update(db, po_id)
        if not po.is_active:
            raise ConflictError(f"Purchase order {po.po_number} is already cancelled")

        open_invoices = db.scalar(
            select(func.count())
            .select_from(Invoice)
            .where(
                Invoice.purchase_order_id == po.id,
                Invoice.status == DocumentStatus.ACTIVE,
            )
        )
        if open_invoices:
            logger.warning(
                "Refused to cancel %s: %s active invoice(s)", po.po_number, open_invoices
            )
            raise ConflictError("Cannot cancel PO with existing invoices")

        before = _po_snapshot(po)
        po.status = DocumentStatus.CANCELLED
        po.cancelled_by = actor.id
        po.cancelled_at = datetime.now(timezone.utc)
        db.flush()

        ledger.record(
            db,
            TrackedTable.PURCHASE_ORDERS,
            po.id,
            AuditAction.CANCEL,
            old_values=before,
            new_values=_po_snapshot(po),
            actor=actor,
        )

    logger.info("Cancelled purchase order %s", po.po_number)
    return po


def next_po_number(db: Session, site: Site, po_date) -> str:
    """
    {site letter}{last digit of year}{MM}{NNN}, e.g. B501007.

    The counter row is locked for the rest of the caller's transaction so two
    POs raised concurrently for one site never share a number.
    """
    year, month = po_date.year, po_date.month
    seq = db.scalars(
        select(POSequence)
        .where(
            POSequence.site_id == site.id,
            POSequence.year == year,
            POSequence.month == month,
        )
        .with_for_update()
    ).first()
    if seq is None:
        seq = POSequence(site_id=site.id, year=year, month=month, last_number=0)
        db.add(seq)
    # The prefix can already carry numbers the counter never issued: POs merged
    # in from a retired site with the same letter, or from ten years earlier.
    prefix = f"{site.site_letter}{str(year)[-1]}{month:02d}"
    seq.last_number = max(seq.last_number, _highest_issued(db, prefix)) + 1
    db.flush()

    width = settings.po_number_sequence_width
    return f"{prefix}{seq.last_number:0{width}d}"


def _highest_issued(db: Session, prefix: str) -> int:
    numbers = db.scalars(
        select(PurchaseOrder.po_number).where(PurchaseOrder.po_number.startswith(prefix))
    ).all()
    suffixes = [int(n[len(prefix):]) for n in numbers if n[len(prefix):].isdigit()]
    return max(suffixes, default=0)


# ── Invoices ──────────────────────────────────────────────────────────────────


def create_invoice(db: Session, data: InvoiceCreate, actor: Actor) -> Invoice:
    with transaction(db):
        po = _get_po_for_update(db, data.purchase_order_id)
        if not po.is_active:
            raise ConflictError(f"Purchase order {po.po_number} is cancelled")
        _check_invoice_number(db, data.invoice_number)

        invoice = Invoice(
            purchase_order_id=po.id,
            status=DocumentStatus.ACTIVE,
            created_by=actor.id,
        )
        _apply_invoice_fields(invoice, data)
        db.add(invoice)
        db.flush()

        ledger.record(
            db,
            TrackedTable.INVOICES,
            invoice.id,
            AuditAction.CREATE,
            old_values=None,
            new_values=ledger.snapshot(invoice),
            actor=actor,
        )

    if invoice.net_amount < 0:
        logger.info("Credit note %s applied to %s", invoice.invoice_number, po.po_number)
    return invoice


def update_invoice(db: Session, invoice_id: int, data: InvoiceUpdate, actor: Actor) -> Invoice:
    with transaction(db):
        invoice = _get_invoice(db, invoice_id)
        if not invoice.is_active:
            raise ConflictError(f"Invoice {invoice.invoice_number} is cancelled")
        if data.invoice_number != invoice.invoice_number:
            _check_invoice_number(db, data.invoice_number)
        before = ledger.snapshot(invoice)

        _apply_invoice_fields(invoice, data)
        db.flush()

        ledger.record(
            db,
            TrackedTable.INVOICES,
            invoice.id,
            AuditAction.UPDATE,
            old_values=before,
            new_values=ledger.snapshot(invoice),
            actor=actor,
        )
    return invoice


def cancel_invoice(db: Session, invoice_id: int, actor: Actor) -> Invoice:
    with transaction(db):
        invoice = _get_invoice(db, invoice_id)
        if not invoice.is_active:
            raise ConflictError(f"Invoice {invoice.invoice_number} is already cancelled")
        before = ledger.snapshot(invoice)

        invoice.status = DocumentStatus.CANCELLED
        db.flush()

        ledger.record(
            db,
            TrackedTable.INVOICES,
            invoice.id,
            AuditAction.CANCEL,
            old_values=before,
            new_values=ledger.snapshot(invoice),
            actor=actor,
        )
    return invoice


# ── Helpers ───────────────────────────────────────────────────────────────────


def _get_po_for_update(db: Session, po_id: int) -> PurchaseOrder:
    po = db.scalars(
        select(PurchaseOrder)
        .where(PurchaseOrder.id == po_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    if po is None:
        raise NotFoundError(f"Purchase order {po_id} not found")
    return po


def _get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = db.scalars(
        select(Invoice)
        .where(Invoice.id == invoice_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def _check_references(db: Session, data: PurchaseOrderIn) -> Site:
    """All four references must exist and the location must sit on the site."""
    supplier = db.get(Supplier, data.supplier_id)
    site = db.get(Site, data.site_id)
    location = db.get(Location, data.location_id)
    stage = db.get(Stage, data.stage_id)
    for label, value, entity in (
        ("Supplier", data.supplier_id, supplier),
        ("Site", data.site_id, site),
        ("Location", data.location_id, location),
        ("Stage", data.stage_id, stage),
    ):
        if entity is None:
            raise NotFoundError(f"{label} {value} not found")
    if location.site_id != site.id:
        raise ValidationError(
            f"Location '{location.name}' does not belong to site '{site.name}'"
        )
    return site


def _check_invoice_number(db: Session, invoice_number: str) -> None:
    exists = db.scalar(
        select(Invoice.id).where(Invoice.invoice_number == invoice_number)
    )
    if exists is not None:
        raise ConflictError(f"Invoice number {invoice_number!r} already exists")


def _apply_po_fields(po: PurchaseOrder, data: PurchaseOrderIn) -> None:
    net = to_money(data.net_amount)
    rate = normalize_vat_rate(data.vat_rate)

    if data.line_items:
        lines_total = line_items_total(data.line_items)
        if lines_total != net:
            raise ValidationError(
                f"Line items total {lines_total} does not match net amount {net}"
            )

    po.supplier_id = data.supplier_id
    po.site_id = data.site_id
    po.location_id = data.location_id
    po.stage_id = data.stage_id
    po.po_date = data.po_date
    po.description = data.description or ""
    po.net_amount = net
    po.vat_rate = rate
    po.vat_amount = vat_amount(net, rate)
    po.total_amount = net + po.vat_amount
    _apply_line_items(po, data.line_items)


def _apply_line_items(po: PurchaseOrder, lines) -> None:
    # Rewrite rows in place by position; inserting fresh rows before the old
    # ones are deleted would collide on (purchase_order_id, line_number).
    existing = list(po.line_items)
    for number, line in enumerate(lines, start=1):
        if number <= len(existing):
            row = existing[number - 1]
        else:
            row = POLineItem(line_number=number)
            po.line_items.append(row)
        row.description = line.description
        row.quantity = to_money(line.quantity)
        row.unit = line.unit
        row.unit_price = to_money(line.unit_price)
    for row in existing[len(lines):]:
        po.line_items.remove(row)


def _apply_invoice_fields(invoice: Invoice, data) -> None:
    net = to_money(data.net_amount)
    rate = normalize_vat_rate(data.vat_rate)
    invoice.invoice_number = data.invoice_number
    invoice.invoice_date = data.invoice_date
    invoice.net_amount = net
    invoice.vat_rate = rate
    invoice.vat_amount = vat_amount(net, rate)
    invoice.total_amount = net + invoice.vat_amount
    invoice.notes = data.notes


def _po_snapshot(po: PurchaseOrder) -> dict:
    """PO columns plus its line items, so line edits show up in the diff."""
    values = ledger.snapshot(po)
    values["line_items"] = [
        {
            "line_number": line.line_number,
            "description": line.description,
            "quantity": str(to_money(line.quantity)),
            "unit": line.unit,
            "unit_price": str(to_money(line.unit_price)),
        }
        for line in po.line_items
    ]
    return values
