"""
Reconciliation Engine — PO commitment vs invoices applied against it.

Design principle: every figure is recomputed from the current PO row and the
current invoice rows on each call. Nothing here is cached, and the stored
vat_amount / total_amount columns are never trusted as inputs: VAT is
re-derived from net × rate so a stale or hand-edited stored total cannot
skew a balance.

Rounding: VAT is rounded half-up to 2 dp per document, then summed.
Only ACTIVE invoices count; a cancelled invoice no longer reduces the balance.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from procurement.errors import NotFoundError, ValidationError
from procurement.models.purchasing import DocumentStatus, Invoice, PurchaseOrder
from procurement.settings import settings

CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")
ZERO = Decimal("0.00")


class ReconciliationState:
    OPEN = "open"  # still something left to invoice
    INVOICED = "invoiced"  # invoiced exactly to the PO net
    OVER = "over"  # invoices exceed the PO net


@dataclass(frozen=True)
class Reconciliation:
    purchase_order_id: int
    net: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    invoiced_net: Decimal
    invoiced_gross: Decimal
    uninvoiced_net: Decimal
    uninvoiced_gross: Decimal
    invoice_count: int
    state: str


# ── Money helpers ─────────────────────────────────────────────────────────────


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def vat_amount(net, rate) -> Decimal:
    """round(net × rate, 2), half-up. Negative nets round away from zero."""
    return (Decimal(str(net)) * Decimal(str(rate))).quantize(CENT, rounding=ROUND_HALF_UP)


def gross(net, rate) -> Decimal:
    return to_money(net) + vat_amount(net, rate)


def normalize_vat_rate(rate) -> Decimal:
    """
    Accept a fraction (0.135) or a percentage (13.5) and return the 4 dp
    fraction, provided it is one of the configured canonical rates.
    """
    try:
        value = Decimal(str(rate))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"VAT rate {rate!r} is not a number")
    if value > 1:
        value = value / 100
    value = value.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
    allowed = settings.allowed_vat_rates
    if value not in allowed:
        choices = ", ".join(f"{(r * 100).normalize():f}%" for r in sorted(allowed))
        raise ValidationError(f"VAT rate {rate} is not allowed (valid: {choices})")
    return value


def line_items_total(lines: Iterable) -> Decimal:
    """
    Sum of quantity × unit_price, each line rounded to the cent.

    Quantity and unit price are rounded to the cent first, the precision the
    line item columns store, so the total always matches the stored rows.
    """
    total = ZERO
    for line in lines:
        total += to_money(to_money(line.quantity) * to_money(line.unit_price))
    return total


# ── Engine ────────────────────────────────────────────────────────────────────


def reconcile(db: Session, purchase_order_id: int) -> Reconciliation:
    """Fresh balances for one PO. Raises NotFoundError if the PO is absent."""
    po = db.get(PurchaseOrder, purchase_order_id, populate_existing=True)
    if po is None:
        raise NotFoundError(f"Purchase order {purchase_order_id} not found")

    invoices = db.scalars(
        select(Invoice).where(
            Invoice.purchase_order_id == purchase_order_id,
            Invoice.status == DocumentStatus.ACTIVE,
        ).execution_options(populate_existing=True)
    ).all()
    return reconcile_rows(po, invoices)


def reconcile_rows(po: PurchaseOrder, invoices: Iterable[Invoice]) -> Reconciliation:
    """The arithmetic, separated so list views can reuse already-loaded rows."""
    net = to_money(po.net_amount)
    rate = Decimal(str(po.vat_rate))
    po_vat = vat_amount(net, rate)
    po_total = net + po_vat

    invoiced_net = ZERO
    invoiced_gross = ZERO
    count = 0
    for invoice in invoices:
        if invoice.status != DocumentStatus.ACTIVE:
            continue
        invoiced_net += to_money(invoice.net_amount)
        invoiced_gross += gross(invoice.net_amount, invoice.vat_rate)
        count += 1

    uninvoiced_net = net - invoiced_net
    if uninvoiced_net > 0:
        state = ReconciliationState.OPEN
    elif uninvoiced_net == 0:
        state = ReconciliationState.INVOICED
    else:
        state = ReconciliationState.OVER

    return Reconciliation(
        purchase_order_id=po.id,
        net=net,
        vat_rate=rate,
        vat_amount=po_vat,
        total_amount=po_total,
        invoiced_net=invoiced_net,
        invoiced_gross=invoiced_gross,
        uninvoiced_net=uninvoiced_net,
        uninvoiced_gross=po_total - invoiced_gross,
        invoice_count=count,
        state=state,
    )
