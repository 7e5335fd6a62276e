"""
Purchase order and invoice schemas — request and response shapes for the API.

Every PO read carries fresh reconciliation figures (uninvoiced_net /
uninvoiced_gross) beside the stored net_amount / total_amount.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from procurement.schemas.common import BaseSchema, TimestampedSchema


# ── Line items ───────────────────────────────────────────────────────────────


class LineItemIn(BaseSchema):
    description: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0)
    unit: Optional[str] = Field(None, max_length=50)
    unit_price: Decimal


class LineItemResponse(BaseSchema):
    id: int
    line_number: int
    description: str
    quantity: Decimal
    unit: Optional[str]
    unit_price: Decimal
    line_total: Decimal


# ── Purchase orders ──────────────────────────────────────────────────────────


class PurchaseOrderIn(BaseSchema):
    """Create and full-replace update share one shape; the PO number is never client-set."""

    supplier_id: int
    site_id: int
    location_id: int
    stage_id: int
    po_date: date
    description: Optional[str] = None
    net_amount: Decimal
    vat_rate: Decimal = Field(..., description="Fraction (0.135) or percentage (13.5)")
    line_items: list[LineItemIn] = []


class PurchaseOrderListItem(BaseSchema):
    """Compact dashboard row."""

    id: int
    po_number: str
    po_date: date
    status: str
    supplier: str
    site: str
    location: str
    stage: str
    net_amount: Decimal
    vat_rate: Decimal
    total_amount: Decimal
    invoiced_gross: Decimal
    uninvoiced_net: Decimal
    uninvoiced_gross: Decimal


class InvoiceResponse(TimestampedSchema):
    purchase_order_id: int
    invoice_number: str
    invoice_date: date
    net_amount: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    status: str
    notes: Optional[str] = None


class PurchaseOrderResponse(TimestampedSchema):
    po_number: str
    po_date: date
    description: Optional[str]
    status: str

    supplier_id: int
    supplier: str
    site_id: int
    site: str
    location_id: int
    location: str
    stage_id: int
    stage: str

    # Stored figures
    net_amount: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total_amount: Decimal

    # Recomputed on every read
    invoiced_net: Decimal
    invoiced_gross: Decimal
    uninvoiced_net: Decimal
    uninvoiced_gross: Decimal
    reconciliation_state: str  # open | invoiced | over

    cancelled_at: Optional[datetime] = None
    line_items: list[LineItemResponse] = []
    invoices: list[InvoiceResponse] = []


# ── Invoices ─────────────────────────────────────────────────────────────────


class InvoiceUpdate(BaseSchema):
    invoice_number: str = Field(..., min_length=1, max_length=100)
    invoice_date: date
    net_amount: Decimal = Field(..., description="Negative for a credit note")
    vat_rate: Decimal
    notes: Optional[str] = None

    @field_validator("invoice_number")
    @classmethod
    def strip_invoice_number(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Invoice number is required")
        return v


class InvoiceCreate(InvoiceUpdate):
    purchase_order_id: int
