"""
Purchasing entities: PurchaseOrder, POLineItem, POSequence, Invoice.

Money columns are Numeric(15, 2); VAT rates are fractions at 4 dp
(0.1350 == 13.5%). vat_amount / total_amount are stored for display and
export, but balances are always recomputed by services/reconciliation.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement.models.base import Base, IntPrimaryKeyMixin, TimestampMixin
from procurement.models.reference import Location, Site, Stage, Supplier


# ── Lifecycle state constants ────────────────────────────────────────────────


class DocumentStatus:
    ACTIVE = "active"
    CANCELLED = "cancelled"

    ALL = [ACTIVE, CANCELLED]


# ── Models ───────────────────────────────────────────────────────────────────


class PurchaseOrder(Base, IntPrimaryKeyMixin, TimestampMixin):
    """
    A commitment to a supplier for a net amount at a VAT rate,
    tied to a site / location / stage.
    Never physically deleted — cancellation flips status to CANCELLED.
    """

    __tablename__ = "purchase_orders"

    po_number: Mapped[str] = mapped_column(
        String(100), nullable=False, unique=True, index=True
    )
    po_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    supplier_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    site_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    location_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    stage_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("stages.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    net_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    vat_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, comment="Valid rates: 0.0000, 0.1350, 0.2300"
    )
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DocumentStatus.ACTIVE, index=True
    )
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cancelled_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    supplier: Mapped["Supplier"] = relationship("Supplier")
    site: Mapped["Site"] = relationship("Site")
    location: Mapped["Location"] = relationship("Location")
    stage: Mapped["Stage"] = relationship("Stage")
    line_items: Mapped[list["POLineItem"]] = relationship(
        "POLineItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="POLineItem.line_number",
    )

    @property
    def is_active(self) -> bool:
        return self.status == DocumentStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<PurchaseOrder po_number={self.po_number!r} status={self.status!r}>"


class POLineItem(Base, IntPrimaryKeyMixin, TimestampMixin):
    """Optional breakdown of a PO. When present, lines sum to the PO net."""

    __tablename__ = "po_line_items"

    purchase_order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    purchase_order: Mapped["PurchaseOrder"] = relationship(
        "PurchaseOrder", back_populates="line_items"
    )

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "line_number", name="uq_po_line_number"),
    )


class POSequence(Base, IntPrimaryKeyMixin, TimestampMixin):
    """Per-site, per-month counter behind PO numbers."""

    __tablename__ = "po_sequences"

    site_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("site_id", "year", "month", name="uq_po_sequence_period"),
    )


class Invoice(Base, IntPrimaryKeyMixin, TimestampMixin):
    """
    A billing document applied against a PO.
    net_amount may be negative (credit note); there is deliberately no floor.
    """

    __tablename__ = "invoices"

    purchase_order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    invoice_number: Mapped[str] = mapped_column(
        String(100), nullable=False, unique=True, index=True
    )
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    net_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    vat_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DocumentStatus.ACTIVE, index=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    purchase_order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder")

    @property
    def is_active(self) -> bool:
        return self.status == DocumentStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Invoice number={self.invoice_number!r} net={self.net_amount}>"
