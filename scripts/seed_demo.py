"""
Demo seed script — stages, suppliers, locations, purchase orders and
invoices for end-to-end testing.

Everything is created through the services, so the demo data arrives with
a full audit trail (CREATE records attributed to the first super admin).
Includes one deliberate duplicate supplier to try the merge screen on.

Usage:
    python scripts/bootstrap.py      # first
    python scripts/seed_demo.py

Idempotent — safe to re-run; skips records that already exist.
"""

import os
import sys
from datetime import date
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from procurement.database import SessionLocal
from procurement.errors import ProcurementError
from procurement.models.purchasing import Invoice, PurchaseOrder
from procurement.models.reference import Location, Site, Stage, Supplier
from procurement.models.user import User, UserRole
from procurement.schemas.purchasing import InvoiceCreate, LineItemIn, PurchaseOrderIn
from procurement.schemas.reference import LocationIn, StageIn, SupplierIn
from procurement.services import purchasing, reference_data
from procurement.services.audit.ledger import Actor

# ── Demo data constants ────────────────────────────────────────────────────────

STAGES = ["Foundations", "Superstructure", "First Fix", "Second Fix", "Finishes"]

# (name, contact, email, phone)
SUPPLIERS = [
    ("Murphy Concrete Ltd", "Sean Murphy", "orders@murphyconcrete.example", "01 555 0101"),
    ("Brennan Timber Supplies", "Aoife Brennan", "sales@brennantimber.example", "01 555 0102"),
    ("Kelly Electrical", "Declan Kelly", "accounts@kellyelec.example", "01 555 0103"),
    # Near-duplicate of the first supplier, for the merge demo
    ("Murphy Concrete Limited", None, None, None),
]

LOCATIONS = ["Plot 1", "Plot 2", "Plot 3", "Show House"]

# (supplier, location, stage, po_date, description, vat_rate, lines[(desc, qty, unit, price)])
PURCHASE_ORDERS = [
    (
        "Murphy Concrete Ltd",
        "Plot 1",
        "Foundations",
        date(2025, 1, 14),
        "Ready-mix for strip foundations",
        Decimal("0.135"),
        [("C30 ready-mix concrete", Decimal("24"), "m3", Decimal("125.00"))],
    ),
    (
        "Brennan Timber Supplies",
        "Plot 2",
        "Superstructure",
        date(2025, 2, 3),
        "Roof timbers",
        Decimal("0.23"),
        [
            ("C24 rafters 47x200", Decimal("60"), "pcs", Decimal("18.50")),
            ("Wall plate 100x75", Decimal("20"), "pcs", Decimal("9.75")),
        ],
    ),
    (
        "Kelly Electrical",
        "Show House",
        "First Fix",
        date(2025, 2, 20),
        "First fix electrical",
        Decimal("0.135"),
        [],
    ),
]
KELLY_NET = Decimal("4200.00")

# (po description, invoice number, invoice date, net, vat_rate)
INVOICES = [
    ("Ready-mix for strip foundations", "MC-10021", date(2025, 1, 31), Decimal("1800.00"), Decimal("0.135")),
    ("Roof timbers", "BT-3307", date(2025, 2, 28), Decimal("1305.00"), Decimal("0.23")),
    # Credit note for returned timber
    ("Roof timbers", "BT-3307-CN", date(2025, 3, 7), Decimal("-97.50"), Decimal("0.23")),
]


def _actor(db) -> Actor:
    admin = db.scalar(
        select(User)
        .where(User.role == UserRole.SUPER_ADMIN, User.active.is_(True))
        .order_by(User.id)
    )
    if admin is None:
        print("ERROR: no super admin found — run scripts/bootstrap.py first.")
        sys.exit(1)
    return Actor(id=admin.id, name=admin.full_name, role=admin.role)


def main() -> None:
    print("\n=== Procurement — Demo Seed ===\n")

    db = SessionLocal()
    try:
        actor = _actor(db)
        site = db.scalar(select(Site).order_by(Site.id))
        if site is None:
            print("ERROR: no site found — run scripts/bootstrap.py first.")
            sys.exit(1)
        print(f"✓ Seeding into site '{site.name}' as {actor.name}")

        # ── Stages ────────────────────────────────────────────────────────────
        stages = {}
        for name in STAGES:
            stage = db.scalar(select(Stage).where(Stage.name == name))
            if stage is None:
                stage = reference_data.create_reference(db, "stage", StageIn(name=name), actor)
                print(f"  + stage {name}")
            stages[name] = stage.id

        # ── Suppliers ─────────────────────────────────────────────────────────
        suppliers = {}
        for name, contact, email, phone in SUPPLIERS:
            supplier = db.scalar(select(Supplier).where(Supplier.name == name))
            if supplier is None:
                supplier = reference_data.create_reference(
                    db,
                    "supplier",
                    SupplierIn(name=name, contact_person=contact, email=email, phone=phone),
                    actor,
                )
                print(f"  + supplier {name}")
            suppliers[name] = supplier.id

        # ── Locations ─────────────────────────────────────────────────────────
        locations = {}
        for name in LOCATIONS:
            location = db.scalar(
                select(Location).where(Location.site_id == site.id, Location.name == name)
            )
            if location is None:
                location = reference_data.create_reference(
                    db, "location", LocationIn(name=name, type="plot", site_id=site.id), actor
                )
                print(f"  + location {name}")
            locations[name] = location.id

        # ── Purchase orders ───────────────────────────────────────────────────
        po_ids = {}
        for supplier, location, stage, po_date, description, rate, lines in PURCHASE_ORDERS:
            existing = db.scalar(
                select(PurchaseOrder).where(PurchaseOrder.description == description)
            )
            if existing is not None:
                po_ids[description] = existing.id
                continue
            line_items = [
                LineItemIn(description=d, quantity=q, unit=u, unit_price=p)
                for d, q, u, p in lines
            ]
            net = sum((q * p for _, q, _, p in lines), Decimal("0")) if lines else KELLY_NET
            po = purchasing.create_purchase_order(
                db,
                PurchaseOrderIn(
                    supplier_id=suppliers[supplier],
                    site_id=site.id,
                    location_id=locations[location],
                    stage_id=stages[stage],
                    po_date=po_date,
                    description=description,
                    net_amount=net,
                    vat_rate=rate,
                    line_items=line_items,
                ),
                actor,
            )
            po_ids[description] = po.id
            print(f"  + PO {po.po_number} ({description}) net {po.net_amount}")

        # ── Invoices ──────────────────────────────────────────────────────────
        for description, number, invoice_date, net, rate in INVOICES:
            if db.scalar(select(Invoice.id).where(Invoice.invoice_number == number)):
                continue
            purchasing.create_invoice(
                db,
                InvoiceCreate(
                    purchase_order_id=po_ids[description],
                    invoice_number=number,
                    invoice_date=invoice_date,
                    net_amount=net,
                    vat_rate=rate,
                ),
                actor,
            )
            print(f"  + invoice {number} net {net}")

        print("\n── Balances ─────────────────────────────")
        for view in purchasing.list_purchase_orders(db):
            rec = view.reconciliation
            print(
                f"  {view.purchase_order.po_number}: net {rec.net}, "
                f"uninvoiced {rec.uninvoiced_net} ({rec.state})"
            )

        print("\n✅ Demo seed complete.\n")

    except ProcurementError as e:
        print(f"\nERROR: {e.kind} — {e.message}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
