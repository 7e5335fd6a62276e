"""
Purchase order API routes.

  GET    /purchase-orders            → dashboard list with live balances
  GET    /purchase-orders/{id}       → PO detail, line items, invoices, balances
  POST   /purchase-orders            → raise a PO (number allocated server-side)
  PUT    /purchase-orders/{id}       → full replace of the editable fields
  DELETE /purchase-orders/{id}       → cancel (logical delete)

Role guard policy:
  Read endpoints   → everyone signed in
  Create / update  → STAFF, ADMIN, SUPER_ADMIN
  Cancel           → ADMIN, SUPER_ADMIN
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from procurement.database import get_db
from procurement.models.user import UserRole
from procurement.routers.auth import require_role
from procurement.schemas.purchasing import (
    InvoiceResponse,
    LineItemResponse,
    PurchaseOrderIn,
    PurchaseOrderListItem,
    PurchaseOrderResponse,
)
from procurement.services import purchasing
from procurement.services.audit.ledger import Actor
from procurement.services.purchasing import PurchaseOrderView
from procurement.services.reconciliation import to_money

router = APIRouter(prefix="/purchase-orders", tags=["purchase-orders"])

_READ_ROLES = UserRole.ALL
_WRITE_ROLES = (UserRole.STAFF, UserRole.ADMIN, UserRole.SUPER_ADMIN)
_CANCEL_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN)


# ── Reads ─────────────────────────────────────────────────────────────────────


@router.get("", response_model=list[PurchaseOrderListItem])
def list_purchase_orders(
    include_cancelled: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_READ_ROLES)),
) -> list[PurchaseOrderListItem]:
    """Newest PO date first. Cancelled POs are hidden unless asked for."""
    return [
        _to_list_item(view)
        for view in purchasing.list_purchase_orders(db, include_cancelled=include_cancelled)
    ]


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
def get_purchase_order(
    po_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_READ_ROLES)),
) -> PurchaseOrderResponse:
    return _to_po_response(purchasing.get_purchase_order(db, po_id))


# ── Writes ────────────────────────────────────────────────────────────────────


@router.post("", response_model=PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
def create_purchase_order(
    payload: PurchaseOrderIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_WRITE_ROLES)),
) -> PurchaseOrderResponse:
    po = purchasing.create_purchase_order(db, payload, actor)
    return _to_po_response(purchasing.get_purchase_order(db, po.id))


@router.put("/{po_id}", response_model=PurchaseOrderResponse)
def update_purchase_order(
    po_id: int,
    payload: PurchaseOrderIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_WRITE_ROLES)),
) -> PurchaseOrderResponse:
    purchasing.update_purchase_order(db, po_id, payload, actor)
    return _to_po_response(purchasing.get_purchase_order(db, po_id))


@router.delete("/{po_id}", response_model=PurchaseOrderResponse)
def cancel_purchase_order(
    po_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_CANCEL_ROLES)),
) -> PurchaseOrderResponse:
    """409 while the PO still has active invoices; cancel those first."""
    purchasing.cancel_purchase_order(db, po_id, actor)
    return _to_po_response(purchasing.get_purchase_order(db, po_id))


# ── Helpers ───────────────────────────────────────────────────────────────────


def _to_list_item(view: PurchaseOrderView) -> PurchaseOrderListItem:
    po, rec = view.purchase_order, view.reconciliation
    return PurchaseOrderListItem(
        id=po.id,
        po_number=po.po_number,
        po_date=po.po_date,
        status=po.status,
        supplier=po.supplier.name,
        site=po.site.name,
        location=po.location.name,
        stage=po.stage.name,
        net_amount=po.net_amount,
        vat_rate=po.vat_rate,
        total_amount=po.total_amount,
        invoiced_gross=rec.invoiced_gross,
        uninvoiced_net=rec.uninvoiced_net,
        uninvoiced_gross=rec.uninvoiced_gross,
    )


def _to_po_response(view: PurchaseOrderView) -> PurchaseOrderResponse:
    po, rec = view.purchase_order, view.reconciliation
    return PurchaseOrderResponse(
        id=po.id,
        created_at=po.created_at,
        updated_at=po.updated_at,
        po_number=po.po_number,
        po_date=po.po_date,
        description=po.description,
        status=po.status,
        supplier_id=po.supplier_id,
        supplier=po.supplier.name,
        site_id=po.site_id,
        site=po.site.name,
        location_id=po.location_id,
        location=po.location.name,
        stage_id=po.stage_id,
        stage=po.stage.name,
        net_amount=po.net_amount,
        vat_rate=po.vat_rate,
        vat_amount=po.vat_amount,
        total_amount=po.total_amount,
        invoiced_net=rec.invoiced_net,
        invoiced_gross=rec.invoiced_gross,
        uninvoiced_net=rec.uninvoiced_net,
        uninvoiced_gross=rec.uninvoiced_gross,
        reconciliation_state=rec.state,
        cancelled_at=po.cancelled_at,
        line_items=[
            LineItemResponse(
                id=line.id,
                line_number=line.line_number,
                description=line.description,
                quantity=line.quantity,
                unit=line.unit,
                unit_price=line.unit_price,
                line_total=to_money(line.quantity * line.unit_price),
            )
            for line in po.line_items
        ],
        invoices=[InvoiceResponse.model_validate(inv) for inv in view.invoices],
    )
