"""
Invoice API routes. Invoices always hang off one purchase order.

  GET    /invoices?po_id=       → invoices for a PO (active only unless asked)
  POST   /invoices              → record an invoice or credit note against a PO
  PUT    /invoices/{id}         → correct an invoice
  DELETE /invoices/{id}         → cancel (logical delete)
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from procurement.database import get_db
from procurement.models.user import UserRole
from procurement.routers.auth import require_role
from procurement.schemas.purchasing import InvoiceCreate, InvoiceResponse, InvoiceUpdate
from procurement.services import purchasing
from procurement.services.audit.ledger import Actor

router = APIRouter(prefix="/invoices", tags=["invoices"])

_WRITE_ROLES = (UserRole.STAFF, UserRole.ADMIN, UserRole.SUPER_ADMIN)


@router.get("", response_model=list[InvoiceResponse])
def list_invoices(
    po_id: int,
    include_cancelled: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*UserRole.ALL)),
) -> list[InvoiceResponse]:
    # 404 for an unknown PO rather than an empty list.
    purchasing.get_purchase_order(db, po_id)
    return [
        InvoiceResponse.model_validate(inv)
        for inv in purchasing.list_invoices(db, po_id, include_cancelled=include_cancelled)
    ]


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_WRITE_ROLES)),
) -> InvoiceResponse:
    invoice = purchasing.create_invoice(db, payload, actor)
    return InvoiceResponse.model_validate(invoice)


@router.put("/{invoice_id}", response_model=InvoiceResponse)
def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_WRITE_ROLES)),
) -> InvoiceResponse:
    invoice = purchasing.update_invoice(db, invoice_id, payload, actor)
    return InvoiceResponse.model_validate(invoice)


@router.delete("/{invoice_id}", response_model=InvoiceResponse)
def cancel_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(*_WRITE_ROLES)),
) -> InvoiceResponse:
    invoice = purchasing.cancel_invoice(db, invoice_id, actor)
    return InvoiceResponse.model_validate(invoice)
