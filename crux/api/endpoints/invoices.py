"""
Invoice Endpoints

Tenant-scoped invoices with PDF rendering and email delivery.
"""
from fastapi import APIRouter, Depends, Query, Response, status
from typing import Optional

from crux.api.deps import get_email_service, get_policy_session, require_authenticated, unwrap
from crux.core.policies import Caller, PolicySession
from crux.schemas.invoice import (
    InvoiceCreate,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceSendResponse,
    InvoiceStats,
    InvoiceUpdate,
)
from crux.services.email_service import EmailService
from crux.services.invoice_service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.get("", response_model=InvoiceListResponse)
def list_invoices(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    tenant_id: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    result = unwrap(InvoiceService(db).get_invoices(tenant_id, status_filter, page, page_size))
    return InvoiceListResponse(
        invoices=result["invoices"],
        total=result["total"],
        page=page,
        page_size=page_size
    )


@router.get("/stats", response_model=InvoiceStats)
def get_invoice_stats(
    tenant_id: Optional[str] = Query(None),
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(InvoiceService(db).get_invoice_stats(tenant_id))


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
def create_invoice(
    body: InvoiceCreate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(InvoiceService(db).create_invoice(body.model_dump()))


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(InvoiceService(db).get_invoice_by_id(invoice_id))


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
def update_invoice(
    invoice_id: str,
    body: InvoiceUpdate,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    """Changing quantity or unit price recomputes the total."""
    return unwrap(InvoiceService(db).update_invoice(invoice_id, body.model_dump(exclude_unset=True)))


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    unwrap(InvoiceService(db).delete_invoice(invoice_id))
    return None


@router.get("/{invoice_id}/pdf")
def get_invoice_pdf(
    invoice_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    pdf_bytes = unwrap(InvoiceService(db).get_invoice_pdf(invoice_id))
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="invoice-{invoice_id}.pdf"'},
    )


@router.post("/{invoice_id}/send", response_model=InvoiceSendResponse)
def send_invoice(
    invoice_id: str,
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
    email_service: EmailService = Depends(get_email_service),
):
    return unwrap(InvoiceService(db, email_service).send_invoice(invoice_id))
