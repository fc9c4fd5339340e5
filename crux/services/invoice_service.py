"""
Invoice Service

Tenant invoices: CRUD, totals, PDF rendering and delivery by email.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
import secrets
import string

from crux.core.exceptions import EmailDeliveryError, RecordNotFoundError, ValidationFailedError
from crux.models.invoice import INVOICE_STATUSES, PENDING_INVOICE_STATUSES, Invoice
from crux.models.settings import BusinessSettings
from crux.models.tenant import Tenant
from crux.services.base import BaseService, service_method
from crux.services.email_service import EmailService
from crux.services.pdf_service import create_invoice_pdf

UPDATABLE_FIELDS = (
    "customer_name",
    "customer_email",
    "customer_address",
    "customer_phone",
    "item_description",
    "quantity",
    "unit_price",
    "currency",
    "due_date",
    "status",
    "notes",
)

CENTS = Decimal("0.01")


def generate_invoice_number(today: datetime = None) -> str:
    """INV-YYYYMMDD-XXXX"""
    today = today or datetime.utcnow()
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(4))
    return f"INV-{today:%Y%m%d}-{suffix}"


def _decimal(value: Any, field: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailedError(f"{field} must be a number")


def compute_total(quantity: Any, unit_price: Any) -> Decimal:
    quantity = _decimal(quantity, "quantity")
    unit_price = _decimal(unit_price, "unit_price")
    if quantity <= 0:
        raise ValidationFailedError("quantity must be greater than 0")
    if unit_price < 0:
        raise ValidationFailedError("unit_price cannot be negative")
    return (quantity * unit_price).quantize(CENTS)


def _clean_status(status: str) -> str:
    if status not in INVOICE_STATUSES:
        raise ValidationFailedError(f"Invalid invoice status: {status}")
    return status


class InvoiceService(BaseService):

    def __init__(self, db, email_service: EmailService = None):
        super().__init__(db)
        self.email = email_service or EmailService()

    def _visible_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise RecordNotFoundError("Invoice", invoice_id)
        return invoice

    def _unique_number(self) -> str:
        lookup = self.db.elevated()
        while True:
            number = generate_invoice_number()
            if lookup.query(Invoice).filter(Invoice.invoice_number == number).first() is None:
                return number

    def _business_name(self, tenant_id: str) -> str:
        admin = self.db.elevated()
        settings_row = (
            admin.query(BusinessSettings).filter(BusinessSettings.tenant_id == tenant_id).first()
        )
        if settings_row is not None and settings_row.business_name:
            return settings_row.business_name
        tenant = admin.get(Tenant, tenant_id)
        if tenant is None:
            return ""
        return tenant.business_name or tenant.name

    @service_method("InvoiceService.get_invoices")
    def get_invoices(
        self,
        tenant_id: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ):
        query = self.db.query(Invoice)
        if tenant_id:
            query = query.filter(Invoice.tenant_id == tenant_id)
        if status:
            query = query.filter(Invoice.status == _clean_status(status))
        total = query.count()
        offset, limit = self.paginate(page, limit)
        invoices = query.order_by(Invoice.created_at.desc()).offset(offset).limit(limit).all()
        return {"invoices": invoices, "total": total}

    @service_method("InvoiceService.get_invoice_by_id")
    def get_invoice_by_id(self, invoice_id: str):
        return self._visible_invoice(invoice_id)

    @service_method("InvoiceService.create_invoice")
    def create_invoice(self, data: Dict[str, Any]):
        tenant_id = data.get("tenant_id") or self.caller.tenant_id
        if not tenant_id:
            raise ValidationFailedError("tenant_id is required")
        for field in ("customer_name", "customer_email", "item_description"):
            if not data.get(field):
                raise ValidationFailedError(f"{field} is required")

        quantity = data.get("quantity", 1)
        invoice = Invoice(
            tenant_id=tenant_id,
            invoice_number=data.get("invoice_number") or self._unique_number(),
            customer_name=data["customer_name"],
            customer_email=data["customer_email"],
            customer_address=data.get("customer_address"),
            customer_phone=data.get("customer_phone"),
            item_description=data["item_description"],
            quantity=_decimal(quantity, "quantity"),
            unit_price=_decimal(data.get("unit_price"), "unit_price"),
            total=compute_total(quantity, data.get("unit_price")),
            currency=(data.get("currency") or "USD").upper(),
            due_date=data.get("due_date"),
            status=_clean_status(data.get("status") or "draft"),
            notes=data.get("notes"),
        )
        self.db.add(invoice)
        self.db.commit()
        return invoice

    @service_method("InvoiceService.update_invoice")
    def update_invoice(self, invoice_id: str, values: Dict[str, Any]):
        invoice = self._visible_invoice(invoice_id)
        changes = {k: v for k, v in values.items() if k in UPDATABLE_FIELDS}
        if "status" in changes:
            _clean_status(changes["status"])
        if "currency" in changes and changes["currency"]:
            changes["currency"] = changes["currency"].upper()
        if "quantity" in changes or "unit_price" in changes:
            quantity = changes.get("quantity", invoice.quantity)
            unit_price = changes.get("unit_price", invoice.unit_price)
            changes["total"] = compute_total(quantity, unit_price)

        self.db.update(invoice, changes)
        self.db.commit()
        return invoice

    @service_method("InvoiceService.delete_invoice")
    def delete_invoice(self, invoice_id: str):
        self.db.delete(self._visible_invoice(invoice_id))
        self.db.commit()
        return True

    @service_method("InvoiceService.get_invoice_stats")
    def get_invoice_stats(self, tenant_id: Optional[str] = None):
        query = self.db.query(Invoice)
        if tenant_id:
            query = query.filter(Invoice.tenant_id == tenant_id)
        rows = query.with_entities(Invoice.total, Invoice.status).all()
        return {
            "total_invoices": len(rows),
            "total_revenue": float(sum((row.total or 0) for row in rows)),
            "pending_invoices": sum(1 for row in rows if row.status in PENDING_INVOICE_STATUSES),
        }

    @service_method("InvoiceService.get_invoice_pdf")
    def get_invoice_pdf(self, invoice_id: str):
        invoice = self._visible_invoice(invoice_id)
        return create_invoice_pdf(invoice, self._business_name(invoice.tenant_id))

    @service_method("InvoiceService.send_invoice")
    def send_invoice(self, invoice_id: str):
        """Email the invoice PDF to the customer; a draft becomes sent."""
        invoice = self._visible_invoice(invoice_id)
        business_name = self._business_name(invoice.tenant_id)
        pdf_bytes = create_invoice_pdf(invoice, business_name)

        sent, error, message_id = self.email.send_invoice(invoice, pdf_bytes, business_name)
        if not sent:
            raise EmailDeliveryError(f"Failed to send invoice email: {error}")

        if invoice.status == "draft":
            self.db.update(invoice, {"status": "sent"})
            self.db.commit()
        self.logger.info(
            f"Invoice {invoice.invoice_number} sent to {invoice.customer_email}",
            extra={"tenant_id": invoice.tenant_id},
        )
        return {"invoice": invoice, "message_id": message_id}
