"""
Invoice Schemas
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal


class InvoiceCreate(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: EmailStr
    customer_address: Optional[str] = None
    customer_phone: Optional[str] = None
    item_description: str = Field(..., min_length=1)
    quantity: Decimal = Field(Decimal("1"), gt=0)
    unit_price: Decimal = Field(..., ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    due_date: Optional[date] = None
    status: str = "draft"
    notes: Optional[str] = None
    invoice_number: Optional[str] = None
    tenant_id: Optional[str] = None


class InvoiceUpdate(BaseModel):
    customer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    customer_email: Optional[EmailStr] = None
    customer_address: Optional[str] = None
    customer_phone: Optional[str] = None
    item_description: Optional[str] = None
    quantity: Optional[Decimal] = Field(None, gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    due_date: Optional[date] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class InvoiceResponse(BaseModel):
    id: str
    tenant_id: str
    invoice_number: str
    customer_name: str
    customer_email: str
    customer_address: Optional[str] = None
    customer_phone: Optional[str] = None
    item_description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal
    currency: str
    due_date: Optional[date] = None
    status: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class InvoiceListResponse(BaseModel):
    invoices: List[InvoiceResponse]
    total: int
    page: int
    page_size: int


class InvoiceStats(BaseModel):
    total_invoices: int
    total_revenue: float
    pending_invoices: int


class InvoiceSendResponse(BaseModel):
    invoice: InvoiceResponse
    message_id: Optional[str] = None
