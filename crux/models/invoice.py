"""
Invoice Model

Invoices are tenant-owned like every other business record.
"""
from sqlalchemy import Column, String, DateTime, Date, Numeric, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from crux.database import Base
import uuid

INVOICE_STATUSES = ("draft", "sent", "paid", "overdue")
PENDING_INVOICE_STATUSES = ("draft", "sent")


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    invoice_number = Column(String(50), unique=True, nullable=False)

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_address = Column(Text, nullable=True)
    customer_phone = Column(String(50), nullable=True)

    item_description = Column(Text, nullable=False)
    quantity = Column(Numeric(12, 2), default=1, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), default="USD", nullable=False)

    due_date = Column(Date, nullable=True)
    status = Column(String(20), default="draft", nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="invoices")

    __table_args__ = (
        Index('idx_invoices_tenant_status', 'tenant_id', 'status'),
    )

    def __repr__(self):
        return f"<Invoice {self.invoice_number}>"
