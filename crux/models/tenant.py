"""
Tenant Model

The tenant is the isolation boundary: one row per business.
Shared database, shared schema; every tenant-owned row carries tenant_id
and the policy engine compares it to the caller's tenant.
"""
from sqlalchemy import Column, String, DateTime, Text, JSON, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from crux.database import Base
import enum
import uuid


class PlanType(str, enum.Enum):
    BASIC = "basic"
    PRO = "pro"
    INDUSTRY = "industry"


class TenantStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING = "pending"
    CANCELLED = "cancelled"


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    name = Column(String(255), nullable=False)
    domain = Column(String(255), unique=True, nullable=True)

    # Public review URL: /review/<slug>
    slug = Column(String(100), unique=True, nullable=True, index=True)
    business_name = Column(String(255), nullable=True)
    google_review_url = Column(Text, nullable=True)
    review_form_url = Column(Text, nullable=True)

    # basic | pro | industry ("enterprise" is read as industry)
    plan_type = Column(String(20), default=PlanType.BASIC.value, nullable=False)
    status = Column(String(20), default=TenantStatus.ACTIVE.value, nullable=False, index=True)

    settings = Column(JSON, default=dict, nullable=False)
    billing_email = Column(String(255), nullable=True)

    created_by = Column(String(36), ForeignKey("auth_users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    profiles = relationship("Profile", back_populates="tenant")
    invitations = relationship("UserInvitation", back_populates="tenant", cascade="all, delete-orphan")
    reviews = relationship("Review", back_populates="tenant", cascade="all, delete-orphan")
    review_links = relationship("ReviewLink", back_populates="tenant", cascade="all, delete-orphan")
    business_settings = relationship(
        "BusinessSettings", back_populates="tenant", cascade="all, delete-orphan", uselist=False
    )
    invoices = relationship("Invoice", back_populates="tenant", cascade="all, delete-orphan")
    usage_metrics = relationship("UsageMetric", back_populates="tenant", cascade="all, delete-orphan")
    audit_logs = relationship("AuditLog", back_populates="tenant", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_tenants_status_created', 'status', 'created_at'),
        Index('idx_tenants_business_name', 'business_name'),
    )

    def __repr__(self):
        return f"<Tenant {self.slug or self.id}>"

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE.value

    @property
    def accepts_public_reviews(self) -> bool:
        """Active with both a business name and a Google review URL."""
        return self.is_active and bool(self.business_name) and bool(self.google_review_url)
