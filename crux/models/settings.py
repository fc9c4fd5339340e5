"""
Settings Models

BusinessSettings: one row per tenant, upserted by the tenant admin.
SystemSetting: platform-wide key/value configuration, super admin only.
"""
from sqlalchemy import Column, String, DateTime, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from crux.database import Base
import uuid


class BusinessSettings(Base):
    __tablename__ = "business_settings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True
    )
    # Last editor
    user_id = Column(String(36), ForeignKey("auth_users.id", ondelete="SET NULL"), nullable=True)

    business_name = Column(String(255), nullable=True)
    business_email = Column(String(255), nullable=True)
    business_phone = Column(String(50), nullable=True)
    business_address = Column(Text, nullable=True)
    google_business_url = Column(Text, nullable=True)
    review_form_url = Column(Text, nullable=True)

    email_template = Column(JSON, default=dict, nullable=False)
    form_customization = Column(JSON, default=dict, nullable=False)
    settings = Column(JSON, default=dict, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="business_settings")

    def __repr__(self):
        return f"<BusinessSettings tenant={self.tenant_id}>"


class SystemSetting(Base):
    __tablename__ = "system_settings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    key = Column(String(100), unique=True, nullable=False)
    value = Column(JSON, default=dict, nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<SystemSetting {self.key}>"
