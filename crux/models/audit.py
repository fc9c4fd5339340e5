"""
Operational Records

Append-only audit trail and usage metrics. Written with the service role,
readable by tenant members for their own tenant.
"""
from sqlalchemy import Column, String, DateTime, Numeric, Text, JSON, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from crux.database import Base
import uuid


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = Column(String(36), ForeignKey("auth_users.id", ondelete="SET NULL"), nullable=True)

    action = Column(String(100), nullable=False)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(36), nullable=True)
    details = Column(JSON, default=dict, nullable=False)

    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    tenant = relationship("Tenant", back_populates="audit_logs")

    __table_args__ = (
        Index('idx_audit_logs_tenant_created', 'tenant_id', 'created_at'),
    )

    def __repr__(self):
        return f"<AuditLog {self.action} {self.resource_type}:{self.resource_id}>"


class UsageMetric(Base):
    __tablename__ = "usage_metrics"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    metric_type = Column(String(100), nullable=False)
    metric_value = Column(Numeric(14, 2), nullable=False)
    metric_metadata = Column("metadata", JSON, default=dict, nullable=False)

    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="usage_metrics")

    def __repr__(self):
        return f"<UsageMetric {self.metric_type}={self.metric_value}>"
