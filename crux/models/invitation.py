"""
User Invitation Model

An invitation is a capability: whoever signs up with the invited email
while it is unused and unexpired gets its role and tenant.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from crux.database import Base
import uuid


class UserInvitation(Base):
    __tablename__ = "user_invitations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    email = Column(String(255), nullable=False, index=True)
    role = Column(String(20), default="user", nullable=False)
    invited_by = Column(String(36), ForeignKey("auth_users.id", ondelete="SET NULL"), nullable=True)

    token = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    used_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="invitations")

    # Provisioning looks invitations up by email among the unused ones
    __table_args__ = (
        Index('idx_user_invitations_email_used', 'email', 'used_at'),
    )

    def __repr__(self):
        return f"<UserInvitation {self.email} tenant={self.tenant_id}>"

    def is_valid(self, now: datetime = None) -> bool:
        """Unused and not yet expired."""
        now = now or datetime.utcnow()
        return self.used_at is None and self.expires_at > now

    @property
    def status(self) -> str:
        if self.used_at is not None:
            return "used"
        if self.expires_at <= datetime.utcnow():
            return "expired"
        return "pending"
