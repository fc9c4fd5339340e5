"""
User Models

AuthUser is the authentication identity (credentials only).
Profile is the application identity: role and tenant membership.

IMPORTANT: Profile.tenant_id is the field every row policy keys on.
A profile with tenant_id NULL is an orphan account and sees no tenant data.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from crux.database import Base
import uuid
import enum


class UserRole(str, enum.Enum):
    """
    Platform roles.

    SUPER_ADMIN: Platform operator, not bound to a tenant
    TENANT_ADMIN: Manages one tenant (users, settings, links)
    USER: Regular member of one tenant
    """
    SUPER_ADMIN = "super_admin"
    TENANT_ADMIN = "tenant_admin"
    USER = "user"


ROLE_HIERARCHY = {
    UserRole.USER: 1,
    UserRole.TENANT_ADMIN: 2,
    UserRole.SUPER_ADMIN: 3,
}


class AuthUser(Base):
    __tablename__ = "auth_users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)

    # Free-form signup data (full_name etc.), read by provisioning
    user_metadata = Column(JSON, default=dict, nullable=False)

    email_confirmed_at = Column(DateTime, nullable=True)
    last_sign_in_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    profile = relationship("Profile", back_populates="auth_user", uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<AuthUser {self.email}>"


class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the auth identity; deleting the identity deletes the profile
    id = Column(String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), primary_key=True)

    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), default=UserRole.USER.value, nullable=False, index=True)

    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    avatar_url = Column(Text, nullable=True)
    preferences = Column(JSON, default=dict, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    auth_user = relationship("AuthUser", back_populates="profile")
    tenant = relationship("Tenant", back_populates="profiles")

    __table_args__ = (
        Index('idx_profiles_tenant_role', 'tenant_id', 'role'),
    )

    def __repr__(self):
        return f"<Profile {self.email} role={self.role} tenant={self.tenant_id}>"
