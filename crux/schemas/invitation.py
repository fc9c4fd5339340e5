"""
Invitation Schemas
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from crux.models.user import UserRole


class InvitationCreate(BaseModel):
    email: EmailStr
    role: UserRole = UserRole.USER
    # Defaults to the inviter's tenant
    tenant_id: Optional[str] = None
    send_email: bool = True


class InvitationResponse(BaseModel):
    id: str
    tenant_id: str
    email: EmailStr
    role: UserRole
    invited_by: Optional[str] = None
    expires_at: datetime
    used_at: Optional[datetime] = None
    created_at: datetime
    status: str

    class Config:
        from_attributes = True


class InvitationTokenResponse(BaseModel):
    """What the accept page may show; no token, no inviter."""
    email: EmailStr
    role: UserRole
    tenant_id: str
    expires_at: datetime

    class Config:
        from_attributes = True


class InvitationAccept(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6, max_length=100)
    full_name: Optional[str] = Field(None, max_length=255)
