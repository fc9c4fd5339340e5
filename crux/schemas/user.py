"""
User Schemas

Request/response models for profiles and staff-created accounts.
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, Dict, Any, List
from datetime import datetime
from crux.models.user import UserRole


class ProfileResponse(BaseModel):
    """Profile response schema (never includes credentials)."""
    id: str
    email: EmailStr
    full_name: Optional[str] = None
    role: UserRole
    tenant_id: Optional[str] = None
    avatar_url: Optional[str] = None
    preferences: Dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProfileListResponse(BaseModel):
    """Paginated list of profiles."""
    users: List[ProfileResponse]
    total: int
    page: int
    page_size: int


class ProfileUpdate(BaseModel):
    """Self-service or admin profile update. All fields optional."""
    full_name: Optional[str] = Field(None, max_length=255)
    avatar_url: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None


class RoleUpdate(BaseModel):
    role: UserRole
    tenant_id: Optional[str] = None


class PasswordUpdate(BaseModel):
    password: str = Field(..., min_length=6, max_length=100)


class UserCreate(BaseModel):
    """Create an account directly, without an invitation."""
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)
    full_name: Optional[str] = Field(None, max_length=255)
    role: UserRole = UserRole.USER
    tenant_id: Optional[str] = None


class PermissionsResponse(BaseModel):
    role: str
    tenant_id: Optional[str] = None
    permissions: List[str]
    actions: Dict[str, bool]
    assignable_roles: List[str]


class TenantOption(BaseModel):
    id: str
    name: str
