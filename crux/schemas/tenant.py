"""
Tenant Schemas
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, Dict, Any, List
from datetime import datetime


class TenantBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    domain: Optional[str] = None
    slug: Optional[str] = Field(None, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    business_name: Optional[str] = None
    google_review_url: Optional[str] = None
    billing_email: Optional[EmailStr] = None
    settings: Dict[str, Any] = {}


class TenantCreate(TenantBase):
    # basic | pro | industry ("enterprise" accepted)
    plan_type: str = "basic"


class TenantWithAdminCreate(TenantCreate):
    admin_email: EmailStr
    send_email: bool = True


class TenantUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    domain: Optional[str] = None
    slug: Optional[str] = Field(None, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    business_name: Optional[str] = None
    google_review_url: Optional[str] = None
    review_form_url: Optional[str] = None
    plan_type: Optional[str] = None
    status: Optional[str] = None
    billing_email: Optional[EmailStr] = None
    settings: Optional[Dict[str, Any]] = None


class TenantStatusUpdate(BaseModel):
    status: str


class TenantResponse(BaseModel):
    id: str
    name: str
    domain: Optional[str] = None
    slug: Optional[str] = None
    business_name: Optional[str] = None
    google_review_url: Optional[str] = None
    review_form_url: Optional[str] = None
    plan_type: str
    status: str
    settings: Dict[str, Any] = {}
    billing_email: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TenantUsageStats(BaseModel):
    reviews_count: int
    users_count: int
    api_calls_count: int
    last_activity: Optional[datetime] = None


class ReviewLimits(BaseModel):
    plan_type: str
    max_reviews: int
    current_reviews: int
    remaining_reviews: int
    is_limit_reached: bool
    can_share: bool
    can_send: bool
    can_collect: bool


class UpgradeRecommendation(BaseModel):
    current_plan: str
    recommended_plan: str
    usage_percentage: int
    upgrade_benefits: List[str]


class PublicTenantResponse(BaseModel):
    id: str
    name: str
    business_name: str
    google_review_url: str
    slug: str
    review_url: Optional[str] = None
    branding: Dict[str, Any] = {}
    status: str
