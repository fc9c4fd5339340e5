"""
Review Schemas

Staff review management, review links and the public submission body.
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, Dict, Any, List
from datetime import datetime


class ReviewCreate(BaseModel):
    customer_name: str = Field("Anonymous", max_length=255)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(None, max_length=50)
    country_code: Optional[str] = "+1"
    rating: int = Field(..., ge=1, le=5)
    review_text: Optional[str] = None
    tenant_id: Optional[str] = None
    metadata: Dict[str, Any] = {}


class ReviewUpdate(BaseModel):
    customer_name: Optional[str] = Field(None, max_length=255)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(None, max_length=50)
    country_code: Optional[str] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    review_text: Optional[str] = None
    redirect_opened: Optional[bool] = None


class ReviewResponse(BaseModel):
    id: str
    tenant_id: str
    user_id: Optional[str] = None
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    country_code: Optional[str] = None
    rating: int
    review_text: Optional[str] = None
    google_review: bool
    redirect_opened: bool
    is_anonymous: bool
    source: str
    metadata: Dict[str, Any] = Field({}, validation_alias="review_metadata")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReviewListResponse(BaseModel):
    reviews: List[ReviewResponse]
    total: int
    page: int
    page_size: int


class ReviewStats(BaseModel):
    total_reviews: int
    average_rating: float
    high_rating_reviews: int


class ReviewRequestSend(BaseModel):
    customer_email: EmailStr
    customer_name: str = Field(..., min_length=1, max_length=255)
    tenant_id: Optional[str] = None


class PublicReviewSubmission(BaseModel):
    """
    Body of the public review form. Fields are deliberately loose: the
    service produces the user-facing validation messages.
    """
    slug: Optional[str] = None
    rating: Optional[Any] = None
    reviewer_name: Optional[str] = None
    reviewer_email: Optional[str] = None
    reviewer_phone: Optional[str] = None
    feedback_text: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ReviewLinkCreate(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=255)
    business_email: Optional[EmailStr] = None
    business_phone: Optional[str] = None
    business_address: Optional[str] = None
    google_business_url: Optional[str] = None
    form_customization: Dict[str, Any] = {}
    email_template: Dict[str, Any] = {}
    expires_at: Optional[datetime] = None
    tenant_id: Optional[str] = None


class ReviewLinkUpdate(BaseModel):
    business_name: Optional[str] = Field(None, min_length=1, max_length=255)
    business_email: Optional[EmailStr] = None
    business_phone: Optional[str] = None
    business_address: Optional[str] = None
    google_business_url: Optional[str] = None
    form_customization: Optional[Dict[str, Any]] = None
    email_template: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None


class ReviewLinkResponse(BaseModel):
    id: str
    tenant_id: str
    link_code: str
    review_url: Optional[str] = None
    business_name: str
    business_email: Optional[str] = None
    business_phone: Optional[str] = None
    business_address: Optional[str] = None
    google_business_url: Optional[str] = None
    form_customization: Dict[str, Any] = {}
    email_template: Dict[str, Any] = {}
    is_active: bool
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
