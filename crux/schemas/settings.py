"""
Settings Schemas

Business settings (per tenant) and platform system settings.
"""
from pydantic import BaseModel, EmailStr
from typing import Optional, Dict, Any
from datetime import datetime


class BusinessSettingsUpdate(BaseModel):
    business_name: Optional[str] = None
    business_email: Optional[EmailStr] = None
    business_phone: Optional[str] = None
    business_address: Optional[str] = None
    google_business_url: Optional[str] = None
    review_form_url: Optional[str] = None
    email_template: Optional[Dict[str, Any]] = None
    form_customization: Optional[Dict[str, Any]] = None
    settings: Optional[Dict[str, Any]] = None


class BusinessSettingsResponse(BaseModel):
    id: Optional[str] = None
    tenant_id: Optional[str] = None
    business_name: Optional[str] = None
    business_email: Optional[str] = None
    business_phone: Optional[str] = None
    business_address: Optional[str] = None
    google_business_url: Optional[str] = None
    review_form_url: Optional[str] = None
    email_template: Dict[str, Any] = {}
    form_customization: Dict[str, Any] = {}
    settings: Dict[str, Any] = {}

    class Config:
        from_attributes = True


class GoogleBusinessSettings(BaseModel):
    google_business_url: str
    is_configured: bool
    review_url: str


class SystemSettingUpdate(BaseModel):
    value: Any
    description: Optional[str] = None


class SystemSettingResponse(BaseModel):
    id: str
    key: str
    value: Any
    description: Optional[str] = None
    updated_at: datetime

    class Config:
        from_attributes = True
