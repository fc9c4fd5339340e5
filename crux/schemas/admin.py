"""
Admin Schemas

Platform analytics and audit log views.
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime


class PlatformAnalytics(BaseModel):
    total_tenants: int
    active_tenants: int
    suspended_tenants: int
    total_users: int
    total_reviews: int
    reviews_this_month: int
    reviews_last_month: int
    review_growth_rate: float
    average_rating: float
    total_revenue: float
    revenue_this_month: float
    last_updated: datetime


class AuditLogResponse(BaseModel):
    id: str
    tenant_id: Optional[str] = None
    user_id: Optional[str] = None
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    details: Dict[str, Any] = {}
    ip_address: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogResponse]
    total: int
    page: int
    page_size: int


class AuditStats(BaseModel):
    total_events: int
    events_by_action: Dict[str, int] = Field(default_factory=dict)
    events_by_resource_type: Dict[str, int] = Field(default_factory=dict)
