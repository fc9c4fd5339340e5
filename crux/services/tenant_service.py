"""
Tenant Service

Tenant lifecycle (create, update, suspend, delete) and tenant-level
statistics. Writes are policy-checked: only super admins insert or delete
tenants; tenant admins may update their own tenant's profile fields.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import re
import uuid

from sqlalchemy import func

from crux.config import get_settings
from crux.core.exceptions import PermissionDeniedError, RecordNotFoundError, ValidationFailedError
from crux.models.audit import AuditLog
from crux.models.invoice import Invoice
from crux.models.review import Review
from crux.models.tenant import Tenant, TenantStatus
from crux.models.user import AuthUser, Profile, UserRole
from crux.services.audit_service import AuditService
from crux.services.base import BaseService, service_method
from crux.services.invitation_service import InvitationService
from crux.services.review_limit_service import PLAN_ALIASES, PLAN_LIMITS

settings = get_settings()

UPDATABLE_FIELDS = (
    "name",
    "domain",
    "slug",
    "business_name",
    "google_review_url",
    "review_form_url",
    "plan_type",
    "status",
    "settings",
    "billing_email",
)

# Changing these is a platform decision, not a tenant admin one
SUPER_ADMIN_FIELDS = ("plan_type", "status", "domain")


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")
    return slug[:90] or "tenant"


def review_form_url_for(tenant_id: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/review/{tenant_id}"


def _clean_plan(plan_type: Optional[str]) -> str:
    plan = PLAN_ALIASES.get(plan_type, plan_type) if plan_type else "basic"
    if plan not in PLAN_LIMITS:
        raise ValidationFailedError(f"Invalid plan type: {plan_type}")
    return plan


def _clean_status(status: str) -> str:
    try:
        return TenantStatus(status).value
    except ValueError:
        raise ValidationFailedError(f"Invalid tenant status: {status}")


class TenantService(BaseService):

    def __init__(self, db, email_service=None):
        super().__init__(db)
        self.email_service = email_service

    def _unique_slug(self, base: str) -> str:
        """base, base-2, base-3, ... first one not taken by any tenant."""
        lookup = self.db.elevated()
        slug, counter = base, 1
        while lookup.query(Tenant).filter(Tenant.slug == slug).first() is not None:
            counter += 1
            slug = f"{base}-{counter}"
        return slug

    def build_tenant(self, data: Dict[str, Any]) -> Tenant:
        """Insert a tenant in the current unit of work. Raises; does not commit."""
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationFailedError("Tenant name is required")

        tenant_id = str(uuid.uuid4())
        slug = data.get("slug") or self._unique_slug(slugify(data.get("business_name") or name))

        tenant = Tenant(
            id=tenant_id,
            name=name,
            domain=data.get("domain"),
            slug=slug,
            business_name=data.get("business_name"),
            google_review_url=data.get("google_review_url"),
            review_form_url=review_form_url_for(tenant_id),
            plan_type=_clean_plan(data.get("plan_type")),
            status=_clean_status(data.get("status") or TenantStatus.ACTIVE.value),
            settings=dict(data.get("settings") or {}),
            billing_email=data.get("billing_email"),
            created_by=self.caller.user_id,
        )
        self.db.add(tenant)
        AuditService(self.db).record(
            "tenant.created", "tenant", tenant.id, {"name": name, "plan_type": tenant.plan_type},
            tenant_id=tenant.id,
        )
        return tenant

    @service_method("TenantService.get_tenants")
    def get_tenants(self, status: Optional[str] = None, search: Optional[str] = None):
        query = self.db.query(Tenant)
        if status:
            query = query.filter(Tenant.status == _clean_status(status))
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(
                func.lower(Tenant.name).like(pattern) | func.lower(Tenant.business_name).like(pattern)
            )
        return query.order_by(Tenant.created_at.desc()).all()

    @service_method("TenantService.get_tenant_by_id")
    def get_tenant_by_id(self, tenant_id: str):
        if not self.validate_id(tenant_id):
            raise ValidationFailedError("Invalid tenant ID")
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise RecordNotFoundError("Tenant", tenant_id)
        return tenant

    @service_method("TenantService.create_tenant")
    def create_tenant(self, data: Dict[str, Any]):
        tenant = self.build_tenant(data)
        self.db.commit()
        self.logger.info(f"Tenant created: {tenant.id}", extra={"tenant_id": tenant.id})
        return tenant

    @service_method("TenantService.create_tenant_with_admin")
    def create_tenant_with_admin(self, data: Dict[str, Any], admin_email: str, send_email: bool = True):
        """Tenant plus a tenant_admin invitation (and its email), one transaction."""
        tenant = self.build_tenant(data)
        invitations = InvitationService(self.db, self.email_service)
        invitation = invitations.build_invitation(
            admin_email,
            role=UserRole.TENANT_ADMIN.value,
            tenant_id=tenant.id,
            send_email=send_email,
        )
        self.db.commit()
        self.logger.info(
            f"Tenant {tenant.id} created with admin invitation for {invitation.email}",
            extra={"tenant_id": tenant.id},
        )
        return {"tenant": tenant, "invitation": invitation}

    @service_method("TenantService.update_tenant")
    def update_tenant(self, tenant_id: str, values: Dict[str, Any]):
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise RecordNotFoundError("Tenant", tenant_id)

        changes = {k: v for k, v in values.items() if k in UPDATABLE_FIELDS}
        if not self.caller.service and not self.caller.is_super_admin:
            restricted = sorted(set(changes) & set(SUPER_ADMIN_FIELDS))
            if restricted:
                raise PermissionDeniedError(f"Only super admins can change: {', '.join(restricted)}")
        if "plan_type" in changes:
            changes["plan_type"] = _clean_plan(changes["plan_type"])
        if "status" in changes:
            changes["status"] = _clean_status(changes["status"])

        self.db.update(tenant, changes)
        AuditService(self.db).record(
            "tenant.updated", "tenant", tenant.id, {"fields": sorted(changes)}, tenant_id=tenant.id,
        )
        self.db.commit()
        return tenant

    def update_tenant_status(self, tenant_id: str, status: str):
        return self.update_tenant(tenant_id, {"status": status})

    def suspend_tenant(self, tenant_id: str):
        return self.update_tenant_status(tenant_id, TenantStatus.SUSPENDED.value)

    def activate_tenant(self, tenant_id: str):
        return self.update_tenant_status(tenant_id, TenantStatus.ACTIVE.value)

    @service_method("TenantService.delete_tenant")
    def delete_tenant(self, tenant_id: str):
        """
        Delete a tenant with everything it owns, including member
        accounts (profiles and their auth identities).
        """
        if not self.validate_id(tenant_id):
            raise ValidationFailedError("Invalid tenant ID")
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise RecordNotFoundError("Tenant", tenant_id)

        # Visibility under DELETE is checked before any member is touched
        self.db.require_visible(Tenant, tenant_id, "DELETE")

        admin = self.db.elevated()
        member_ids = [
            row.id for row in admin.query(Profile).filter(Profile.tenant_id == tenant_id).all()
        ]
        for auth_user in admin.query(AuthUser).filter(AuthUser.id.in_(member_ids)).all():
            admin.delete(auth_user)

        self.db.delete(tenant)
        AuditService(self.db).record(
            "tenant.deleted", "tenant", tenant_id,
            {"name": tenant.name, "removed_users": len(member_ids)},
            tenant_id=None,
        )
        self.db.commit()
        self.logger.info(f"Tenant deleted: {tenant_id} ({len(member_ids)} users removed)")
        return True

    @service_method("TenantService.get_review_form_url")
    def get_review_form_url(self, tenant_id: str):
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise RecordNotFoundError("Tenant", tenant_id)
        if not tenant.review_form_url:
            self.db.update(tenant, {"review_form_url": review_form_url_for(tenant.id)})
            self.db.commit()
        return tenant.review_form_url

    @service_method("TenantService.get_tenant_usage_stats")
    def get_tenant_usage_stats(self, tenant_id: str):
        if self.db.get(Tenant, tenant_id) is None:
            raise RecordNotFoundError("Tenant", tenant_id)

        admin = self.db.elevated()
        since = datetime.utcnow() - timedelta(days=30)
        last_review = (
            admin.query(Review)
            .filter(Review.tenant_id == tenant_id)
            .order_by(Review.created_at.desc())
            .first()
        )
        return {
            "reviews_count": admin.query(Review).filter(Review.tenant_id == tenant_id).count(),
            "users_count": admin.query(Profile).filter(Profile.tenant_id == tenant_id).count(),
            "api_calls_count": admin.query(AuditLog)
            .filter(AuditLog.tenant_id == tenant_id, AuditLog.created_at >= since)
            .count(),
            "last_activity": last_review.created_at if last_review else None,
        }

    @service_method("TenantService.get_platform_analytics")
    def get_platform_analytics(self):
        if not (self.caller.service or self.caller.is_super_admin):
            raise PermissionDeniedError("Only super admins can view platform analytics")

        admin = self.db.elevated()
        now = datetime.utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        last_month_start = (month_start - timedelta(days=1)).replace(day=1)

        def reviews_between(start, end=None):
            query = admin.query(Review).filter(Review.created_at >= start)
            if end is not None:
                query = query.filter(Review.created_at < end)
            return query.count()

        this_month = reviews_between(month_start)
        last_month = reviews_between(last_month_start, month_start)
        average = admin.session.query(func.avg(Review.rating)).scalar()
        revenue = (
            admin.session.query(func.coalesce(func.sum(Invoice.total), 0))
            .filter(Invoice.status == "paid")
            .scalar()
        )
        revenue_this_month = (
            admin.session.query(func.coalesce(func.sum(Invoice.total), 0))
            .filter(Invoice.status == "paid", Invoice.created_at >= month_start)
            .scalar()
        )

        return {
            "total_tenants": admin.query(Tenant).count(),
            "active_tenants": admin.query(Tenant).filter(Tenant.status == TenantStatus.ACTIVE.value).count(),
            "suspended_tenants": admin.query(Tenant)
            .filter(Tenant.status == TenantStatus.SUSPENDED.value)
            .count(),
            "total_users": admin.query(Profile).count(),
            "total_reviews": admin.query(Review).count(),
            "reviews_this_month": this_month,
            "reviews_last_month": last_month,
            "review_growth_rate": round((this_month - last_month) / last_month * 100, 1) if last_month else 0.0,
            "average_rating": round(float(average), 1) if average is not None else 0.0,
            "total_revenue": float(revenue or 0),
            "revenue_this_month": float(revenue_this_month or 0),
            "last_updated": now,
        }

    @service_method("TenantService.get_tenant_by_slug")
    def get_tenant_by_slug(self, slug: str):
        """
        Public lookup for the review form. Only tenants that accept public
        reviews are returned; anything else is None.
        """
        if not slug:
            return None
        return (
            self.db.elevated().query(Tenant)
            .filter(
                Tenant.slug == slug,
                Tenant.status == TenantStatus.ACTIVE.value,
                Tenant.business_name.isnot(None),
                Tenant.google_review_url.isnot(None),
            )
            .first()
        )
