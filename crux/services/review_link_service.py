"""
Review Link Service

Shareable short codes for a tenant's review form. Tenant admins manage
them; anyone may resolve an active, unexpired code.
"""
from datetime import datetime
from typing import Any, Dict, Optional
import secrets
import string

from crux.config import get_settings
from crux.core.exceptions import RecordNotFoundError, ValidationFailedError
from crux.core.policies import Caller, PolicySession
from crux.models.review import ReviewLink
from crux.services.base import BaseService, service_method

settings = get_settings()

LINK_CODE_LENGTH = 8
LINK_CODE_ALPHABET = string.ascii_lowercase + string.digits

UPDATABLE_FIELDS = (
    "business_name",
    "business_email",
    "business_phone",
    "business_address",
    "google_business_url",
    "form_customization",
    "email_template",
    "is_active",
    "expires_at",
)


def generate_link_code() -> str:
    return "".join(secrets.choice(LINK_CODE_ALPHABET) for _ in range(LINK_CODE_LENGTH))


def review_link_url(link_code: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/review/{link_code}"


def _with_url(link: ReviewLink) -> ReviewLink:
    link.review_url = review_link_url(link.link_code)
    return link


class ReviewLinkService(BaseService):

    def _unique_code(self) -> str:
        lookup = self.db.elevated()
        while True:
            code = generate_link_code()
            if lookup.query(ReviewLink).filter(ReviewLink.link_code == code).first() is None:
                return code

    def _visible_link(self, link_id: str) -> ReviewLink:
        link = self.db.get(ReviewLink, link_id)
        if link is None:
            raise RecordNotFoundError("Review link", link_id)
        return link

    @service_method("ReviewLinkService.get_review_link_by_code")
    def get_review_link_by_code(self, link_code: str):
        """Public resolution, always evaluated as the anon role."""
        anon = PolicySession(self.db.session, Caller.anonymous(), self.db.registry)
        link = anon.query(ReviewLink).filter(ReviewLink.link_code == link_code).first()
        if link is None:
            raise RecordNotFoundError("Review link", link_code)
        return _with_url(link)

    @service_method("ReviewLinkService.create_review_link")
    def create_review_link(self, data: Dict[str, Any]):
        tenant_id = data.get("tenant_id") or self.caller.tenant_id
        if not tenant_id:
            raise ValidationFailedError("tenant_id is required")
        business_name = (data.get("business_name") or "").strip()
        if not business_name:
            raise ValidationFailedError("business_name is required")

        link = ReviewLink(
            tenant_id=tenant_id,
            link_code=self._unique_code(),
            business_name=business_name,
            business_email=data.get("business_email"),
            business_phone=data.get("business_phone"),
            business_address=data.get("business_address"),
            google_business_url=data.get("google_business_url"),
            form_customization=dict(data.get("form_customization") or {}),
            email_template=dict(data.get("email_template") or {}),
            expires_at=data.get("expires_at"),
            created_by=self.caller.user_id,
        )
        self.db.add(link)
        self.db.commit()
        return _with_url(link)

    @service_method("ReviewLinkService.get_tenant_review_links")
    def get_tenant_review_links(self, tenant_id: Optional[str] = None, active_only: bool = False):
        query = self.db.query(ReviewLink)
        tenant_id = tenant_id or self.caller.tenant_id
        if tenant_id:
            query = query.filter(ReviewLink.tenant_id == tenant_id)
        if active_only:
            now = datetime.utcnow()
            query = query.filter(
                ReviewLink.is_active.is_(True),
                (ReviewLink.expires_at.is_(None)) | (ReviewLink.expires_at > now),
            )
        return [_with_url(link) for link in query.order_by(ReviewLink.created_at.desc()).all()]

    @service_method("ReviewLinkService.get_review_link")
    def get_review_link(self, link_id: str):
        return _with_url(self._visible_link(link_id))

    @service_method("ReviewLinkService.update_review_link")
    def update_review_link(self, link_id: str, values: Dict[str, Any]):
        link = self._visible_link(link_id)
        self.db.update(link, {k: v for k, v in values.items() if k in UPDATABLE_FIELDS})
        self.db.commit()
        return _with_url(link)

    @service_method("ReviewLinkService.deactivate_review_link")
    def deactivate_review_link(self, link_id: str):
        link = self._visible_link(link_id)
        self.db.update(link, {"is_active": False})
        self.db.commit()
        return True

    @service_method("ReviewLinkService.delete_review_link")
    def delete_review_link(self, link_id: str):
        link = self._visible_link(link_id)
        self.db.delete(link)
        self.db.commit()
        return True
