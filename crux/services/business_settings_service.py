"""
Business Settings Service

One settings row per tenant. Any member of the tenant may read and
write it (business_settings_tenant_all policy).
"""
from typing import Any, Dict, Optional

from crux.config import get_settings
from crux.core.exceptions import RecordNotFoundError, ValidationFailedError
from crux.models.settings import BusinessSettings
from crux.services.base import BaseService, service_method

settings = get_settings()

SETTINGS_FIELDS = (
    "business_name",
    "business_email",
    "business_phone",
    "business_address",
    "google_business_url",
    "review_form_url",
    "email_template",
    "form_customization",
    "settings",
)


def default_business_settings(tenant_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": None,
        "tenant_id": tenant_id,
        "business_name": settings.APP_NAME,
        "business_email": "",
        "business_phone": "",
        "business_address": "",
        "google_business_url": "",
        "review_form_url": "",
        "email_template": {},
        "form_customization": {},
        "settings": {},
    }


class BusinessSettingsService(BaseService):

    def _tenant(self, tenant_id: Optional[str]) -> str:
        tenant_id = tenant_id or self.caller.tenant_id
        if not tenant_id:
            raise ValidationFailedError("tenant_id is required")
        return tenant_id

    def _find(self, tenant_id: str) -> Optional[BusinessSettings]:
        return (
            self.db.query(BusinessSettings)
            .filter(BusinessSettings.tenant_id == tenant_id)
            .first()
        )

    @service_method("BusinessSettingsService.get_business_settings")
    def get_business_settings(self, tenant_id: Optional[str] = None):
        """None when the tenant has not saved settings yet."""
        return self._find(self._tenant(tenant_id))

    @service_method("BusinessSettingsService.get_business_settings_with_defaults")
    def get_business_settings_with_defaults(self, tenant_id: Optional[str] = None):
        tenant_id = self._tenant(tenant_id)
        merged = default_business_settings(tenant_id)
        row = self._find(tenant_id)
        if row is not None:
            merged["id"] = row.id
            for field in SETTINGS_FIELDS:
                value = getattr(row, field)
                if value is not None:
                    merged[field] = value
        return merged

    @service_method("BusinessSettingsService.upsert_business_settings")
    def upsert_business_settings(self, values: Dict[str, Any], tenant_id: Optional[str] = None):
        tenant_id = self._tenant(tenant_id)
        changes = {k: v for k, v in values.items() if k in SETTINGS_FIELDS}
        changes["user_id"] = self.caller.user_id

        row = self._find(tenant_id)
        if row is None:
            row = BusinessSettings(tenant_id=tenant_id, **changes)
            self.db.add(row)
        else:
            self.db.update(row, changes)
        self.db.commit()
        return row

    @service_method("BusinessSettingsService.delete_business_settings")
    def delete_business_settings(self, tenant_id: Optional[str] = None):
        row = self._find(self._tenant(tenant_id))
        if row is None:
            raise RecordNotFoundError("Business settings")
        self.db.delete(row)
        self.db.commit()
        return True
