"""
System Settings Service

Platform-wide key/value settings. Super admins only (system_settings
policy); everyone else sees an empty table and cannot write.
"""
from typing import Any, Optional

from crux.core.exceptions import RecordNotFoundError, ValidationFailedError
from crux.models.settings import SystemSetting
from crux.services.audit_service import AuditService
from crux.services.base import BaseService, service_method


class SystemSettingsService(BaseService):

    def _find(self, key: str) -> Optional[SystemSetting]:
        return self.db.query(SystemSetting).filter(SystemSetting.key == key).first()

    @service_method("SystemSettingsService.list_settings")
    def list_settings(self):
        return self.db.query(SystemSetting).order_by(SystemSetting.key).all()

    @service_method("SystemSettingsService.get_setting")
    def get_setting(self, key: str):
        setting = self._find(key)
        if setting is None:
            raise RecordNotFoundError("System setting", key)
        return setting

    @service_method("SystemSettingsService.set_setting")
    def set_setting(self, key: str, value: Any, description: Optional[str] = None):
        if not key:
            raise ValidationFailedError("key is required")
        setting = self._find(key)
        if setting is None:
            setting = SystemSetting(key=key, value=value, description=description)
            self.db.add(setting)
        else:
            changes = {"value": value}
            if description is not None:
                changes["description"] = description
            self.db.update(setting, changes)
        AuditService(self.db).record("system_setting.updated", "system_setting", setting.id, {"key": key})
        self.db.commit()
        return setting

    @service_method("SystemSettingsService.delete_setting")
    def delete_setting(self, key: str):
        setting = self._find(key)
        if setting is None:
            raise RecordNotFoundError("System setting", key)
        self.db.delete(setting)
        self.db.commit()
        return True
