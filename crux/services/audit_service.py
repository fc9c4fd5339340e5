"""
Audit Log Service

Writes go through the service role (audit rows are not writable by
tenant callers); reads are policy-filtered like any other table.
"""
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Optional

from crux.models.audit import AuditLog
from crux.services.base import BaseService, service_method


class AuditService(BaseService):

    def record(
        self,
        action: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        tenant_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """
        Add an audit row to the current unit of work.

        Raises on database errors; the caller owns the transaction.
        """
        entry = AuditLog(
            tenant_id=tenant_id if tenant_id is not None else self.caller.tenant_id,
            user_id=self.caller.user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return self.db.elevated().add(entry)

    @service_method("AuditService.log_event")
    def log_event(self, action: str, resource_type: str = None, resource_id: str = None, **kwargs):
        entry = self.record(action, resource_type, resource_id, **kwargs)
        self.db.commit()
        return entry

    @service_method("AuditService.get_audit_logs")
    def get_audit_logs(
        self,
        tenant_id: Optional[str] = None,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ):
        query = self.db.query(AuditLog)
        if tenant_id:
            query = query.filter(AuditLog.tenant_id == tenant_id)
        if user_id:
            query = query.filter(AuditLog.user_id == user_id)
        if action:
            query = query.filter(AuditLog.action == action)
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        if start_date:
            query = query.filter(AuditLog.created_at >= start_date)
        if end_date:
            query = query.filter(AuditLog.created_at <= end_date)

        total = query.count()
        offset, limit = self.paginate(page, limit)
        logs = query.order_by(AuditLog.created_at.desc()).offset(offset).limit(limit).all()
        return {"logs": logs, "total": total}

    @service_method("AuditService.get_audit_stats")
    def get_audit_stats(self, tenant_id: Optional[str] = None):
        query = self.db.query(AuditLog)
        if tenant_id:
            query = query.filter(AuditLog.tenant_id == tenant_id)
        rows = query.with_entities(AuditLog.action, AuditLog.resource_type).all()
        return {
            "total_events": len(rows),
            "events_by_action": dict(Counter(row.action for row in rows)),
            "events_by_resource_type": dict(Counter(row.resource_type or "unknown" for row in rows)),
        }
