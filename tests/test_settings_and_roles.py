"""Business settings, review links, system settings, audit trail and role checks."""

from datetime import datetime, timedelta

import pytest

from crux.core import permissions
from crux.core.policies import Caller
from crux.models import ReviewLink, SystemSetting
from crux.models.user import UserRole
from crux.services.audit_service import AuditService
from crux.services.business_settings_service import BusinessSettingsService
from crux.services.review_link_service import (
    LINK_CODE_ALPHABET,
    LINK_CODE_LENGTH,
    ReviewLinkService,
    generate_link_code,
)
from crux.services.role_service import RoleService
from crux.services.system_settings_service import SystemSettingsService


class TestBusinessSettings:
    def test_defaults_before_first_save(self, session_for, user_a, tenant_a):
        service = BusinessSettingsService(session_for(user_a))
        assert service.get_business_settings().data is None

        merged = service.get_business_settings_with_defaults().data
        assert merged["id"] is None
        assert merged["tenant_id"] == tenant_a.id
        assert merged["email_template"] == {}

    def test_upsert_creates_then_updates(self, session_for, user_a, tenant_a):
        service = BusinessSettingsService(session_for(user_a))
        first = service.upsert_business_settings({"business_name": "Acme Bakery", "bogus": 1}).data
        second = service.upsert_business_settings({"business_phone": "555-0100"}).data

        assert first.id == second.id
        assert second.business_name == "Acme Bakery"
        assert second.business_phone == "555-0100"
        assert second.user_id == user_a.id

    def test_other_tenant_settings_are_invisible(self, session_for, admin_a, admin_b, tenant_b):
        BusinessSettingsService(session_for(admin_b)).upsert_business_settings({"business_name": "Globex"})
        result = BusinessSettingsService(session_for(admin_a)).get_business_settings(tenant_b.id)
        assert result.data is None

    def test_writing_into_other_tenant_is_denied(self, session_for, admin_a, tenant_b):
        result = BusinessSettingsService(session_for(admin_a)).upsert_business_settings(
            {"business_name": "Hijack"}, tenant_id=tenant_b.id
        )
        assert result.status_code == 403

    def test_orphan_needs_tenant(self, session_for, make_user):
        orphan = make_user("alone@example.com")
        assert BusinessSettingsService(session_for(orphan)).get_business_settings().status_code == 400

    def test_delete(self, session_for, admin_a):
        service = BusinessSettingsService(session_for(admin_a))
        assert service.delete_business_settings().status_code == 404
        service.upsert_business_settings({"business_name": "Acme"})
        assert service.delete_business_settings().data is True


class TestReviewLinks:
    def test_link_code_shape(self):
        code = generate_link_code()
        assert len(code) == LINK_CODE_LENGTH
        assert set(code) <= set(LINK_CODE_ALPHABET)

    def test_admin_creates_link_with_url(self, session_for, admin_a, tenant_a):
        link = ReviewLinkService(session_for(admin_a)).create_review_link({"business_name": "Acme"}).data
        assert link.tenant_id == tenant_a.id
        assert link.created_by == admin_a.id
        assert link.review_url == f"https://app.example.com/review/{link.link_code}"

    def test_member_cannot_create(self, db, session_for, user_a):
        result = ReviewLinkService(session_for(user_a)).create_review_link({"business_name": "Acme"})
        assert result.status_code == 403
        assert db.query(ReviewLink).count() == 0

    def test_member_can_read_tenant_links(self, session_for, admin_a, user_a):
        ReviewLinkService(session_for(admin_a)).create_review_link({"business_name": "Acme"})
        links = ReviewLinkService(session_for(user_a)).get_tenant_review_links().data
        assert len(links) == 1

    def test_business_name_required(self, session_for, admin_a):
        result = ReviewLinkService(session_for(admin_a)).create_review_link({"business_name": "  "})
        assert result.error == "business_name is required"

    def test_public_resolution_honours_active_and_expiry(self, db, session_for, admin_a):
        service = ReviewLinkService(session_for(admin_a))
        live = service.create_review_link({"business_name": "Live"}).data
        stale = service.create_review_link({
            "business_name": "Stale",
            "expires_at": datetime.utcnow() - timedelta(hours=1),
        }).data
        off = service.create_review_link({"business_name": "Off"}).data
        service.deactivate_review_link(off.id)

        public = ReviewLinkService(session_for(Caller.anonymous()))
        assert public.get_review_link_by_code(live.link_code).data.business_name == "Live"
        assert public.get_review_link_by_code(stale.link_code).status_code == 404
        assert public.get_review_link_by_code(off.link_code).status_code == 404

        active = service.get_tenant_review_links(active_only=True).data
        assert [link.business_name for link in active] == ["Live"]

    def test_foreign_link_update_is_not_found(self, session_for, admin_a, admin_b):
        foreign = ReviewLinkService(session_for(admin_b)).create_review_link({"business_name": "Globex"}).data
        result = ReviewLinkService(session_for(admin_a)).update_review_link(foreign.id, {"is_active": False})
        assert result.status_code == 404


class TestSystemSettings:
    def test_super_admin_sets_and_reads(self, session_for, super_admin):
        service = SystemSettingsService(session_for(super_admin))
        service.set_setting("maintenance", {"enabled": False}, "Maintenance banner")
        updated = service.set_setting("maintenance", {"enabled": True}).data

        assert updated.value == {"enabled": True}
        assert updated.description == "Maintenance banner"
        assert [s.key for s in service.list_settings().data] == ["maintenance"]

    def test_tenant_admin_sees_nothing_and_cannot_write(self, db, session_for, super_admin, admin_a):
        SystemSettingsService(session_for(super_admin)).set_setting("maintenance", {"enabled": False})
        service = SystemSettingsService(session_for(admin_a))

        assert service.list_settings().data == []
        assert service.get_setting("maintenance").status_code == 404
        assert service.set_setting("rogue", {"x": 1}).status_code == 403
        assert db.query(SystemSetting).filter(SystemSetting.key == "rogue").first() is None


class TestAudit:
    def test_log_event_scoped_reads(self, session_for, admin_a, admin_b, tenant_a):
        AuditService(session_for(admin_a)).log_event("review.exported", "review")
        AuditService(session_for(admin_b)).log_event("review.exported", "review")

        logs = AuditService(session_for(admin_a)).get_audit_logs().data
        assert logs["total"] == 1
        assert logs["logs"][0].tenant_id == tenant_a.id

    def test_stats(self, session_for, super_admin, admin_a):
        service = AuditService(session_for(admin_a))
        service.log_event("user.created", "profile")
        service.log_event("user.created", "profile")
        service.log_event("tenant.updated")

        stats = AuditService(session_for(super_admin)).get_audit_stats().data
        assert stats["total_events"] == 3
        assert stats["events_by_action"] == {"user.created": 2, "tenant.updated": 1}
        assert stats["events_by_resource_type"] == {"profile": 2, "unknown": 1}


@pytest.mark.parametrize("role,action,allowed", [
    ("super_admin", "create_tenant", True),
    ("tenant_admin", "create_tenant", False),
    ("tenant_admin", "manage_users", True),
    ("user", "manage_users", False),
    ("user", "create_review", True),
    ("user", "teleport", False),
])
def test_check_action(role, action, allowed):
    assert permissions.check_action(role, "t1", action)[0] is allowed


def test_check_action_limits_tenant():
    assert permissions.check_action("tenant_admin", "t1", "manage_users", "t2") == (False, "Access denied to tenant")
    assert permissions.check_action("super_admin", None, "manage_users", "t2") == (True, None)


def test_role_assignment_rules():
    assert permissions.validate_role_assignment("super_admin", None, "tenant_admin", "t1")[0]
    assert permissions.validate_role_assignment("tenant_admin", "t1", "user", "t1")[0]
    assert not permissions.validate_role_assignment("tenant_admin", "t1", "user", "t2")[0]
    assert not permissions.validate_role_assignment("tenant_admin", "t1", "tenant_admin", "t1")[0]
    assert not permissions.validate_role_assignment("user", "t1", "user", "t1")[0]


def test_role_levels():
    assert permissions.has_role("super_admin", UserRole.TENANT_ADMIN)
    assert not permissions.has_role("user", UserRole.TENANT_ADMIN)
    assert permissions.role_level("owner") == 0


class TestRoleService:
    def test_user_permissions(self, session_for, admin_a, tenant_a):
        data = RoleService(session_for(admin_a)).get_user_permissions(admin_a.id).data
        assert data["role"] == "tenant_admin"
        assert data["tenant_id"] == tenant_a.id
        assert "invite_users" in data["permissions"]
        assert data["actions"]["manage_users"] is True
        assert data["actions"]["create_tenant"] is False
        assert data["assignable_roles"] == ["user"]

    def test_check_user_role(self, session_for, user_a):
        service = RoleService(session_for(user_a))
        denied = service.check_user_role(user_a.id, "tenant_admin").data
        assert denied["has_access"] is False
        assert denied["reason"] == "Insufficient permissions. Required: tenant_admin, Current: user"
        assert service.check_user_role(user_a.id, "user").data["has_access"] is True
        assert service.check_user_role(user_a.id, "owner").status_code == 400

    def test_missing_profile(self, session_for, user_a):
        result = RoleService(session_for(user_a)).check_tenant_access("ghost", "t1")
        assert result.status_code == 404
        assert result.data["has_access"] is False

    def test_tenant_access(self, session_for, super_admin, user_a, tenant_a, tenant_b):
        service = RoleService(session_for(super_admin))
        assert service.check_tenant_access(user_a.id, tenant_a.id).data["has_access"] is True
        assert service.check_tenant_access(user_a.id, tenant_b.id).data["has_access"] is False
        assert service.check_tenant_access(super_admin.id, tenant_b.id).data["has_access"] is True

    def test_validate_role_assignment(self, session_for, admin_a, tenant_a, tenant_b):
        service = RoleService(session_for(admin_a))
        assert service.validate_role_assignment(admin_a.id, "user", tenant_a.id).data is True
        assert service.validate_role_assignment(admin_a.id, "user", tenant_b.id).status_code == 403
