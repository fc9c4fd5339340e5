"""Tenant lifecycle and tenant-level statistics."""

from crux.core.policies import Caller
from crux.models import AuditLog, AuthUser, Invoice, Profile, Review, Tenant, UserInvitation
from crux.services.tenant_service import TenantService, slugify


def test_slugify():
    assert slugify("Joe's Coffee & Bagels!") == "joe-s-coffee-bagels"
    assert slugify("   ") == "tenant"


class TestCreateTenant:
    def test_super_admin_creates_tenant(self, db, session_for, super_admin):
        result = TenantService(session_for(super_admin)).create_tenant({
            "name": "Initech",
            "business_name": "Initech Printing",
            "plan_type": "pro",
        })

        assert result.success
        tenant = result.data
        assert tenant.slug == "initech-printing"
        assert tenant.plan_type == "pro"
        assert tenant.status == "active"
        assert tenant.created_by == super_admin.id
        assert tenant.review_form_url == f"https://app.example.com/review/{tenant.id}"
        assert db.query(AuditLog).filter(AuditLog.action == "tenant.created").count() == 1

    def test_slug_is_made_unique(self, session_for, super_admin, tenant_a):
        service = TenantService(session_for(super_admin))
        first = service.create_tenant({"name": "Acme"}).data
        second = service.create_tenant({"name": "Acme"}).data
        assert (first.slug, second.slug) == ("acme-2", "acme-3")

    def test_enterprise_plan_stored_as_industry(self, session_for, super_admin):
        tenant = TenantService(session_for(super_admin)).create_tenant({"name": "Big", "plan_type": "enterprise"}).data
        assert tenant.plan_type == "industry"

    def test_invalid_plan(self, session_for, super_admin):
        result = TenantService(session_for(super_admin)).create_tenant({"name": "Bad", "plan_type": "gold"})
        assert result.status_code == 400

    def test_name_required(self, session_for, super_admin):
        assert TenantService(session_for(super_admin)).create_tenant({"name": " "}).status_code == 400

    def test_tenant_admin_cannot_create(self, db, session_for, admin_a):
        result = TenantService(session_for(admin_a)).create_tenant({"name": "Rogue"})
        assert result.status_code == 403
        assert db.query(Tenant).filter(Tenant.name == "Rogue").count() == 0

    def test_with_admin_invitation(self, db, session_for, super_admin, email_service, sent_emails):
        result = TenantService(session_for(super_admin), email_service).create_tenant_with_admin(
            {"name": "Umbrella", "business_name": "Umbrella Corp"}, "Owner@Umbrella.example.com"
        )

        assert result.success
        tenant, invitation = result.data["tenant"], result.data["invitation"]
        assert invitation.tenant_id == tenant.id
        assert invitation.role == "tenant_admin"
        assert invitation.email == "owner@umbrella.example.com"
        assert "Umbrella Corp" in sent_emails[0]["subject"]


class TestUpdateTenant:
    def test_tenant_admin_updates_profile_fields(self, session_for, admin_a, tenant_a):
        result = TenantService(session_for(admin_a)).update_tenant(tenant_a.id, {"business_name": "Acme Ltd"})
        assert result.success
        assert result.data.business_name == "Acme Ltd"

    def test_tenant_admin_cannot_change_plan(self, session_for, admin_a, tenant_a):
        result = TenantService(session_for(admin_a)).update_tenant(tenant_a.id, {"plan_type": "industry"})
        assert result.status_code == 403
        assert "plan_type" in result.error

    def test_tenant_admin_cannot_touch_other_tenant(self, session_for, admin_a, tenant_b):
        result = TenantService(session_for(admin_a)).update_tenant(tenant_b.id, {"name": "Mine now"})
        assert result.status_code == 404

    def test_unknown_fields_are_ignored(self, session_for, super_admin, tenant_a):
        original_id = tenant_a.id
        result = TenantService(session_for(super_admin)).update_tenant(tenant_a.id, {"id": "other", "name": "Acme"})
        assert result.data.id == original_id

    def test_suspend_and_activate(self, session_for, super_admin, tenant_a):
        service = TenantService(session_for(super_admin))
        assert service.suspend_tenant(tenant_a.id).data.status == "suspended"
        assert service.activate_tenant(tenant_a.id).data.status == "active"

    def test_invalid_status(self, session_for, super_admin, tenant_a):
        assert TenantService(session_for(super_admin)).update_tenant_status(tenant_a.id, "paused").status_code == 400


class TestDeleteTenant:
    def test_removes_members_and_data(self, db, session_for, super_admin, tenant_a, admin_a, user_a, admin_b):
        db.add(Review(tenant_id=tenant_a.id, customer_name="X", rating=5, google_review=True))
        db.add(Invoice(
            tenant_id=tenant_a.id, invoice_number="INV-9", customer_name="C", customer_email="c@example.com",
            item_description="Work", quantity=1, unit_price=5, total=5,
        ))
        db.commit()
        tenant_id = tenant_a.id

        result = TenantService(session_for(super_admin)).delete_tenant(tenant_id)

        assert result.success
        db.expire_all()
        assert db.query(Tenant).filter(Tenant.id == tenant_id).first() is None
        assert db.query(Profile).filter(Profile.tenant_id == tenant_id).count() == 0
        assert db.query(AuthUser).filter(AuthUser.email.in_(["admin@acme.example.com", "staff@acme.example.com"])).count() == 0
        assert db.query(Review).count() == 0
        assert db.query(Invoice).count() == 0
        # other tenants untouched
        assert db.query(Profile).filter(Profile.id == admin_b.id).count() == 1

    def test_tenant_admin_cannot_delete(self, db, session_for, admin_a, tenant_a):
        result = TenantService(session_for(admin_a)).delete_tenant(tenant_a.id)
        assert result.status_code == 404
        assert db.query(Profile).filter(Profile.id == admin_a.id).count() == 1

    def test_unknown_tenant(self, session_for, super_admin):
        assert TenantService(session_for(super_admin)).delete_tenant("missing").status_code == 404


class TestReadTenants:
    def test_list_filters(self, session_for, super_admin, tenant_a, tenant_b):
        service = TenantService(session_for(super_admin))
        assert {t.slug for t in service.get_tenants().data} == {"acme", "globex"}
        assert [t.slug for t in service.get_tenants(search="glob").data] == ["globex"]
        service.suspend_tenant(tenant_b.id)
        assert [t.slug for t in service.get_tenants(status="suspended").data] == ["globex"]

    def test_member_lists_own_tenant(self, session_for, user_a, tenant_b):
        assert [t.slug for t in TenantService(session_for(user_a)).get_tenants().data] == ["acme"]

    def test_usage_stats(self, db, session_for, admin_a, user_a, tenant_a):
        db.add(Review(tenant_id=tenant_a.id, customer_name="X", rating=4, google_review=True))
        db.commit()
        stats = TenantService(session_for(admin_a)).get_tenant_usage_stats(tenant_a.id).data
        assert stats["reviews_count"] == 1
        assert stats["users_count"] == 2
        assert stats["last_activity"] is not None

    def test_review_form_url_backfilled(self, db, session_for, admin_a, tenant_a):
        assert tenant_a.review_form_url is None
        url = TenantService(session_for(admin_a)).get_review_form_url(tenant_a.id).data
        assert url == f"https://app.example.com/review/{tenant_a.id}"

    def test_platform_analytics_super_admin_only(self, db, session_for, super_admin, admin_a, tenant_a, tenant_b):
        db.add_all([
            Review(tenant_id=tenant_a.id, customer_name="X", rating=5, google_review=True),
            Review(tenant_id=tenant_b.id, customer_name="Y", rating=2, google_review=False),
        ])
        db.commit()

        denied = TenantService(session_for(admin_a)).get_platform_analytics()
        assert denied.status_code == 403

        stats = TenantService(session_for(super_admin)).get_platform_analytics().data
        assert stats["total_tenants"] == 2
        assert stats["total_reviews"] == 2
        assert stats["reviews_this_month"] == 2
        assert stats["average_rating"] == 3.5
        assert stats["total_users"] == 2

    def test_get_by_slug_only_open_tenants(self, session_for, make_tenant, tenant_a):
        make_tenant(slug="dark", status="pending")
        service = TenantService(session_for(Caller.service_role()))
        assert service.get_tenant_by_slug("acme").data.id == tenant_a.id
        assert service.get_tenant_by_slug("dark").data is None


def test_invitations_cascade_with_tenant(db, session_for, super_admin, tenant_a, email_service):
    TenantService(session_for(super_admin), email_service).create_tenant_with_admin(
        {"name": "Short Lived"}, "owner@short.example.com", send_email=False
    )
    tenant = db.query(Tenant).filter(Tenant.name == "Short Lived").one()
    TenantService(session_for(super_admin)).delete_tenant(tenant.id)
    db.expire_all()
    assert db.query(UserInvitation).count() == 0
