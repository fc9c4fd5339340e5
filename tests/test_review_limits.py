"""Plan quotas and upgrade recommendations."""

import pytest

from crux.models import BusinessSettings, Review
from crux.services.review_limit_service import (
    ReviewLimitService,
    generate_google_review_url,
    max_reviews_for,
    normalize_plan,
)
from crux.services.review_service import ReviewService


def _fill(db, tenant, count):
    db.add_all([
        Review(tenant_id=tenant.id, customer_name=f"C{i}", rating=5, google_review=True)
        for i in range(count)
    ])
    db.commit()


@pytest.mark.parametrize("plan,expected", [
    ("basic", 100),
    ("pro", 500),
    ("industry", 1000),
    ("enterprise", 1000),
    ("platinum", 100),
    (None, 100),
])
def test_max_reviews_for(plan, expected):
    assert max_reviews_for(plan) == expected


def test_enterprise_is_industry():
    assert normalize_plan("enterprise") == "industry"


class TestLimits:
    def test_fresh_tenant(self, session_for, admin_a, tenant_a):
        limits = ReviewLimitService(session_for(admin_a)).get_tenant_review_limits(tenant_a.id).data
        assert limits == {
            "plan_type": "basic",
            "max_reviews": 100,
            "current_reviews": 0,
            "remaining_reviews": 100,
            "is_limit_reached": False,
            "can_share": True,
            "can_send": True,
            "can_collect": True,
        }

    def test_limit_reached_at_plan_maximum(self, db, session_for, admin_a, tenant_a):
        _fill(db, tenant_a, 100)
        limits = ReviewLimitService(session_for(admin_a)).get_tenant_review_limits(tenant_a.id).data

        assert limits["is_limit_reached"] is True
        assert limits["remaining_reviews"] == 0
        assert not limits["can_share"]
        assert not limits["can_send"]
        assert not limits["can_collect"]

    def test_one_below_maximum(self, db, session_for, admin_a, tenant_a):
        _fill(db, tenant_a, 99)
        service = ReviewLimitService(session_for(admin_a))
        assert service.get_tenant_review_limits(tenant_a.id).data["remaining_reviews"] == 1
        assert service.can_perform_action(tenant_a.id, "collect").data is True

    def test_unknown_action(self, session_for, admin_a, tenant_a):
        result = ReviewLimitService(session_for(admin_a)).can_perform_action(tenant_a.id, "delete")
        assert result.status_code == 400

    def test_foreign_tenant_is_not_found(self, session_for, admin_a, tenant_b):
        result = ReviewLimitService(session_for(admin_a)).get_tenant_review_limits(tenant_b.id)
        assert result.status_code == 404

    def test_create_review_blocked_at_limit(self, db, session_for, user_a, tenant_a):
        _fill(db, tenant_a, 100)
        result = ReviewService(session_for(user_a)).create_review({"rating": 5, "customer_name": "Late"})

        assert result.status_code == 403
        assert "basic plan" in result.error
        assert db.query(Review).count() == 100


class TestUpgradeRecommendation:
    def test_below_threshold_keeps_plan(self, db, session_for, admin_a, tenant_a):
        _fill(db, tenant_a, 10)
        rec = ReviewLimitService(session_for(admin_a)).get_upgrade_recommendation(tenant_a.id).data
        assert rec == {
            "current_plan": "basic",
            "recommended_plan": "basic",
            "usage_percentage": 10,
            "upgrade_benefits": [],
        }

    def test_basic_at_eighty_percent_suggests_pro(self, db, session_for, admin_a, tenant_a):
        _fill(db, tenant_a, 80)
        rec = ReviewLimitService(session_for(admin_a)).get_upgrade_recommendation(tenant_a.id).data
        assert rec["recommended_plan"] == "pro"
        assert rec["usage_percentage"] == 80
        assert rec["upgrade_benefits"][0] == "500 reviews per month (5x more)"

    def test_industry_has_no_upgrade(self, db, session_for, super_admin, make_tenant):
        tenant = make_tenant(plan_type="enterprise")
        _fill(db, tenant, 900)
        rec = ReviewLimitService(session_for(super_admin)).get_upgrade_recommendation(tenant.id).data
        assert rec["current_plan"] == "industry"
        assert rec["recommended_plan"] == "industry"
        assert rec["upgrade_benefits"] == []


class TestGoogleBusiness:
    def test_place_url_becomes_reviews_url(self):
        url = "https://www.google.com/maps/place/Acme+Bakery/@40.7,-74.0,17z/data=abc"
        assert generate_google_review_url(url) == "https://www.google.com/maps/place/Acme+Bakery/reviews"

    def test_other_urls_unchanged(self):
        assert generate_google_review_url("https://g.page/r/acme/review") == "https://g.page/r/acme/review"

    def test_settings_not_configured(self, session_for, admin_a, tenant_a):
        data = ReviewLimitService(session_for(admin_a)).get_google_business_settings(tenant_a.id).data
        assert data == {"google_business_url": "", "is_configured": False, "review_url": ""}

    def test_settings_configured(self, db, session_for, admin_a, tenant_a):
        db.add(BusinessSettings(
            tenant_id=tenant_a.id,
            google_business_url="https://www.google.com/maps/place/Acme/@1,2,3z",
        ))
        db.commit()
        data = ReviewLimitService(session_for(admin_a)).get_google_business_settings(tenant_a.id).data
        assert data["is_configured"] is True
        assert data["review_url"] == "https://www.google.com/maps/place/Acme/reviews"
