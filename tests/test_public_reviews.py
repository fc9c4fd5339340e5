"""Anonymous review form: submission, redirects and tenant lookup."""

import pytest

from crux.core.policies import Caller
from crux.models import Review, UsageMetric
from crux.services.public_review_service import PublicReviewService

URL = "/api/v1/public/reviews"


@pytest.fixture
def public_service(session_for):
    return PublicReviewService(session_for(Caller.anonymous()))


class TestSubmitService:
    def test_high_rating_goes_to_google(self, db, public_service, tenant_a):
        result = public_service.submit_public_review({"slug": "acme", "rating": 5, "reviewer_name": "Ann"})

        assert result.success
        assert result.data["success"] is True
        assert result.data["redirect_url"] == tenant_a.google_review_url

        review = db.query(Review).one()
        assert review.id == result.data["review_id"]
        assert review.google_review is True
        assert review.is_anonymous is True
        assert review.source == "public_form"
        assert review.review_metadata["tenant_slug"] == "acme"

    def test_low_rating_goes_to_feedback(self, db, public_service, tenant_a):
        result = public_service.submit_public_review({"slug": "acme", "rating": 2, "reviewer_name": "Bo Lee"})

        review_id = result.data["review_id"]
        assert result.data["redirect_url"] == (
            f"https://reviews.example.com/feedback?review_id={review_id}&name=Bo%20Lee&rating=2"
        )
        assert db.query(Review).one().google_review is False

    def test_four_is_the_google_threshold(self, public_service, tenant_a):
        result = public_service.submit_public_review({"slug": "acme", "rating": 4})
        assert result.data["redirect_url"] == tenant_a.google_review_url

    def test_blank_name_is_anonymous(self, db, public_service, tenant_a):
        result = public_service.submit_public_review({"slug": "acme", "rating": 1, "reviewer_name": "  "})
        assert "name=Anonymous" in result.data["redirect_url"]
        assert db.query(Review).one().customer_name == "Anonymous"

    def test_records_usage_metric(self, db, public_service, tenant_a):
        public_service.submit_public_review({"slug": "acme", "rating": 5})
        metric = db.query(UsageMetric).one()
        assert metric.tenant_id == tenant_a.id
        assert metric.metric_type == "public_review_submitted"

    @pytest.mark.parametrize("rating", [0, 6, 7, -1, 2.5, "5", True])
    def test_invalid_rating_writes_nothing(self, db, public_service, tenant_a, rating):
        result = public_service.submit_public_review({"slug": "acme", "rating": rating})
        assert result.status_code == 400
        assert db.query(Review).count() == 0

    def test_whole_float_rating_accepted(self, public_service, tenant_a):
        assert public_service.submit_public_review({"slug": "acme", "rating": 5.0}).success

    @pytest.mark.parametrize("submission", [{"rating": 5}, {"slug": "acme"}, {"slug": "  ", "rating": 3}])
    def test_missing_fields(self, public_service, tenant_a, submission):
        result = public_service.submit_public_review(submission)
        assert result.status_code == 400
        assert result.error.startswith("Missing required fields")

    def test_unknown_slug(self, public_service):
        result = public_service.submit_public_review({"slug": "nobody", "rating": 5})
        assert result.status_code == 404

    def test_suspended_tenant_is_not_available(self, db, public_service, make_tenant):
        make_tenant(slug="closed", status="suspended")
        result = public_service.submit_public_review({"slug": "closed", "rating": 5})
        assert result.status_code == 404
        assert db.query(Review).count() == 0

    def test_tenant_without_google_url_is_not_available(self, public_service, make_tenant):
        make_tenant(slug="nourl", google_review_url=None)
        assert public_service.submit_public_review({"slug": "nourl", "rating": 5}).status_code == 404


class TestPublicApi:
    def test_submit(self, client, tenant_a):
        response = client.post(URL, json={"slug": "acme", "rating": 5, "reviewer_name": "Ann"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["redirect_url"] == tenant_a.google_review_url

    def test_rating_out_of_range(self, client, db, tenant_a):
        response = client.post(URL, json={"slug": "acme", "rating": 7})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Rating must be an integer between 1 and 5"}
        assert db.query(Review).count() == 0

    def test_unknown_slug(self, client):
        response = client.post(URL, json={"slug": "nobody", "rating": 5})
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_credentials_are_ignored(self, client, db, tenant_a, admin_b, headers):
        # Submitted as anon even when a foreign tenant admin is logged in
        response = client.post(URL, json={"slug": "acme", "rating": 3}, headers=headers(admin_b))
        assert response.status_code == 200
        db.expire_all()
        assert db.query(Review).one().tenant_id == tenant_a.id

    def test_get_public_tenant(self, client, tenant_a):
        response = client.get("/api/v1/public/tenants/acme")
        assert response.status_code == 200
        body = response.json()
        assert body["business_name"] == tenant_a.business_name
        assert body["google_review_url"] == tenant_a.google_review_url

    def test_get_public_tenant_unknown(self, client):
        assert client.get("/api/v1/public/tenants/nobody").status_code == 404

    def test_redirect_opened(self, client, db, tenant_a):
        review_id = client.post(URL, json={"slug": "acme", "rating": 5}).json()["review_id"]
        response = client.post(f"/api/v1/public/reviews/{review_id}/redirect-opened")
        assert response.status_code == 204
        db.expire_all()
        assert db.query(Review).one().redirect_opened is True
