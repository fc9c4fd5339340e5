"""
Review Models

Reviews are written by the public form (anonymous) or by staff, and are
otherwise immutable history for analytics. Review links are shareable
short codes pointing at a tenant's review form.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Text, JSON, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from crux.database import Base
import uuid

# Ratings at or above this go to Google, below it to the feedback form
GOOGLE_REVIEW_THRESHOLD = 4


class Review(Base):
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id = Column(String(36), ForeignKey("auth_users.id", ondelete="SET NULL"), nullable=True)

    customer_name = Column(String(255), nullable=False, default="Anonymous")
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    country_code = Column(String(8), default="+1", nullable=True)

    rating = Column(Integer, nullable=False)
    review_text = Column(Text, nullable=True)

    google_review = Column(Boolean, default=False, nullable=False)
    redirect_opened = Column(Boolean, default=False, nullable=False)
    is_anonymous = Column(Boolean, default=False, nullable=False)
    source = Column(String(50), default="dashboard", nullable=False)

    # "metadata" is reserved on declarative classes
    review_metadata = Column("metadata", JSON, default=dict, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="reviews")

    __table_args__ = (
        CheckConstraint('rating >= 1 AND rating <= 5', name='ck_reviews_rating_range'),
        Index('idx_reviews_tenant_created', 'tenant_id', 'created_at'),
        Index('idx_reviews_tenant_rating', 'tenant_id', 'rating'),
    )

    def __repr__(self):
        return f"<Review {self.id} rating={self.rating} tenant={self.tenant_id}>"


class ReviewLink(Base):
    __tablename__ = "review_links"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    link_code = Column(String(50), unique=True, nullable=False, index=True)

    business_name = Column(String(255), nullable=False)
    business_email = Column(String(255), nullable=True)
    business_phone = Column(String(50), nullable=True)
    business_address = Column(Text, nullable=True)
    google_business_url = Column(Text, nullable=True)

    form_customization = Column(JSON, default=dict, nullable=False)
    email_template = Column(JSON, default=dict, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=True)

    created_by = Column(String(36), ForeignKey("auth_users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="review_links")

    def __repr__(self):
        return f"<ReviewLink {self.link_code}>"

    def is_usable(self, now: datetime = None) -> bool:
        now = now or datetime.utcnow()
        return self.is_active and (self.expires_at is None or self.expires_at > now)
