from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import DateTime

from gbp_hub.core.ids import gen_id
from gbp_hub.models.base import Base, AuditMixin


class Review(AuditMixin, Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("business_profile_id", "external_review_id", name="uq_review_external_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("rev"))
    organization_id: Mapped[str] = mapped_column(String, ForeignKey("organizations.id"), nullable=False)
    business_profile_id: Mapped[str] = mapped_column(String, ForeignKey("business_profiles.id"), nullable=False)

    # GBP review resource name, e.g. "accounts/1/locations/2/reviews/abc"
    external_review_id: Mapped[str] = mapped_column(String(400), nullable=False)

    reviewer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    reviewer_photo_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # "NEW" | "RESPONDED" | "FLAGGED" | "ARCHIVED"
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="NEW")
    # "POSITIVE" | "NEUTRAL" | "NEGATIVE"
    sentiment: Mapped[str] = mapped_column(String(30), nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    response = relationship("ReviewResponse", uselist=False, lazy="selectin", back_populates="review")


class ReviewResponse(AuditMixin, Base):
    __tablename__ = "review_responses"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("rsp"))
    review_id: Mapped[str] = mapped_column(String, ForeignKey("reviews.id"), nullable=False, unique=True)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # None for replies imported from GBP
    user_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True)
    template_id: Mapped[str | None] = mapped_column(String, ForeignKey("response_templates.id"), nullable=True)

    review = relationship("Review", back_populates="response")
