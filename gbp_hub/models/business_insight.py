from datetime import date

from sqlalchemy import Date, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gbp_hub.core.ids import gen_id
from gbp_hub.models.base import Base, AuditMixin


class BusinessInsight(AuditMixin, Base):
    """One day of GBP performance metrics for one listing."""
    __tablename__ = "business_insights"
    __table_args__ = (
        UniqueConstraint("business_profile_id", "day", name="uq_business_insight_day"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("ins"))
    organization_id: Mapped[str] = mapped_column(String, ForeignKey("organizations.id"), nullable=False)
    business_profile_id: Mapped[str] = mapped_column(String, ForeignKey("business_profiles.id"), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)

    total_views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    search_views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    maps_views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    website_clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    phone_call_clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    direction_requests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
