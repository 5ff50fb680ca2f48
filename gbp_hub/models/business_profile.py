from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from gbp_hub.core.ids import gen_id
from gbp_hub.models.base import Base, AuditMixin


class BusinessProfile(AuditMixin, Base):
    """
    A Google Business Profile location owned by one organization.

    Rows are created by listing sync; `attributes` belongs to the dashboard
    (e.g. {"selectedForAnalytics": true}) and is never written by sync.
    """
    __tablename__ = "business_profiles"
    __table_args__ = (
        UniqueConstraint("organization_id", "external_id", name="uq_business_profile_external_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("bpr"))
    organization_id: Mapped[str] = mapped_column(String, ForeignKey("organizations.id"), nullable=False)

    # GBP resource name, e.g. "accounts/123/locations/456"
    external_id: Mapped[str | None] = mapped_column(String(300), nullable=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(40), nullable=True)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    categories: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    # "ACTIVE" | "SUSPENDED" | "VERIFIED"
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="ACTIVE")
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    attributes: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
