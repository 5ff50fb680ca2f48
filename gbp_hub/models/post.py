from datetime import datetime

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from gbp_hub.core.ids import gen_id
from gbp_hub.models.base import Base, AuditMixin


class Post(AuditMixin, Base):
    """
    A local GBP post. Status is tracked here only; nothing is sent to Google.

    `media` holds already-hosted images: [{"url", "alt", "order"}].
    """
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("pst"))
    organization_id: Mapped[str] = mapped_column(String, ForeignKey("organizations.id"), nullable=False)
    business_profile_id: Mapped[str] = mapped_column(String, ForeignKey("business_profiles.id"), nullable=False)
    template_id: Mapped[str | None] = mapped_column(String, ForeignKey("post_templates.id"), nullable=True)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    # "UPDATE" | "EVENT" | "OFFER"
    post_type: Mapped[str] = mapped_column(String(20), nullable=False, default="UPDATE")
    call_to_action: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    media: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    # "DRAFT" | "SCHEDULED" | "PUBLISHED" | "FAILED" | "DELETED"
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
