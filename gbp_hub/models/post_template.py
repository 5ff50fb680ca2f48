from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from gbp_hub.core.ids import gen_id
from gbp_hub.models.base import Base, AuditMixin


class PostTemplate(AuditMixin, Base):
    __tablename__ = "post_templates"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("ptp"))
    organization_id: Mapped[str] = mapped_column(String, ForeignKey("organizations.id"), nullable=False)
    business_profile_id: Mapped[str] = mapped_column(String, ForeignKey("business_profiles.id"), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # "UPDATE" | "EVENT" | "OFFER"
    post_type: Mapped[str] = mapped_column(String(20), nullable=False, default="UPDATE")
    # {"type": "CALL_NOW", "url": ..., "text": ...}
    call_to_action: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    tags: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_favorite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
