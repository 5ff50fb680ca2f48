from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from gbp_hub.core.ids import gen_id
from gbp_hub.models.base import Base, AuditMixin


class ResponseTemplate(AuditMixin, Base):
    __tablename__ = "response_templates"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("tpl"))
    organization_id: Mapped[str] = mapped_column(String, ForeignKey("organizations.id"), nullable=False)
    business_profile_id: Mapped[str] = mapped_column(String, ForeignKey("business_profiles.id"), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # "POSITIVE" | "NEUTRAL" | "NEGATIVE" | "ALL"
    sentiment: Mapped[str] = mapped_column(String(30), nullable=False, default="ALL")
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_favorite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
