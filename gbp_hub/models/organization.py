from sqlalchemy import String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from gbp_hub.core.ids import gen_id
from gbp_hub.models.base import Base, AuditMixin


class Organization(AuditMixin, Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("org"))
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # "AGENCY" | "BUSINESS"
    type: Mapped[str] = mapped_column(String(30), nullable=False, default="BUSINESS")

    # timezone, default language, notification flags...
    settings: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
