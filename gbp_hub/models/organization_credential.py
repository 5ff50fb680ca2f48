from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from gbp_hub.core.ids import gen_id
from gbp_hub.models.base import Base, AuditMixin


class OrganizationCredential(AuditMixin, Base):
    __tablename__ = "organization_credentials"
    __table_args__ = (
        UniqueConstraint("organization_id", "provider", name="uq_org_provider_cred"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("crd"))
    organization_id: Mapped[str] = mapped_column(String, ForeignKey("organizations.id"), nullable=False)

    # Currently only "google"
    provider: Mapped[str] = mapped_column(String(40), nullable=False)

    # Encrypted JSON blob of secrets (never returned by API), e.g. {"refresh_token": "..."}
    secret_ciphertext: Mapped[str] = mapped_column(Text, nullable=False)

    # Non-secret metadata shown in dashboard (account email, scopes, notes)
    meta: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
