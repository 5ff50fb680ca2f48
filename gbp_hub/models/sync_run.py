from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from gbp_hub.core.ids import gen_id
from gbp_hub.models.base import Base


class SyncRun(Base):
    """
    Record of one listing sync pass for diagnostics/support.

    Written for every pass, including passes that never reached the apply step.
    """
    __tablename__ = "sync_runs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("syn"))
    organization_id: Mapped[str] = mapped_column(String, ForeignKey("organizations.id"), nullable=False)

    # "api" | "scheduled"
    trigger: Mapped[str] = mapped_column(String(30), nullable=False)
    triggered_by: Mapped[str | None] = mapped_column(String, nullable=True)

    # "success" | "partial" | "connection_failed" | "internal"
    status: Mapped[str] = mapped_column(String(40), nullable=False)

    total_locations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    synced_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # [{"external_id": ..., "display_name": ..., "error": ...}]
    failures: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    error_detail: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
