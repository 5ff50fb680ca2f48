"""
Listing sync driver.

START -> AUTH_CHECK -> FETCH_EXTERNAL -> RECONCILE -> APPLY -> REPORT

AUTH_CHECK and FETCH_EXTERNAL failures end the pass before anything is
written. APPLY failures are per record: the record is reported and the pass
continues. Every outcome, including unexpected exceptions, comes back as a
SyncReport; nothing raises past `sync_listings`.
"""
from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from gbp_hub.core.config import settings
from gbp_hub.services.reconciler import (
    CreateListing,
    ExternalListing,
    LocalListing,
    UpdateListing,
    reconcile,
)

log = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    CONNECTION_FAILED = "connection_failed"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ConnectionCheck:
    ok: bool
    message: str = ""


class UpstreamError(Exception):
    """External listing source could not be reached or refused the request."""


class ListingSource(Protocol):
    async def check_connection(self) -> ConnectionCheck:
        ...

    async def fetch_listings(self) -> list[ExternalListing]:
        ...


class ListingStore(Protocol):
    def lock(self, organization_id: str) -> AbstractAsyncContextManager[None]:
        ...

    async def find_by_organization(self, organization_id: str) -> list[LocalListing]:
        ...

    async def create(self, organization_id: str, fields: dict[str, Any]) -> LocalListing:
        ...

    async def update(self, organization_id: str, listing_id: str, fields: dict[str, Any]) -> LocalListing:
        ...


@dataclass(frozen=True)
class RecordFailure:
    external_id: str
    display_name: str
    error: str
    code: str = "internal_error"

    def as_dict(self) -> dict[str, str]:
        return {
            "external_id": self.external_id,
            "display_name": self.display_name,
            "error": self.error,
            "code": self.code,
        }


def failure_code(exc: BaseException) -> str:
    """Short, caller-safe classification of a per-record write failure."""
    if isinstance(exc, IntegrityError):
        return "integrity_error"
    if isinstance(exc, SQLAlchemyError):
        return "database_error"
    return "internal_error"


@dataclass
class SyncReport:
    organization_id: str
    status: SyncStatus
    total_locations: int = 0
    duplicate_count: int = 0
    synced_count: int = 0
    new_count: int = 0
    failures: list[RecordFailure] = field(default_factory=list)
    error: str | None = None
    details: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.SUCCESS, SyncStatus.PARTIAL)

    @property
    def existing_count(self) -> int:
        return self.synced_count - self.new_count

    @property
    def failed_count(self) -> int:
        return len(self.failures)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def sync_listings(
    organization_id: str,
    *,
    source: ListingSource,
    store: ListingStore,
    now: datetime | None = None,
    display_name_fallback: bool | None = None,
) -> SyncReport:
    if display_name_fallback is None:
        display_name_fallback = settings.sync_display_name_fallback

    try:
        # AUTH_CHECK
        check = await source.check_connection()
        if not check.ok:
            log.warning("listing sync %s: connection check failed: %s", organization_id, check.message)
            return SyncReport(
                organization_id=organization_id,
                status=SyncStatus.CONNECTION_FAILED,
                error="Google Business Profile API connection failed",
                details=check.message,
            )

        # FETCH_EXTERNAL
        try:
            incoming = await source.fetch_listings()
        except UpstreamError as e:
            log.warning("listing sync %s: fetch failed: %s", organization_id, e)
            return SyncReport(
                organization_id=organization_id,
                status=SyncStatus.CONNECTION_FAILED,
                error="Failed to fetch business locations from Google",
                details=str(e),
            )

        log.info("listing sync %s: fetched %d locations", organization_id, len(incoming))
        ts = now or _utcnow()

        async with store.lock(organization_id):
            # RECONCILE
            existing = await store.find_by_organization(organization_id)
            ops = reconcile(
                organization_id,
                existing,
                incoming,
                now=ts,
                display_name_fallback=display_name_fallback,
            )

            # APPLY
            report = SyncReport(
                organization_id=organization_id,
                status=SyncStatus.SUCCESS,
                total_locations=len(incoming),
                duplicate_count=len(incoming) - len(ops),
            )
            for op in ops:
                try:
                    if isinstance(op, CreateListing):
                        await store.create(organization_id, op.fields)
                        report.new_count += 1
                        log.info("listing sync %s: created %s (%s)", organization_id, op.display_name, op.external_id)
                    elif isinstance(op, UpdateListing):
                        await store.update(organization_id, op.target_id, op.fields)
                        log.info("listing sync %s: updated %s (%s)", organization_id, op.target_id, op.external_id)
                    report.synced_count += 1
                except Exception as e:
                    # full exception goes to the log only; it may carry SQL and bound values
                    log.exception("listing sync %s: failed to apply %s for %s", organization_id, type(op).__name__, op.external_id)
                    action = "create" if isinstance(op, CreateListing) else "update"
                    report.failures.append(RecordFailure(
                        external_id=op.external_id,
                        display_name=op.display_name,
                        error=f"Failed to {action} listing",
                        code=failure_code(e),
                    ))

        if report.failures:
            report.status = SyncStatus.PARTIAL
        return report

    except Exception:
        log.exception("listing sync %s: unexpected error", organization_id)
        return SyncReport(
            organization_id=organization_id,
            status=SyncStatus.INTERNAL,
            error="Failed to sync live Google Business Profile listings",
        )
