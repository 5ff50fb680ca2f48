from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.models.business_profile import BusinessProfile
from gbp_hub.models.sync_run import SyncRun
from gbp_hub.services.activity import log_activity
from gbp_hub.services.listing_store import SqlListingStore
from gbp_hub.services.listing_sync import ListingSource, SyncReport, SyncStatus, sync_listings

log = logging.getLogger(__name__)


def _sync_run_row(report: SyncReport, *, trigger: str, triggered_by: str | None) -> SyncRun:
    return SyncRun(
        organization_id=report.organization_id,
        trigger=trigger,
        triggered_by=triggered_by,
        status=report.status.value,
        total_locations=report.total_locations,
        synced_count=report.synced_count,
        new_count=report.new_count,
        failed_count=report.failed_count,
        failures=[f.as_dict() for f in report.failures],
        error_detail=(f"{report.error}: {report.details}" if report.details else report.error),
    )


async def run_organization_sync(
    db: AsyncSession,
    *,
    organization_id: str,
    source: ListingSource,
    trigger: str,
    user_id: str | None = None,
    actor_id: str | None = None,
) -> SyncReport:
    """
    Run one listing sync pass and commit it together with its SyncRun record.

    The advisory lock taken by the store lives until this commit, so passes
    for the same organization never interleave.
    """
    store = SqlListingStore(db, actor_id=actor_id or "sync")
    report = await sync_listings(organization_id, source=source, store=store)

    if not report.ok:
        # nothing to keep; the transaction may also be unusable after an internal error
        await db.rollback()
        db.add(_sync_run_row(report, trigger=trigger, triggered_by=actor_id))
        await db.commit()
        return report

    db.add(_sync_run_row(report, trigger=trigger, triggered_by=actor_id))
    log_activity(
        db,
        organization_id=organization_id,
        user_id=user_id,
        action="UPDATE",
        resource="business_profiles",
        resource_id=organization_id,
        description=f"Synced {report.synced_count} business locations from Google Business Profile",
        metadata={
            "total_locations": report.total_locations,
            "duplicate_count": report.duplicate_count,
            "synced_count": report.synced_count,
            "new_count": report.new_count,
            "failed_count": report.failed_count,
            "trigger": trigger,
        },
    )
    try:
        await db.commit()
    except SQLAlchemyError:
        log.exception("listing sync %s: commit failed", organization_id)
        await db.rollback()
        failed = SyncReport(
            organization_id=organization_id,
            status=SyncStatus.INTERNAL,
            error="Failed to sync live Google Business Profile listings",
        )
        db.add(_sync_run_row(failed, trigger=trigger, triggered_by=actor_id))
        await db.commit()
        return failed

    log.info(
        "listing sync %s: %s total=%d synced=%d new=%d failed=%d",
        organization_id, report.status.value, report.total_locations,
        report.synced_count, report.new_count, report.failed_count,
    )
    return report


async def list_organization_profiles(db: AsyncSession, organization_id: str) -> list[BusinessProfile]:
    stmt = (
        select(BusinessProfile)
        .where(BusinessProfile.organization_id == organization_id)
        .order_by(BusinessProfile.name.asc())
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(stmt)).scalars().all())
