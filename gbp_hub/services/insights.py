from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Protocol

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from gbp_hub.core.ids import gen_id
from gbp_hub.models.business_insight import BusinessInsight
from gbp_hub.models.business_profile import BusinessProfile
from gbp_hub.services.google_business import DailyInsight
from gbp_hub.services.listing_sync import UpstreamError, failure_code

log = logging.getLogger(__name__)

PERIOD_DAYS = {"week": 7, "month": 30, "quarter": 90}

METRIC_FIELDS = (
    "total_views",
    "search_views",
    "maps_views",
    "website_clicks",
    "phone_call_clicks",
    "direction_requests",
)


class InsightSource(Protocol):
    async def fetch_daily_metrics(self, location_name: str, start: date, end: date) -> list[DailyInsight]:
        ...


def period_range(period: str, today: date) -> tuple[date, date]:
    if period not in PERIOD_DAYS:
        raise ValueError(f"unknown analytics period: {period}")
    return today - timedelta(days=PERIOD_DAYS[period]), today


def summarize_insights(rows: Iterable[BusinessInsight]) -> dict[str, int]:
    totals = {f: 0 for f in METRIC_FIELDS}
    for row in rows:
        for f in METRIC_FIELDS:
            totals[f] += getattr(row, f) or 0
    return totals


def insight_trends(rows: Iterable[BusinessInsight]) -> list[dict]:
    """Daily totals across listings: views, search views and customer actions."""
    per_day: dict[date, dict] = {}
    for row in rows:
        point = per_day.setdefault(row.day, {"day": row.day, "views": 0, "searches": 0, "actions": 0})
        point["views"] += row.total_views or 0
        point["searches"] += row.search_views or 0
        point["actions"] += (row.website_clicks or 0) + (row.phone_call_clicks or 0) + (row.direction_requests or 0)
    return [per_day[d] for d in sorted(per_day)]


@dataclass
class InsightSyncResult:
    synced_profiles: int = 0
    days_written: int = 0
    failures: list[dict] = field(default_factory=list)

    @property
    def upstream_unreachable(self) -> bool:
        return self.synced_profiles == 0 and any(f["code"] == "upstream_error" for f in self.failures)


async def _upsert_days(db: AsyncSession, profile: BusinessProfile, days: list[DailyInsight], actor_id: str | None) -> None:
    for d in days:
        values = {
            "total_views": d.total_views,
            "search_views": d.search_views,
            "maps_views": d.maps_views,
            "website_clicks": d.website_clicks,
            "phone_call_clicks": d.phone_call_clicks,
            "direction_requests": d.direction_requests,
        }
        stmt = (
            insert(BusinessInsight)
            .values(
                id=gen_id("ins"),
                organization_id=profile.organization_id,
                business_profile_id=profile.id,
                day=d.day,
                created_by=actor_id,
                updated_by=actor_id,
                **values,
            )
            .on_conflict_do_update(
                constraint="uq_business_insight_day",
                set_={**values, "updated_by": actor_id, "updated_at": func.now()},
            )
        )
        await db.execute(stmt)


async def sync_insights(
    db: AsyncSession,
    *,
    profiles: Iterable[BusinessProfile],
    source: InsightSource,
    start: date,
    end: date,
    actor_id: str | None = None,
) -> InsightSyncResult:
    """
    Pull daily performance metrics for each listing and upsert them by day.

    One listing failing (unlinked, upstream error, write error) is recorded in
    `failures` and the rest carry on. Each listing's rows are written in their
    own SAVEPOINT. The caller commits.
    """
    result = InsightSyncResult()
    for profile in profiles:
        if not profile.external_id:
            result.failures.append({
                "business_profile_id": profile.id,
                "error": "Listing is not linked to Google",
                "code": "not_linked",
            })
            continue

        try:
            days = await source.fetch_daily_metrics(profile.external_id, start, end)
        except UpstreamError as e:
            log.warning("insights sync %s: fetch failed: %s", profile.id, e)
            result.failures.append({
                "business_profile_id": profile.id,
                "error": "Failed to fetch insights from Google",
                "code": "upstream_error",
                "details": str(e),
            })
            continue

        try:
            async with db.begin_nested():
                await _upsert_days(db, profile, days, actor_id)
        except SQLAlchemyError as e:
            log.exception("insights sync %s: failed to store %d days", profile.id, len(days))
            result.failures.append({
                "business_profile_id": profile.id,
                "error": "Failed to save insights",
                "code": failure_code(e),
            })
            continue

        result.synced_profiles += 1
        result.days_written += len(days)
        log.info("insights sync %s: stored %d days", profile.id, len(days))

    return result
