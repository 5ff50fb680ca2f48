from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.core.db import get_db
from gbp_hub.schemas.analytics import AnalyticsOverviewOut, AnalyticsPeriod, InsightSyncFailureOut, InsightSyncOut
from gbp_hub.services.activity import log_activity
from gbp_hub.services.analytics import analytics_overview, analytics_profiles
from gbp_hub.services.auth import Actor, get_actor
from gbp_hub.services.google_business import GoogleBusinessClient
from gbp_hub.services.google_credentials import get_google_client
from gbp_hub.services.insights import period_range, sync_insights

router = APIRouter()


@router.get("/analytics/overview", response_model=AnalyticsOverviewOut)
async def get_analytics_overview(
    business_profile_id: str | None = Query(default=None),
    period: AnalyticsPeriod = Query(default="month"),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> AnalyticsOverviewOut:
    overview = await analytics_overview(
        db,
        organization_id=actor.organization_id,
        business_profile_id=business_profile_id,
        period=period,
    )
    if overview is None:
        raise HTTPException(status_code=404, detail="Business profile not found")
    return AnalyticsOverviewOut(**overview)


@router.post("/analytics/insights/sync", response_model=InsightSyncOut)
async def sync_analytics_insights(
    business_profile_id: str | None = Query(default=None),
    period: AnalyticsPeriod = Query(default="month"),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    client: GoogleBusinessClient = Depends(get_google_client),
) -> InsightSyncOut:
    profiles = await analytics_profiles(db, actor.organization_id, business_profile_id)
    if profiles is None:
        raise HTTPException(status_code=404, detail="Business profile not found")

    start, end = period_range(period, datetime.now(timezone.utc).date())
    result = await sync_insights(db, profiles=profiles, source=client, start=start, end=end, actor_id=actor.api_key_id)

    if result.upstream_unreachable:
        await db.rollback()
        first = next(f for f in result.failures if f["code"] == "upstream_error")
        raise HTTPException(
            status_code=503,
            detail={"error": first["error"], "details": first.get("details"), "code": "connection_failed"},
        )

    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="business_insights",
        resource_id=business_profile_id or actor.organization_id,
        description=f"Synced insights for {result.synced_profiles} business locations",
        metadata={
            "period": period,
            "days_written": result.days_written,
            "failed_count": len(result.failures),
        },
    )
    await db.commit()

    return InsightSyncOut(
        period=period,
        start_date=start,
        end_date=end,
        synced_profiles=result.synced_profiles,
        days_written=result.days_written,
        failures=[InsightSyncFailureOut(**f) for f in result.failures],
    )
