from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from gbp_hub.models.business_insight import BusinessInsight
from gbp_hub.services.google_business import DailyInsight
from gbp_hub.services.listing_sync import UpstreamError

pytestmark = pytest.mark.asyncio(loop_scope="session")

LOCATION = "accounts/1/locations/10"


def _days_ago(n):
    return datetime.now(timezone.utc).date() - timedelta(days=n)


async def test_insight_sync_feeds_overview_metrics(client, db_session, seed_listing, fake_google):
    headers = {"X-API-Key": seed_listing["plain_key"]}
    fake_google.daily_metrics = {LOCATION: [
        DailyInsight(day=_days_ago(2), search_views=10, maps_views=5, website_clicks=2),
        DailyInsight(day=_days_ago(1), search_views=4, maps_views=1, phone_call_clicks=1, direction_requests=3),
        DailyInsight(day=_days_ago(60), search_views=100),
    ]}

    r = await client.post("/v1/analytics/insights/sync", headers=headers, params={"period": "month"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["synced_profiles"] == 1
    assert body["days_written"] == 2
    assert body["failures"] == []

    # a second sync upserts the same days
    fake_google.daily_metrics[LOCATION][1] = DailyInsight(day=_days_ago(1), search_views=6, maps_views=1)
    await client.post("/v1/analytics/insights/sync", headers=headers)
    rows = (await db_session.execute(
        select(BusinessInsight).where(BusinessInsight.business_profile_id == seed_listing["listing_id"])
        .execution_options(populate_existing=True)
    )).scalars().all()
    assert len(rows) == 2

    overview = (await client.get("/v1/analytics/overview", headers=headers, params={"period": "week"})).json()
    assert overview["metrics"] == {
        "total_views": 22,
        "search_views": 16,
        "maps_views": 6,
        "website_clicks": 2,
        "phone_call_clicks": 0,
        "direction_requests": 0,
    }
    assert [p["views"] for p in overview["trends"]] == [15, 7]
    assert overview["locations"][0]["metrics"]["total_views"] == 22


async def test_insight_sync_upstream_failure_is_503(client, db_session, seed_listing, fake_google):
    fake_google.metrics_error = UpstreamError("PERMISSION_DENIED: no access")

    r = await client.post("/v1/analytics/insights/sync", headers={"X-API-Key": seed_listing["plain_key"]})
    assert r.status_code == 503
    assert r.json()["detail"]["code"] == "connection_failed"
    rows = (await db_session.execute(select(BusinessInsight))).scalars().all()
    assert rows == []


async def test_insight_sync_unknown_listing_is_404(client, seed_listing, fake_google):
    r = await client.post(
        "/v1/analytics/insights/sync",
        headers={"X-API-Key": seed_listing["plain_key"]},
        params={"business_profile_id": "bpr_nope"},
    )
    assert r.status_code == 404


async def test_overview_lists_recent_reviews_and_posts(client, seed_listing, fake_google):
    headers = {"X-API-Key": seed_listing["plain_key"]}
    await client.post("/v1/posts", headers=headers, json={
        "business_profile_id": seed_listing["listing_id"], "content": "Open late on Friday",
    })

    overview = (await client.get("/v1/analytics/overview", headers=headers)).json()
    assert overview["period"] == "month"
    assert overview["total_posts"] == 1
    assert overview["locations"][0]["total_posts"] == 1
    assert overview["recent_reviews"] == []
    assert overview["trends"] == []
