import pytest
from sqlalchemy import select, func

from gbp_hub.models.activity_log import ActivityLog
from gbp_hub.models.business_profile import BusinessProfile
from gbp_hub.models.sync_run import SyncRun
from gbp_hub.services.listing_sync import UpstreamError
from gbp_hub.services.reconciler import ExternalListing

pytestmark = pytest.mark.asyncio(loop_scope="session")


async def test_sync_creates_listings_and_records_run(client, db_session, seed_org_admin, fake_google):
    org_id = seed_org_admin["organization_id"]
    headers = {"X-API-Key": seed_org_admin["plain_key"]}
    fake_google.listings = [
        ExternalListing("accounts/1/locations/20", "Shop B"),
        ExternalListing("accounts/1/locations/10", "Shop A"),
    ]

    r = await client.post("/v1/listings/sync", headers=headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Successfully synced 2 business locations"
    assert (body["total_locations"], body["synced_count"], body["new_count"], body["existing_count"]) == (2, 2, 2, 0)
    assert [p["name"] for p in body["business_profiles"]] == ["Shop A", "Shop B"]
    assert all(p["status"] == "ACTIVE" and p["is_verified"] for p in body["business_profiles"])

    runs = (await db_session.execute(select(SyncRun).where(SyncRun.organization_id == org_id))).scalars().all()
    assert len(runs) == 1
    assert runs[0].status == "success"
    assert runs[0].trigger == "api"

    logged = (await db_session.execute(
        select(func.count()).select_from(ActivityLog).where(
            ActivityLog.organization_id == org_id, ActivityLog.resource == "business_profiles",
        )
    )).scalar_one()
    assert logged == 1

    # second pass over the same fetch creates nothing
    r2 = await client.post("/v1/listings/sync", headers=headers)
    assert r2.status_code == 200
    assert r2.json()["new_count"] == 0
    assert r2.json()["existing_count"] == 2
    assert all(p["status"] == "VERIFIED" for p in r2.json()["business_profiles"])

    count = (await db_session.execute(
        select(func.count()).select_from(BusinessProfile).where(BusinessProfile.organization_id == org_id)
    )).scalar_one()
    assert count == 2


async def test_sync_updates_existing_listing_and_keeps_attributes(client, db_session, seed_listing, fake_google):
    headers = {"X-API-Key": seed_listing["plain_key"]}
    fake_google.listings = [ExternalListing("accounts/1/locations/10", "Main Street Bakery")]

    r = await client.post("/v1/listings/sync", headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["new_count"] == 0
    assert r.json()["existing_count"] == 1

    profile = (await db_session.execute(
        select(BusinessProfile)
        .where(BusinessProfile.id == seed_listing["listing_id"])
        .execution_options(populate_existing=True)
    )).scalar_one()
    assert profile.status == "VERIFIED"
    assert profile.is_verified is True
    assert profile.last_synced_at is not None
    assert profile.attributes == {"color": "blue"}


async def test_sync_connection_failure_is_503_and_writes_nothing(client, db_session, seed_org_admin, fake_google):
    org_id = seed_org_admin["organization_id"]
    fake_google.connected = False
    fake_google.listings = [ExternalListing("accounts/1/locations/10", "Shop A")]

    r = await client.post("/v1/listings/sync", headers={"X-API-Key": seed_org_admin["plain_key"]})
    assert r.status_code == 503
    detail = r.json()["detail"]
    assert detail["code"] == "connection_failed"
    assert detail["error"] == "Google Business Profile API connection failed"

    count = (await db_session.execute(
        select(func.count()).select_from(BusinessProfile).where(BusinessProfile.organization_id == org_id)
    )).scalar_one()
    assert count == 0

    runs = await client.get("/v1/listings/sync-runs", headers={"X-API-Key": seed_org_admin["plain_key"]})
    assert runs.status_code == 200
    assert runs.json()[0]["status"] == "connection_failed"


async def test_sync_fetch_failure_is_503(client, seed_org_admin, fake_google):
    async def broken_fetch():
        raise UpstreamError("No Google Business accounts found")

    fake_google.fetch_listings = broken_fetch

    r = await client.post("/v1/listings/sync", headers={"X-API-Key": seed_org_admin["plain_key"]})
    assert r.status_code == 503
    assert r.json()["detail"]["details"] == "No Google Business accounts found"


async def test_sync_requires_api_key(client, fake_google):
    r = await client.post("/v1/listings/sync")
    assert r.status_code == 401


async def test_sync_leaves_other_organizations_alone(client, db_session, seed_listing, seed_other_org, fake_google):
    # same external id seen from another organization's Google account
    fake_google.listings = [ExternalListing("accounts/1/locations/10", "Main Street Bakery")]

    r = await client.post("/v1/listings/sync", headers={"X-API-Key": seed_other_org["plain_key"]})
    assert r.status_code == 200
    assert r.json()["new_count"] == 1

    original = (await db_session.execute(
        select(BusinessProfile)
        .where(BusinessProfile.id == seed_listing["listing_id"])
        .execution_options(populate_existing=True)
    )).scalar_one()
    assert original.organization_id == seed_listing["organization_id"]
    assert original.status == "ACTIVE"
    assert original.last_synced_at is None


async def test_list_listings_reports_selection(client, seed_listing):
    headers = {"X-API-Key": seed_listing["plain_key"]}

    r = await client.get("/v1/listings", headers=headers)
    assert r.status_code == 200
    assert r.json()[0]["is_selected"] is False

    t = await client.post(f"/v1/listings/{seed_listing['listing_id']}/toggle", headers=headers,
                          json={"toggle_type": "analytics"})
    assert t.status_code == 200
    assert t.json()["is_selected"] is True

    r = await client.get("/v1/listings", headers=headers)
    assert r.json()[0]["is_selected"] is True


async def test_toggle_analytics_preserves_other_attributes(client, db_session, seed_listing):
    headers = {"X-API-Key": seed_listing["plain_key"]}
    url = f"/v1/listings/{seed_listing['listing_id']}/toggle"

    await client.post(url, headers=headers, json={"toggle_type": "analytics"})
    r = await client.post(url, headers=headers, json={"toggle_type": "analytics"})
    assert r.json()["is_selected"] is False

    profile = await db_session.get(BusinessProfile, seed_listing["listing_id"])
    assert profile.attributes == {"color": "blue", "selectedForAnalytics": False}


async def test_toggle_status_flips_active_and_suspended(client, seed_listing):
    headers = {"X-API-Key": seed_listing["plain_key"]}
    url = f"/v1/listings/{seed_listing['listing_id']}/toggle"

    r = await client.post(url, headers=headers, json={"toggle_type": "status"})
    assert r.status_code == 200
    assert r.json()["status"] == "SUSPENDED"

    r = await client.post(url, headers=headers, json={"toggle_type": "status"})
    assert r.json()["status"] == "ACTIVE"


async def test_toggle_other_organization_listing_is_404(client, seed_listing, seed_other_org):
    r = await client.post(
        f"/v1/listings/{seed_listing['listing_id']}/toggle",
        headers={"X-API-Key": seed_other_org["plain_key"]},
        json={"toggle_type": "status"},
    )
    assert r.status_code == 404


async def test_listing_detail_counts_related_rows(client, seed_listing):
    headers = {"X-API-Key": seed_listing["plain_key"]}
    await client.post("/v1/posts", headers=headers, json={
        "business_profile_id": seed_listing["listing_id"], "content": "Hello",
    })

    r = await client.get(f"/v1/listings/{seed_listing['listing_id']}", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["attributes"] == {"color": "blue"}
    assert body["post_count"] == 1
    assert body["review_count"] == 0
    assert body["latest_insight_day"] is None


async def test_update_listing_stores_cleaned_fields(client, seed_listing, fake_google):
    headers = {"X-API-Key": seed_listing["plain_key"]}

    r = await client.patch(f"/v1/listings/{seed_listing['listing_id']}", headers=headers, json={
        "description": "  Fresh bread daily ",
        "website": "  ",
        "categories": ["Bakery", " Bakery", "Cafe"],
    })
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["description"] == "Fresh bread daily"
    assert body["website"] is None
    assert body["categories"] == ["Bakery", "Cafe"]
    assert body["name"] == "Main Street Bakery"
    assert fake_google.location_updates == []

    blank = await client.patch(f"/v1/listings/{seed_listing['listing_id']}", headers=headers, json={"name": " "})
    assert blank.status_code == 400


async def test_update_listing_pushes_to_google_first(client, db_session, seed_listing, fake_google):
    headers = {"X-API-Key": seed_listing["plain_key"]}

    r = await client.patch(f"/v1/listings/{seed_listing['listing_id']}", headers=headers, json={
        "phone_number": "+1 555 0100", "push_to_google": True,
    })
    assert r.status_code == 200
    assert fake_google.location_updates == [("accounts/1/locations/10", {"phone_number": "+1 555 0100"})]

    fake_google.location_error = UpstreamError("PERMISSION_DENIED: no access")
    failed = await client.patch(f"/v1/listings/{seed_listing['listing_id']}", headers=headers, json={
        "phone_number": "+1 555 0199", "push_to_google": True,
    })
    assert failed.status_code == 503
    assert failed.json()["detail"]["code"] == "connection_failed"

    profile = (await db_session.execute(
        select(BusinessProfile).where(BusinessProfile.id == seed_listing["listing_id"])
        .execution_options(populate_existing=True)
    )).scalar_one()
    assert profile.phone_number == "+1 555 0100"


async def test_push_of_unlinked_listing_is_400(client, db_session, seed_org_admin, fake_google):
    profile = BusinessProfile(organization_id=seed_org_admin["organization_id"], name="Local Only")
    db_session.add(profile)
    await db_session.commit()

    r = await client.patch(f"/v1/listings/{profile.id}", headers={"X-API-Key": seed_org_admin["plain_key"]},
                           json={"website": "https://local.test", "push_to_google": True})
    assert r.status_code == 400
    assert fake_google.location_updates == []


async def test_delete_listing_requires_admin_and_removes_related_rows(client, db_session, seed_listing, seed_member):
    listing_id = seed_listing["listing_id"]
    admin = {"X-API-Key": seed_listing["plain_key"]}
    await client.post("/v1/templates", headers=admin, json={
        "business_profile_id": listing_id, "name": "Thanks", "content": "Thank you!",
    })
    await client.post("/v1/posts", headers=admin, json={"business_profile_id": listing_id, "content": "Hello"})

    forbidden = await client.delete(f"/v1/listings/{listing_id}", headers={"X-API-Key": seed_member["member_key"]})
    assert forbidden.status_code == 403

    r = await client.delete(f"/v1/listings/{listing_id}", headers=admin)
    assert r.status_code == 200
    assert (await client.get(f"/v1/listings/{listing_id}", headers=admin)).status_code == 404
    assert (await client.get("/v1/templates", headers=admin)).json() == []
    assert (await client.get("/v1/post-templates", headers=admin)).json() == []
