import json
from datetime import date

import httpx
import pytest

from gbp_hub.services.google_business import GoogleBusinessClient, location_path, location_update_body, parse_daily_metrics
from gbp_hub.services.listing_sync import UpstreamError


def _client(handler, *, refresh_token="rt-1"):
    return GoogleBusinessClient(
        client_id="cid",
        client_secret="csecret",
        refresh_token=refresh_token,
        transport=httpx.MockTransport(handler),
    )


def _token_ok(request):
    return httpx.Response(200, json={"access_token": "at-1", "expires_in": 3600, "token_type": "Bearer"})


class GoogleStub:
    """Routes requests the way the Google endpoints would answer them."""

    def __init__(self, *, accounts=None, location_pages=None, reviews=None, token=_token_ok):
        self.accounts = accounts if accounts is not None else [{"name": "accounts/1"}]
        self.location_pages = location_pages or [{"locations": []}]
        self.reviews = reviews or {"reviews": []}
        self.token = token
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path

        if host == "oauth2.googleapis.com":
            return self.token(request)
        if request.headers.get("Authorization") != "Bearer at-1":
            return httpx.Response(401, json={"error": {"code": 401, "status": "UNAUTHENTICATED", "message": "bad token"}})

        if host == "mybusinessaccountmanagement.googleapis.com":
            return httpx.Response(200, json={"accounts": self.accounts})
        if host == "mybusinessbusinessinformation.googleapis.com":
            page = int(request.url.params.get("pageToken") or 0)
            return httpx.Response(200, json=self.location_pages[page])
        if host == "mybusiness.googleapis.com" and request.method == "GET":
            return httpx.Response(200, json=self.reviews)
        if host == "mybusiness.googleapis.com" and request.method == "PUT":
            body = json.loads(request.content)
            return httpx.Response(200, json={"comment": body["comment"], "updateTime": "2024-05-01T00:00:00Z"})
        return httpx.Response(404, json={"error": {"code": 404, "status": "NOT_FOUND", "message": path}})


@pytest.mark.asyncio
async def test_refresh_token_exchange_is_form_encoded_and_cached():
    stub = GoogleStub()
    client = _client(stub)
    try:
        await client.list_accounts()
        await client.list_accounts()
    finally:
        await client.aclose()

    token_calls = [r for r in stub.requests if r.url.host == "oauth2.googleapis.com"]
    assert len(token_calls) == 1
    body = token_calls[0].content.decode()
    assert "grant_type=refresh_token" in body
    assert "refresh_token=rt-1" in body


@pytest.mark.asyncio
async def test_fetch_listings_follows_pages_and_qualifies_names():
    stub = GoogleStub(location_pages=[
        {"locations": [{"name": "locations/10", "title": "Shop A"}], "nextPageToken": "1"},
        {"locations": [{"name": "locations/11", "title": "Shop B"}, {"name": "locations/12"}]},
    ])
    client = _client(stub)
    try:
        listings = await client.fetch_listings()
    finally:
        await client.aclose()

    assert [(l.external_id, l.display_name) for l in listings] == [
        ("accounts/1/locations/10", "Shop A"),
        ("accounts/1/locations/11", "Shop B"),
        ("accounts/1/locations/12", "locations/12"),
    ]
    location_calls = [r for r in stub.requests if r.url.host == "mybusinessbusinessinformation.googleapis.com"]
    assert location_calls[0].url.path == "/v1/accounts/1/locations"
    assert location_calls[0].url.params["readMask"] == "name,title"


@pytest.mark.asyncio
async def test_fetch_listings_without_accounts_is_upstream_error():
    client = _client(GoogleStub(accounts=[]))
    try:
        with pytest.raises(UpstreamError, match="No Google Business accounts found"):
            await client.fetch_listings()
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_check_connection_reports_account_count():
    client = _client(GoogleStub(accounts=[{"name": "accounts/1"}, {"name": "accounts/2"}]))
    try:
        check = await client.check_connection()
    finally:
        await client.aclose()

    assert check.ok
    assert check.message == "Connected successfully. Found 2 accounts."


@pytest.mark.asyncio
async def test_check_connection_invalid_grant_asks_for_reauth():
    def bad_token(request):
        return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."})

    client = _client(GoogleStub(token=bad_token))
    try:
        check = await client.check_connection()
    finally:
        await client.aclose()

    assert not check.ok
    assert check.message == "Invalid refresh token. Please re-authenticate with Google."


@pytest.mark.asyncio
async def test_check_connection_without_refresh_token_fails_without_network():
    stub = GoogleStub()
    client = _client(stub, refresh_token=None)
    try:
        check = await client.check_connection()
    finally:
        await client.aclose()

    assert not check.ok
    assert check.message.startswith("Connection failed:")
    assert stub.requests == []


@pytest.mark.asyncio
async def test_check_connection_network_error():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(unreachable)
    try:
        check = await client.check_connection()
    finally:
        await client.aclose()

    assert not check.ok
    assert check.message.startswith("Connection failed:")


@pytest.mark.asyncio
async def test_fetch_reviews_maps_reviewer_and_reply():
    stub = GoogleStub(reviews={"reviews": [
        {
            "name": "accounts/1/locations/10/reviews/r1",
            "reviewId": "r1",
            "reviewer": {"displayName": "Ana", "profilePhotoUrl": "https://img/ana"},
            "starRating": "FIVE",
            "comment": "Great bread",
            "createTime": "2024-04-30T10:00:00.123456789Z",
            "reviewReply": {"comment": "Thanks!", "updateTime": "2024-04-30T12:00:00Z"},
        },
        {
            "reviewId": "r2",
            "reviewer": {"isAnonymous": True},
            "starRating": "TWO",
            "createTime": "2024-04-29T10:00:00Z",
        },
    ]})
    client = _client(stub)
    try:
        reviews = await client.fetch_reviews("accounts/1/locations/10")
    finally:
        await client.aclose()

    first, second = reviews
    assert first.external_review_id == "accounts/1/locations/10/reviews/r1"
    assert first.reviewer_name == "Ana"
    assert first.reply_comment == "Thanks!"
    assert second.external_review_id == "accounts/1/locations/10/reviews/r2"
    assert second.reviewer_name == "Anonymous"
    assert second.comment is None
    assert second.reply_comment is None


@pytest.mark.asyncio
async def test_reply_to_review_puts_comment():
    stub = GoogleStub()
    client = _client(stub)
    try:
        await client.reply_to_review("accounts/1/locations/10/reviews/r1", "Thank you")
    finally:
        await client.aclose()

    put = [r for r in stub.requests if r.method == "PUT"][0]
    assert put.url.path == "/v4/accounts/1/locations/10/reviews/r1/reply"
    assert json.loads(put.content) == {"comment": "Thank you"}


@pytest.mark.asyncio
async def test_upstream_error_message_uses_google_envelope():
    def denied(request):
        if request.url.host == "oauth2.googleapis.com":
            return _token_ok(request)
        return httpx.Response(403, json={"error": {"code": 403, "status": "PERMISSION_DENIED", "message": "no access"}})

    client = _client(denied)
    try:
        with pytest.raises(UpstreamError, match="PERMISSION_DENIED: no access"):
            await client.list_accounts()
        check = await client.check_connection()
    finally:
        await client.aclose()

    assert check.message == "Access denied. Please check your API credentials and permissions."


def _series(metric, *points):
    return {
        "dailyMetric": metric,
        "timeSeries": {"datedValues": [
            {"date": {"year": 2024, "month": 5, "day": d}, **({"value": v} if v is not None else {})}
            for d, v in points
        ]},
    }


PERFORMANCE_PAYLOAD = {"multiDailyMetricTimeSeries": [{"dailyMetricTimeSeries": [
    _series("BUSINESS_IMPRESSIONS_DESKTOP_SEARCH", (1, "10"), (2, "4")),
    _series("BUSINESS_IMPRESSIONS_MOBILE_SEARCH", (1, "5"), (2, None)),
    _series("BUSINESS_IMPRESSIONS_MOBILE_MAPS", (1, "7")),
    _series("WEBSITE_CLICKS", (1, "2")),
    _series("CALL_CLICKS", (2, "1")),
    _series("BUSINESS_DIRECTION_REQUESTS", (1, "3")),
]}]}


def test_parse_daily_metrics_groups_by_day():
    days = parse_daily_metrics(PERFORMANCE_PAYLOAD)

    first, second = days
    assert first.day == date(2024, 5, 1)
    assert (first.search_views, first.maps_views, first.total_views) == (15, 7, 22)
    assert (first.website_clicks, first.phone_call_clicks, first.direction_requests) == (2, 0, 3)
    # a missing value is zero
    assert (second.day, second.search_views, second.phone_call_clicks) == (date(2024, 5, 2), 4, 1)
    assert parse_daily_metrics({}) == []


def test_location_path_and_update_body():
    assert location_path("accounts/1/locations/10") == "locations/10"
    assert location_path("locations/10") == "locations/10"

    body, mask = location_update_body({"name": "New Name", "phone_number": "+1 555", "categories": ["Bakery"]})
    assert body == {"title": "New Name", "phoneNumbers": {"primaryPhone": "+1 555"}}
    assert mask == "title,phoneNumbers.primaryPhone"


@pytest.mark.asyncio
async def test_fetch_daily_metrics_requests_every_metric_for_the_range():
    seen = []

    def handler(request):
        if request.url.host == "oauth2.googleapis.com":
            return _token_ok(request)
        seen.append(request)
        return httpx.Response(200, json=PERFORMANCE_PAYLOAD)

    client = _client(handler)
    try:
        days = await client.fetch_daily_metrics("accounts/1/locations/10", date(2024, 4, 1), date(2024, 5, 1))
    finally:
        await client.aclose()

    assert len(days) == 2
    req = seen[0]
    assert req.url.host == "businessprofileperformance.googleapis.com"
    assert req.url.path == "/v1/locations/10:fetchMultiDailyMetricsTimeSeries"
    assert "WEBSITE_CLICKS" in req.url.params.get_list("dailyMetrics")
    assert len(req.url.params.get_list("dailyMetrics")) == 7
    assert req.url.params["dailyRange.startDate.month"] == "4"
    assert req.url.params["dailyRange.endDate.day"] == "1"


@pytest.mark.asyncio
async def test_update_location_patches_with_mask():
    seen = []

    def handler(request):
        if request.url.host == "oauth2.googleapis.com":
            return _token_ok(request)
        seen.append(request)
        return httpx.Response(200, json={"name": "locations/10", "title": "New Name"})

    client = _client(handler)
    try:
        await client.update_location("accounts/1/locations/10", {"name": "New Name", "website": "https://bakery.test"})
        # nothing Google knows about: no request
        await client.update_location("accounts/1/locations/10", {"categories": ["Bakery"]})
    finally:
        await client.aclose()

    assert len(seen) == 1
    patch = seen[0]
    assert patch.method == "PATCH"
    assert patch.url.path == "/v1/locations/10"
    assert patch.url.params["updateMask"] == "title,websiteUri"
    assert json.loads(patch.content) == {"title": "New Name", "websiteUri": "https://bakery.test"}
