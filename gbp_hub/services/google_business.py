"""
Google Business Profile API client.

Built per request (or per worker task) from the organization's stored refresh
token and closed afterwards. Implements the ListingSource protocol used by the
listing sync driver, plus the review, location-edit and daily performance
calls used by the rest of the dashboard.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Any

import httpx

from gbp_hub.services.http_client import ApiHttpClient, HttpResult
from gbp_hub.services.listing_sync import ConnectionCheck, UpstreamError
from gbp_hub.services.reconciler import ExternalListing
from gbp_hub.services.redaction import redact_payload

log = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
ACCOUNTS_URL = "https://mybusinessaccountmanagement.googleapis.com/v1/accounts"
BUSINESS_INFO_BASE = "https://mybusinessbusinessinformation.googleapis.com/v1"
REVIEWS_BASE = "https://mybusiness.googleapis.com/v4"
PERFORMANCE_BASE = "https://businessprofileperformance.googleapis.com/v1"

LOCATION_READ_MASK = "name,title"

SEARCH_IMPRESSION_METRICS = ("BUSINESS_IMPRESSIONS_DESKTOP_SEARCH", "BUSINESS_IMPRESSIONS_MOBILE_SEARCH")
MAPS_IMPRESSION_METRICS = ("BUSINESS_IMPRESSIONS_DESKTOP_MAPS", "BUSINESS_IMPRESSIONS_MOBILE_MAPS")
ACTION_METRICS = {
    "WEBSITE_CLICKS": "website_clicks",
    "CALL_CLICKS": "phone_call_clicks",
    "BUSINESS_DIRECTION_REQUESTS": "direction_requests",
}
DAILY_METRICS = SEARCH_IMPRESSION_METRICS + MAPS_IMPRESSION_METRICS + tuple(ACTION_METRICS)

# local field -> (Business Information field, update mask path)
LOCATION_UPDATE_FIELDS = {
    "name": ("title", "title"),
    "description": ("profile", "profile.description"),
    "phone_number": ("phoneNumbers", "phoneNumbers.primaryPhone"),
    "website": ("websiteUri", "websiteUri"),
    "address": ("storefrontAddress", "storefrontAddress"),
}


@dataclass(frozen=True)
class ExternalReview:
    external_review_id: str
    reviewer_name: str
    reviewer_photo_url: str | None
    star_rating: str
    comment: str | None
    create_time: str
    update_time: str | None = None
    reply_comment: str | None = None
    reply_update_time: str | None = None


@dataclass(frozen=True)
class DailyInsight:
    day: date
    search_views: int = 0
    maps_views: int = 0
    website_clicks: int = 0
    phone_call_clicks: int = 0
    direction_requests: int = 0

    @property
    def total_views(self) -> int:
        return self.search_views + self.maps_views


def location_path(external_id: str) -> str:
    """Bare `locations/10` form of `accounts/1/locations/10`; the v1 APIs take that form."""
    idx = external_id.find("locations/")
    return external_id[idx:] if idx >= 0 else external_id


def parse_daily_metrics(payload: dict[str, Any]) -> list[DailyInsight]:
    """
    Flatten a fetchMultiDailyMetricsTimeSeries response into one row per day.

    Days Google reports without a value count as zero.
    """
    per_day: dict[date, dict[str, int]] = {}
    for multi in payload.get("multiDailyMetricTimeSeries") or []:
        for series in multi.get("dailyMetricTimeSeries") or []:
            metric = series.get("dailyMetric")
            for dv in (series.get("timeSeries") or {}).get("datedValues") or []:
                d = dv.get("date") or {}
                try:
                    day = date(int(d["year"]), int(d["month"]), int(d["day"]))
                except (KeyError, TypeError, ValueError):
                    continue
                value = int(dv.get("value") or 0)
                row = per_day.setdefault(day, {})
                if metric in SEARCH_IMPRESSION_METRICS:
                    row["search_views"] = row.get("search_views", 0) + value
                elif metric in MAPS_IMPRESSION_METRICS:
                    row["maps_views"] = row.get("maps_views", 0) + value
                elif metric in ACTION_METRICS:
                    key = ACTION_METRICS[metric]
                    row[key] = row.get(key, 0) + value
    return [DailyInsight(day=day, **counts) for day, counts in sorted(per_day.items())]


def location_update_body(changes: dict[str, Any]) -> tuple[dict[str, Any], str]:
    """Business Information `Location` patch body and updateMask for local profile changes."""
    body: dict[str, Any] = {}
    mask: list[str] = []
    for local_field, value in changes.items():
        if local_field not in LOCATION_UPDATE_FIELDS:
            continue
        remote_field, mask_path = LOCATION_UPDATE_FIELDS[local_field]
        if local_field == "description":
            body[remote_field] = {"description": value or ""}
        elif local_field == "phone_number":
            body[remote_field] = {"primaryPhone": value or ""}
        else:
            body[remote_field] = value
        mask.append(mask_path)
    return body, ",".join(mask)


def _error_text(res: HttpResult) -> str:
    detail = res.detail or {}
    err = detail.get("error")
    if isinstance(err, dict):
        # Google JSON error envelope: {"error": {"code", "message", "status"}}
        return f"{err.get('status') or res.error_code}: {err.get('message') or ''}".strip()
    if isinstance(err, str):
        desc = detail.get("error_description")
        return f"{err}: {desc}" if desc else err
    return res.error_message or res.error_code or "unknown error"


class GoogleBusinessClient:
    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        refresh_token: str | None,
        timeout_seconds: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._http = ApiHttpClient(timeout_seconds=timeout_seconds, transport=transport)
        self._access_token: str | None = None
        self._access_token_expires_at = 0.0

    async def aclose(self) -> None:
        await self._http.aclose()

    # auth

    async def _get_access_token(self) -> str:
        if self._access_token and time.monotonic() < self._access_token_expires_at:
            return self._access_token

        if not self._refresh_token:
            raise UpstreamError("No Google refresh token configured. Please connect a Google account.")
        if not self._client_id or not self._client_secret:
            raise UpstreamError("Google API client credentials are not configured.")

        res = await self._http.post_form(
            url=TOKEN_URL,
            form_body={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": self._refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if not res.ok:
            log.warning("google token refresh failed: %s", redact_payload(res.detail))
            raise UpstreamError(_error_text(res))

        token = res.detail.get("access_token")
        if not token:
            raise UpstreamError("Token endpoint returned no access_token")
        expires_in = int(res.detail.get("expires_in") or 3600)
        self._access_token = token
        # refresh a minute early
        self._access_token_expires_at = time.monotonic() + max(0, expires_in - 60)
        return token

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        token = await self._get_access_token()
        res = await self._http.get_json(url=url, headers={"Authorization": f"Bearer {token}"}, params=params)
        if not res.ok:
            log.warning("google GET %s failed (%s): %s", url, res.status_code, redact_payload(res.detail))
            raise UpstreamError(_error_text(res))
        return res.detail

    async def _paginate(self, url: str, key: str, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page_params = dict(params or {})
        while True:
            data = await self._get(url, page_params)
            items.extend(data.get(key) or [])
            next_token = data.get("nextPageToken")
            if not next_token:
                return items
            page_params["pageToken"] = next_token

    # ListingSource

    async def check_connection(self) -> ConnectionCheck:
        try:
            accounts = await self.list_accounts()
        except UpstreamError as e:
            msg = str(e)
            if "invalid_grant" in msg:
                return ConnectionCheck(ok=False, message="Invalid refresh token. Please re-authenticate with Google.")
            if "access_denied" in msg or "PERMISSION_DENIED" in msg:
                return ConnectionCheck(ok=False, message="Access denied. Please check your API credentials and permissions.")
            return ConnectionCheck(ok=False, message=f"Connection failed: {msg}")
        return ConnectionCheck(ok=True, message=f"Connected successfully. Found {len(accounts)} accounts.")

    async def list_accounts(self) -> list[dict[str, Any]]:
        return await self._paginate(ACCOUNTS_URL, "accounts")

    async def fetch_listings(self) -> list[ExternalListing]:
        accounts = await self.list_accounts()
        if not accounts:
            raise UpstreamError("No Google Business accounts found")

        listings: list[ExternalListing] = []
        for account in accounts:
            account_name = account.get("name")
            if not account_name:
                continue
            locations = await self._paginate(
                f"{BUSINESS_INFO_BASE}/{account_name}/locations",
                "locations",
                {"readMask": LOCATION_READ_MASK, "pageSize": "100"},
            )
            for loc in locations:
                loc_name = loc.get("name")
                if not loc_name:
                    continue
                listings.append(ExternalListing(
                    # v4 review endpoints want the account-qualified name
                    external_id=f"{account_name}/{loc_name}",
                    display_name=loc.get("title") or loc_name,
                ))
        return listings

    # reviews

    async def fetch_reviews(self, location_name: str) -> list[ExternalReview]:
        raw = await self._paginate(f"{REVIEWS_BASE}/{location_name}/reviews", "reviews", {"pageSize": "50"})
        reviews: list[ExternalReview] = []
        for r in raw:
            reviewer = r.get("reviewer") or {}
            reply = r.get("reviewReply") or {}
            reviews.append(ExternalReview(
                external_review_id=r.get("name") or f"{location_name}/reviews/{r.get('reviewId')}",
                reviewer_name=reviewer.get("displayName") or ("Anonymous" if reviewer.get("isAnonymous") else "Google user"),
                reviewer_photo_url=reviewer.get("profilePhotoUrl"),
                star_rating=r.get("starRating") or "STAR_RATING_UNSPECIFIED",
                comment=r.get("comment"),
                create_time=r.get("createTime"),
                update_time=r.get("updateTime"),
                reply_comment=reply.get("comment"),
                reply_update_time=reply.get("updateTime"),
            ))
        return reviews

    async def reply_to_review(self, review_name: str, comment: str) -> None:
        token = await self._get_access_token()
        res = await self._http.put_json(
            url=f"{REVIEWS_BASE}/{review_name}/reply",
            headers={"Authorization": f"Bearer {token}"},
            json_body={"comment": comment},
        )
        if not res.ok:
            log.warning("google review reply failed (%s): %s", res.status_code, redact_payload(res.detail))
            raise UpstreamError(_error_text(res))

    # locations

    async def update_location(self, location_name: str, changes: dict[str, Any]) -> None:
        body, mask = location_update_body(changes)
        if not mask:
            return
        token = await self._get_access_token()
        res = await self._http.patch_json(
            url=f"{BUSINESS_INFO_BASE}/{location_path(location_name)}",
            headers={"Authorization": f"Bearer {token}"},
            params={"updateMask": mask},
            json_body=body,
        )
        if not res.ok:
            log.warning("google location update failed (%s): %s", res.status_code, redact_payload(res.detail))
            raise UpstreamError(_error_text(res))

    # performance

    async def fetch_daily_metrics(self, location_name: str, start: date, end: date) -> list[DailyInsight]:
        params = {
            "dailyMetrics": list(DAILY_METRICS),
            "dailyRange.startDate.year": str(start.year),
            "dailyRange.startDate.month": str(start.month),
            "dailyRange.startDate.day": str(start.day),
            "dailyRange.endDate.year": str(end.year),
            "dailyRange.endDate.month": str(end.month),
            "dailyRange.endDate.day": str(end.day),
        }
        data = await self._get(
            f"{PERFORMANCE_BASE}/{location_path(location_name)}:fetchMultiDailyMetricsTimeSeries",
            params,
        )
        return parse_daily_metrics(data)
