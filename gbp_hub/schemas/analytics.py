from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

AnalyticsPeriod = Literal["week", "month", "quarter"]


class InsightMetricsOut(BaseModel):
    total_views: int = 0
    search_views: int = 0
    maps_views: int = 0
    website_clicks: int = 0
    phone_call_clicks: int = 0
    direction_requests: int = 0


class TrendPointOut(BaseModel):
    day: date
    views: int
    searches: int
    actions: int


class LocationComparisonOut(BaseModel):
    business_profile_id: str
    name: str
    metrics: InsightMetricsOut
    total_reviews: int
    average_rating: float
    total_posts: int


class RecentReviewOut(BaseModel):
    id: str
    business_profile_id: str
    location_name: str
    reviewer_name: str
    rating: int
    content: str
    published_at: datetime


class AnalyticsOverviewOut(BaseModel):
    period: AnalyticsPeriod
    start_date: date
    end_date: date
    listing_count: int
    business_profile_ids: list[str]
    total_reviews: int
    average_rating: float
    response_rate: int
    sentiment_breakdown: dict[str, int]
    rating_breakdown: dict[str, int]
    total_posts: int
    metrics: InsightMetricsOut
    trends: list[TrendPointOut] = Field(default_factory=list)
    locations: list[LocationComparisonOut] = Field(default_factory=list)
    recent_reviews: list[RecentReviewOut] = Field(default_factory=list)


class InsightSyncFailureOut(BaseModel):
    business_profile_id: str
    error: str
    code: str
    details: str | None = None


class InsightSyncOut(BaseModel):
    success: bool = True
    period: AnalyticsPeriod
    start_date: date
    end_date: date
    synced_profiles: int
    days_written: int
    failures: list[InsightSyncFailureOut] = Field(default_factory=list)
