from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ReviewStatus = Literal["NEW", "RESPONDED", "FLAGGED", "ARCHIVED"]


class ReviewResponseOut(BaseModel):
    id: str
    content: str
    published_at: datetime | None
    user_id: str | None
    template_id: str | None
    created_at: datetime


class ReviewOut(BaseModel):
    id: str
    business_profile_id: str
    external_review_id: str
    reviewer_name: str
    reviewer_photo_url: str | None
    rating: int
    content: str | None
    published_at: datetime
    status: str
    sentiment: str
    is_verified: bool
    response: ReviewResponseOut | None = None


class ReviewStats(BaseModel):
    total: int
    average_rating: float
    response_rate: int
    sentiment_breakdown: dict[str, int]
    rating_breakdown: dict[str, int]


class ReviewListOut(BaseModel):
    success: bool = True
    reviews: list[ReviewOut]
    stats: ReviewStats
    count: int


class ReviewStatusUpdate(BaseModel):
    status: ReviewStatus


class ReviewResponseCreate(BaseModel):
    content: str = Field(max_length=4096)
    template_id: str | None = None
    # also post the reply to Google
    publish: bool = False


class ReviewSyncOut(BaseModel):
    success: bool = True
    message: str
    business_profile: str
    synced_count: int
    new_count: int
    failed_count: int
    last_synced_at: datetime
