from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.models.business_profile import BusinessProfile
from gbp_hub.models.review import Review, ReviewResponse
from gbp_hub.services.google_business import ExternalReview
from gbp_hub.services.listing_sync import failure_code

log = logging.getLogger(__name__)

REVIEW_STATUSES = ("NEW", "RESPONDED", "FLAGGED", "ARCHIVED")
SENTIMENTS = ("POSITIVE", "NEUTRAL", "NEGATIVE")

_STAR_RATINGS = {"ONE": 1, "TWO": 2, "THREE": 3, "FOUR": 4, "FIVE": 5}


class ReviewSource(Protocol):
    async def fetch_reviews(self, location_name: str) -> list[ExternalReview]:
        ...


def star_rating_to_int(star_rating: str | None) -> int:
    # Unknown / unspecified ratings count as neutral
    return _STAR_RATINGS.get((star_rating or "").upper(), 3)


def determine_sentiment(rating: int) -> str:
    if rating >= 4:
        return "POSITIVE"
    if rating <= 2:
        return "NEGATIVE"
    return "NEUTRAL"


def parse_google_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    # RFC 3339 with "Z" and up to nanosecond precision
    v = value.replace("Z", "+00:00")
    if "." in v:
        head, _, tail = v.partition(".")
        digits = len(tail) - len(tail.lstrip("0123456789"))
        frac, tz = tail[:digits], tail[digits:]
        v = f"{head}.{frac[:6]}{tz}"
    try:
        ts = datetime.fromisoformat(v)
    except ValueError:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def compute_review_stats(reviews: Iterable[Review]) -> dict:
    reviews = list(reviews)
    if not reviews:
        return {
            "total": 0,
            "average_rating": 0.0,
            "response_rate": 0,
            "sentiment_breakdown": {"positive": 0, "neutral": 0, "negative": 0},
            "rating_breakdown": {str(i): 0 for i in range(1, 6)},
        }

    total = len(reviews)
    responded = sum(1 for r in reviews if r.response is not None or r.status == "RESPONDED")
    return {
        "total": total,
        "average_rating": round(sum(r.rating for r in reviews) / total, 2),
        "response_rate": round(responded / total * 100),
        "sentiment_breakdown": {
            "positive": sum(1 for r in reviews if r.sentiment == "POSITIVE"),
            "neutral": sum(1 for r in reviews if r.sentiment == "NEUTRAL"),
            "negative": sum(1 for r in reviews if r.sentiment == "NEGATIVE"),
        },
        "rating_breakdown": {str(i): sum(1 for r in reviews if r.rating == i) for i in range(1, 6)},
    }


@dataclass
class ReviewSyncResult:
    synced_count: int = 0
    new_count: int = 0
    failures: list[dict] = field(default_factory=list)


async def sync_reviews(
    db: AsyncSession,
    *,
    profile: BusinessProfile,
    source: ReviewSource,
    actor_id: str | None = None,
) -> ReviewSyncResult:
    """
    Upsert a listing's GBP reviews by external review id.

    Raises UpstreamError when the fetch fails (nothing written). Per-review
    failures roll back in their own SAVEPOINT and are returned in `failures`.
    Local moderation state (status, local responses) is never overwritten.
    """
    if not profile.external_id:
        raise ValueError(f"listing {profile.id} is not linked to Google")
    incoming = await source.fetch_reviews(profile.external_id)

    existing_rows = (await db.execute(
        select(Review)
        .where(Review.business_profile_id == profile.id)
        .execution_options(populate_existing=True)
    )).scalars().all()
    existing = {r.external_review_id: r for r in existing_rows}

    result = ReviewSyncResult()
    for ext in incoming:
        try:
            async with db.begin_nested():
                rating = star_rating_to_int(ext.star_rating)
                review = existing.get(ext.external_review_id)
                is_new = review is None
                if is_new:
                    review = Review(
                        organization_id=profile.organization_id,
                        business_profile_id=profile.id,
                        external_review_id=ext.external_review_id,
                        status="RESPONDED" if ext.reply_comment else "NEW",
                        created_by=actor_id,
                    )
                    db.add(review)
                review.reviewer_name = ext.reviewer_name
                review.reviewer_photo_url = ext.reviewer_photo_url
                review.rating = rating
                review.sentiment = determine_sentiment(rating)
                review.content = ext.comment
                review.published_at = parse_google_timestamp(ext.create_time) or datetime.now(timezone.utc)
                review.updated_by = actor_id
                await db.flush()

                if ext.reply_comment and (is_new or review.response is None):
                    db.add(ReviewResponse(
                        review_id=review.id,
                        content=ext.reply_comment,
                        published_at=parse_google_timestamp(ext.reply_update_time),
                        created_by=actor_id,
                        updated_by=actor_id,
                    ))
                    await db.flush()
            result.synced_count += 1
            if is_new:
                result.new_count += 1
        except Exception as e:
            log.exception("review sync %s: failed for %s", profile.id, ext.external_review_id)
            result.failures.append({
                "external_review_id": ext.external_review_id,
                "error": "Failed to save review",
                "code": failure_code(e),
            })

    return result
