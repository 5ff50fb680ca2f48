from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.models.business_insight import BusinessInsight
from gbp_hub.models.business_profile import BusinessProfile
from gbp_hub.models.post import Post
from gbp_hub.models.review import Review
from gbp_hub.services.insights import insight_trends, period_range, summarize_insights
from gbp_hub.services.reviews import compute_review_stats

RECENT_REVIEW_LIMIT = 5
RECENT_REVIEW_CHARS = 150


def is_selected_for_analytics(profile: BusinessProfile) -> bool:
    return (profile.attributes or {}).get("selectedForAnalytics") is True


async def analytics_profiles(
    db: AsyncSession,
    organization_id: str,
    business_profile_id: str | None = None,
) -> list[BusinessProfile] | None:
    """
    One listing, or the listings selected for analytics (every listing when
    none is selected). None when `business_profile_id` is not in the
    organization.
    """
    stmt = select(BusinessProfile).where(BusinessProfile.organization_id == organization_id)
    if business_profile_id:
        stmt = stmt.where(BusinessProfile.id == business_profile_id)
    profiles = list((await db.execute(stmt.order_by(BusinessProfile.name.asc()))).scalars().all())

    if business_profile_id:
        return profiles or None

    selected = [p for p in profiles if is_selected_for_analytics(p)]
    return selected or profiles


def _truncate(text: str | None, limit: int) -> str:
    text = text or ""
    return text[:limit] + "..." if len(text) > limit else text


async def analytics_overview(
    db: AsyncSession,
    *,
    organization_id: str,
    business_profile_id: str | None = None,
    period: str = "month",
    today: date | None = None,
) -> dict | None:
    """
    Review stats, post counts and GBP performance metrics over the analytics
    listings. Insights are limited to `period`; reviews and posts are not.

    Returns None when `business_profile_id` is not in the organization.
    """
    profiles = await analytics_profiles(db, organization_id, business_profile_id)
    if profiles is None:
        return None

    start, end = period_range(period, today or datetime.now(timezone.utc).date())
    profile_ids = [p.id for p in profiles]

    reviews: list[Review] = []
    insights: list[BusinessInsight] = []
    post_counts: dict[str, int] = {}
    if profile_ids:
        reviews = list((await db.execute(
            select(Review).where(
                Review.organization_id == organization_id,
                Review.business_profile_id.in_(profile_ids),
            ).execution_options(populate_existing=True)
        )).scalars().all())
        insights = list((await db.execute(
            select(BusinessInsight).where(
                BusinessInsight.business_profile_id.in_(profile_ids),
                BusinessInsight.day >= start,
                BusinessInsight.day <= end,
            ).order_by(BusinessInsight.day.asc())
        )).scalars().all())
        post_counts = dict((await db.execute(
            select(Post.business_profile_id, func.count(Post.id))
            .where(Post.business_profile_id.in_(profile_ids), Post.status != "DELETED")
            .group_by(Post.business_profile_id)
        )).all())

    stats = compute_review_stats(reviews)
    names = {p.id: p.name for p in profiles}

    review_counts = Counter(r.business_profile_id for r in reviews)
    locations = []
    for p in profiles:
        own_reviews = [r for r in reviews if r.business_profile_id == p.id]
        own_insights = [i for i in insights if i.business_profile_id == p.id]
        locations.append({
            "business_profile_id": p.id,
            "name": p.name,
            "metrics": summarize_insights(own_insights),
            "total_reviews": review_counts[p.id],
            "average_rating": round(sum(r.rating for r in own_reviews) / len(own_reviews), 2) if own_reviews else 0.0,
            "total_posts": post_counts.get(p.id, 0),
        })

    recent = sorted(reviews, key=lambda r: r.published_at, reverse=True)[:RECENT_REVIEW_LIMIT]
    return {
        "period": period,
        "start_date": start,
        "end_date": end,
        "listing_count": len(profiles),
        "business_profile_ids": profile_ids,
        "total_reviews": stats["total"],
        "average_rating": stats["average_rating"],
        "response_rate": stats["response_rate"],
        "sentiment_breakdown": stats["sentiment_breakdown"],
        "rating_breakdown": stats["rating_breakdown"],
        "total_posts": sum(post_counts.values()),
        "metrics": summarize_insights(insights),
        "trends": insight_trends(insights),
        "locations": locations,
        "recent_reviews": [
            {
                "id": r.id,
                "business_profile_id": r.business_profile_id,
                "location_name": names.get(r.business_profile_id, ""),
                "reviewer_name": r.reviewer_name,
                "rating": r.rating,
                "content": _truncate(r.content, RECENT_REVIEW_CHARS),
                "published_at": r.published_at,
            }
            for r in recent
        ],
    }
