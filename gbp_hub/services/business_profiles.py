from __future__ import annotations

import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.models.business_insight import BusinessInsight
from gbp_hub.models.business_profile import BusinessProfile
from gbp_hub.models.post import Post
from gbp_hub.models.post_template import PostTemplate
from gbp_hub.models.response_template import ResponseTemplate
from gbp_hub.models.review import Review, ReviewResponse

log = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "description", "phone_number", "website", "address", "categories")


def normalize_profile_changes(changes: dict) -> dict:
    """
    Strip strings, turn blank optional strings into None and drop duplicate
    categories. Raises ValueError for a blank name.
    """
    out: dict = {}
    for field, value in changes.items():
        if field not in EDITABLE_FIELDS:
            continue
        if field == "name":
            value = (value or "").strip()
            if not value:
                raise ValueError("Name cannot be empty")
        elif field in ("description", "phone_number", "website"):
            value = (value or "").strip() or None
        elif field == "categories":
            cleaned: list[str] = []
            for c in value or []:
                c = c.strip()
                if c and c not in cleaned:
                    cleaned.append(c)
            value = cleaned
        out[field] = value
    return out


async def count_related(db: AsyncSession, profile_id: str) -> dict:
    async def _count(model) -> int:
        return (await db.execute(
            select(func.count(model.id)).where(model.business_profile_id == profile_id)
        )).scalar_one()

    latest = (await db.execute(
        select(func.max(BusinessInsight.day)).where(BusinessInsight.business_profile_id == profile_id)
    )).scalar_one()
    return {
        "review_count": await _count(Review),
        "post_count": await _count(Post),
        "response_template_count": await _count(ResponseTemplate),
        "post_template_count": await _count(PostTemplate),
        "latest_insight_day": latest,
    }


async def delete_business_profile(db: AsyncSession, profile: BusinessProfile) -> dict[str, int]:
    """
    Remove a listing and everything hanging off it. Templates used elsewhere
    are unlinked from those rows first. The caller commits.
    """
    pid = profile.id
    review_ids = select(Review.id).where(Review.business_profile_id == pid)
    response_template_ids = select(ResponseTemplate.id).where(ResponseTemplate.business_profile_id == pid)
    post_template_ids = select(PostTemplate.id).where(PostTemplate.business_profile_id == pid)

    await db.execute(
        update(ReviewResponse)
        .where(ReviewResponse.template_id.in_(response_template_ids))
        .values(template_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(Post)
        .where(Post.template_id.in_(post_template_ids))
        .values(template_id=None)
        .execution_options(synchronize_session=False)
    )

    counts: dict[str, int] = {}
    steps = (
        ("review_responses", delete(ReviewResponse).where(ReviewResponse.review_id.in_(review_ids))),
        ("reviews", delete(Review).where(Review.business_profile_id == pid)),
        ("posts", delete(Post).where(Post.business_profile_id == pid)),
        ("post_templates", delete(PostTemplate).where(PostTemplate.business_profile_id == pid)),
        ("response_templates", delete(ResponseTemplate).where(ResponseTemplate.business_profile_id == pid)),
        ("business_insights", delete(BusinessInsight).where(BusinessInsight.business_profile_id == pid)),
    )
    for name, stmt in steps:
        res = await db.execute(stmt.execution_options(synchronize_session=False))
        counts[name] = res.rowcount or 0

    await db.delete(profile)
    await db.flush()
    log.info("deleted business profile %s: %s", pid, counts)
    return counts
