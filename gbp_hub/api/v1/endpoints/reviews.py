import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.api.v1.endpoints.listings import get_profile_or_404
from gbp_hub.core.db import get_db
from gbp_hub.models.business_profile import BusinessProfile
from gbp_hub.models.response_template import ResponseTemplate
from gbp_hub.models.review import Review, ReviewResponse
from gbp_hub.schemas.review import (
    ReviewListOut,
    ReviewOut,
    ReviewResponseCreate,
    ReviewResponseOut,
    ReviewStats,
    ReviewStatusUpdate,
    ReviewSyncOut,
)
from gbp_hub.services.activity import log_activity
from gbp_hub.services.auth import Actor, get_actor
from gbp_hub.services.google_business import GoogleBusinessClient
from gbp_hub.services.google_credentials import get_google_client
from gbp_hub.services.listing_sync import UpstreamError
from gbp_hub.services.reviews import REVIEW_STATUSES, SENTIMENTS, compute_review_stats, sync_reviews

log = logging.getLogger(__name__)
router = APIRouter()


def _response_out(r: ReviewResponse) -> ReviewResponseOut:
    return ReviewResponseOut(
        id=r.id,
        content=r.content,
        published_at=r.published_at,
        user_id=r.user_id,
        template_id=r.template_id,
        created_at=r.created_at,
    )


def _review_out(r: Review) -> ReviewOut:
    return ReviewOut(
        id=r.id,
        business_profile_id=r.business_profile_id,
        external_review_id=r.external_review_id,
        reviewer_name=r.reviewer_name,
        reviewer_photo_url=r.reviewer_photo_url,
        rating=r.rating,
        content=r.content,
        published_at=r.published_at,
        status=r.status,
        sentiment=r.sentiment,
        is_verified=r.is_verified,
        response=_response_out(r.response) if r.response is not None else None,
    )


async def _get_review_or_404(db: AsyncSession, organization_id: str, review_id: str) -> Review:
    stmt = (
        select(Review)
        .where(Review.id == review_id, Review.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    review = (await db.execute(stmt)).scalar_one_or_none()
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    return review


@router.post("/listings/{listing_id}/reviews/sync", response_model=ReviewSyncOut)
async def sync_listing_reviews(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    client: GoogleBusinessClient = Depends(get_google_client),
) -> ReviewSyncOut:
    profile = await get_profile_or_404(db, actor.organization_id, listing_id)
    if not profile.external_id:
        raise HTTPException(status_code=400, detail="Business profile is not linked to Google Business Profile")

    try:
        result = await sync_reviews(db, profile=profile, source=client, actor_id=actor.api_key_id)
    except UpstreamError as e:
        await db.rollback()
        raise HTTPException(
            status_code=503,
            detail={"error": "Failed to fetch reviews from Google", "details": str(e), "code": "connection_failed"},
        )

    now = datetime.now(timezone.utc)
    profile.last_synced_at = now
    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="reviews",
        resource_id=profile.id,
        description=f"Synced {result.synced_count} reviews for {profile.name}",
        metadata={
            "synced_count": result.synced_count,
            "new_count": result.new_count,
            "failed_count": len(result.failures),
        },
    )
    await db.commit()

    return ReviewSyncOut(
        message=f"Successfully synced {result.synced_count} reviews",
        business_profile=profile.name,
        synced_count=result.synced_count,
        new_count=result.new_count,
        failed_count=len(result.failures),
        last_synced_at=now,
    )


@router.get("/listings/{listing_id}/reviews", response_model=ReviewListOut)
async def list_listing_reviews(
    listing_id: str,
    status: str = Query(default="ALL"),
    sentiment: str = Query(default="ALL"),
    limit: int = Query(default=50, ge=1, le=500),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ReviewListOut:
    profile = await get_profile_or_404(db, actor.organization_id, listing_id)

    status = status.upper()
    sentiment = sentiment.upper()
    if status != "ALL" and status not in REVIEW_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    if sentiment != "ALL" and sentiment not in SENTIMENTS:
        raise HTTPException(status_code=400, detail=f"Invalid sentiment: {sentiment}")

    stmt = (
        select(Review)
        .where(Review.business_profile_id == profile.id)
        .order_by(Review.published_at.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    if status != "ALL":
        stmt = stmt.where(Review.status == status)
    if sentiment != "ALL":
        stmt = stmt.where(Review.sentiment == sentiment)
    reviews = (await db.execute(stmt)).scalars().all()

    # stats cover the whole listing, not just the filtered page
    all_reviews = (await db.execute(
        select(Review)
        .where(Review.business_profile_id == profile.id)
        .execution_options(populate_existing=True)
    )).scalars().all()

    return ReviewListOut(
        reviews=[_review_out(r) for r in reviews],
        stats=ReviewStats(**compute_review_stats(all_reviews)),
        count=len(reviews),
    )


@router.put("/reviews/{review_id}/status", response_model=ReviewOut)
async def update_review_status(
    review_id: str,
    payload: ReviewStatusUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ReviewOut:
    review = await _get_review_or_404(db, actor.organization_id, review_id)

    old_status = review.status
    review.status = payload.status
    review.updated_by = actor.api_key_id
    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="review",
        resource_id=review.id,
        description=f"Changed review status from {old_status} to {payload.status}",
        metadata={"old_status": old_status, "new_status": payload.status},
    )
    await db.commit()
    return _review_out(review)


@router.post("/reviews/{review_id}/response", response_model=ReviewResponseOut)
async def respond_to_review(
    review_id: str,
    payload: ReviewResponseCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    client: GoogleBusinessClient = Depends(get_google_client),
) -> ReviewResponseOut:
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Response content is required")

    review = await _get_review_or_404(db, actor.organization_id, review_id)
    if review.response is not None:
        raise HTTPException(status_code=400, detail="Review already has a response")

    template = None
    if payload.template_id:
        template = (await db.execute(
            select(ResponseTemplate).where(
                ResponseTemplate.id == payload.template_id,
                ResponseTemplate.organization_id == actor.organization_id,
            )
        )).scalar_one_or_none()
        if not template:
            raise HTTPException(status_code=404, detail="Template not found")

    published_at = None
    if payload.publish:
        profile = (await db.execute(
            select(BusinessProfile).where(BusinessProfile.id == review.business_profile_id)
        )).scalar_one()
        if not profile.external_id:
            raise HTTPException(status_code=400, detail="Business profile is not linked to Google Business Profile")
        try:
            await client.reply_to_review(review.external_review_id, content)
        except UpstreamError as e:
            raise HTTPException(
                status_code=503,
                detail={"error": "Failed to publish response to Google", "details": str(e), "code": "connection_failed"},
            )
        published_at = datetime.now(timezone.utc)

    response = ReviewResponse(
        review_id=review.id,
        content=content,
        published_at=published_at,
        user_id=actor.user_id,
        template_id=template.id if template else None,
        created_by=actor.api_key_id,
        updated_by=actor.api_key_id,
    )
    db.add(response)
    review.status = "RESPONDED"
    review.updated_by = actor.api_key_id
    if template:
        template.usage_count = ResponseTemplate.usage_count + 1

    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="CREATE",
        resource="review_response",
        resource_id=review.id,
        description=f"Responded to review from {review.reviewer_name}",
        metadata={"template_id": payload.template_id, "published": payload.publish},
    )
    await db.commit()
    await db.refresh(response)
    return _response_out(response)
