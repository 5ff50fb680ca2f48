import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.core.db import get_db
from gbp_hub.models.business_profile import BusinessProfile
from gbp_hub.models.sync_run import SyncRun
from gbp_hub.schemas.business_profile import (
    BusinessProfileDetailOut,
    BusinessProfileOut,
    BusinessProfileUpdate,
    ListingToggle,
    ListingToggleOut,
)
from gbp_hub.schemas.common import StatusResponse
from gbp_hub.schemas.sync import ListingSyncOut, SyncFailureOut, SyncRunOut
from gbp_hub.services.activity import log_activity
from gbp_hub.services.analytics import is_selected_for_analytics
from gbp_hub.services.auth import Actor, get_actor, require_org_admin
from gbp_hub.services.business_profiles import count_related, delete_business_profile, normalize_profile_changes
from gbp_hub.services.google_business import GoogleBusinessClient
from gbp_hub.services.google_credentials import get_google_client
from gbp_hub.services.listing_sync import SyncStatus, UpstreamError
from gbp_hub.services.sync_service import list_organization_profiles, run_organization_sync

log = logging.getLogger(__name__)
router = APIRouter()


def profile_out(p: BusinessProfile) -> BusinessProfileOut:
    return BusinessProfileOut(
        id=p.id,
        external_id=p.external_id,
        name=p.name,
        description=p.description,
        address=p.address,
        phone_number=p.phone_number,
        website=p.website,
        categories=p.categories or [],
        status=p.status,
        is_verified=p.is_verified,
        is_selected=is_selected_for_analytics(p),
        last_synced_at=p.last_synced_at,
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


async def get_profile_or_404(db: AsyncSession, organization_id: str, profile_id: str) -> BusinessProfile:
    stmt = select(BusinessProfile).where(
        BusinessProfile.id == profile_id,
        BusinessProfile.organization_id == organization_id,
    )
    profile = (await db.execute(stmt)).scalar_one_or_none()
    if not profile:
        raise HTTPException(status_code=404, detail="Business profile not found")
    return profile


@router.post("/listings/sync", response_model=ListingSyncOut)
async def sync_listings_endpoint(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    client: GoogleBusinessClient = Depends(get_google_client),
) -> ListingSyncOut:
    report = await run_organization_sync(
        db,
        organization_id=actor.organization_id,
        source=client,
        trigger="api",
        user_id=actor.user_id,
        actor_id=actor.api_key_id,
    )

    if not report.ok:
        status_code = 503 if report.status == SyncStatus.CONNECTION_FAILED else 500
        raise HTTPException(
            status_code=status_code,
            detail={"error": report.error, "details": report.details, "code": report.status.value},
        )

    profiles = await list_organization_profiles(db, actor.organization_id)
    return ListingSyncOut(
        message=f"Successfully synced {report.synced_count} business locations",
        total_locations=report.total_locations,
        duplicate_count=report.duplicate_count,
        synced_count=report.synced_count,
        new_count=report.new_count,
        existing_count=report.existing_count,
        failed_count=report.failed_count,
        failures=[SyncFailureOut(**f.as_dict()) for f in report.failures],
        business_profiles=[profile_out(p) for p in profiles],
    )


@router.get("/listings", response_model=list[BusinessProfileOut])
async def list_listings(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[BusinessProfileOut]:
    profiles = await list_organization_profiles(db, actor.organization_id)
    return [profile_out(p) for p in profiles]


@router.get("/listings/sync-runs", response_model=list[SyncRunOut])
async def list_sync_runs(
    limit: int = Query(default=20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[SyncRunOut]:
    stmt = (
        select(SyncRun)
        .where(SyncRun.organization_id == actor.organization_id)
        .order_by(SyncRun.created_at.desc())
        .limit(limit)
    )
    runs = (await db.execute(stmt)).scalars().all()
    return [
        SyncRunOut(
            id=r.id,
            trigger=r.trigger,
            triggered_by=r.triggered_by,
            status=r.status,
            total_locations=r.total_locations,
            synced_count=r.synced_count,
            new_count=r.new_count,
            failed_count=r.failed_count,
            failures=r.failures or [],
            error_detail=r.error_detail,
            created_at=r.created_at,
        )
        for r in runs
    ]


@router.post("/listings/{listing_id}/toggle", response_model=ListingToggleOut)
async def toggle_listing(
    listing_id: str,
    payload: ListingToggle,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingToggleOut:
    profile = await get_profile_or_404(db, actor.organization_id, listing_id)

    if payload.toggle_type == "analytics":
        selected = not is_selected_for_analytics(profile)
        # reassign so the JSONB change is flushed
        profile.attributes = {**(profile.attributes or {}), "selectedForAnalytics": selected}
        profile.updated_by = actor.api_key_id
        log_activity(
            db,
            organization_id=actor.organization_id,
            user_id=actor.user_id,
            action="UPDATE",
            resource="business_profile",
            resource_id=profile.id,
            description=f"{'Selected' if selected else 'Deselected'} {profile.name} for analytics",
            metadata={"selectedForAnalytics": selected},
        )
        await db.commit()
        return ListingToggleOut(
            listing_id=profile.id,
            is_selected=selected,
            message=f"Listing {'selected' if selected else 'deselected'} for analytics",
        )

    old_status = profile.status
    new_status = "SUSPENDED" if old_status == "ACTIVE" else "ACTIVE"
    profile.status = new_status
    profile.updated_by = actor.api_key_id
    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="business_profile",
        resource_id=profile.id,
        description=f"Changed {profile.name} status from {old_status} to {new_status}",
        metadata={"old_status": old_status, "new_status": new_status},
    )
    await db.commit()
    return ListingToggleOut(
        listing_id=profile.id,
        status=new_status,
        message=f"Listing status changed to {new_status}",
    )


@router.get("/listings/{listing_id}", response_model=BusinessProfileDetailOut)
async def get_listing(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> BusinessProfileDetailOut:
    profile = await get_profile_or_404(db, actor.organization_id, listing_id)
    related = await count_related(db, profile.id)
    return BusinessProfileDetailOut(
        **profile_out(profile).model_dump(),
        attributes=profile.attributes or {},
        **related,
    )


@router.patch("/listings/{listing_id}", response_model=BusinessProfileOut)
async def update_listing(
    listing_id: str,
    payload: BusinessProfileUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    client: GoogleBusinessClient = Depends(get_google_client),
) -> BusinessProfileOut:
    profile = await get_profile_or_404(db, actor.organization_id, listing_id)

    try:
        changes = normalize_profile_changes(payload.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not changes:
        raise HTTPException(status_code=400, detail="No changes provided")

    if payload.push_to_google:
        if not profile.external_id:
            raise HTTPException(status_code=400, detail="Listing is not linked to Google")
        try:
            await client.update_location(profile.external_id, changes)
        except UpstreamError as e:
            log.warning("listing %s: google location update failed: %s", profile.id, e)
            raise HTTPException(
                status_code=503,
                detail={"error": "Failed to update location on Google", "details": str(e), "code": "connection_failed"},
            )

    for field, value in changes.items():
        setattr(profile, field, value)
    profile.updated_by = actor.api_key_id
    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="business_profile",
        resource_id=profile.id,
        description=f"Updated business profile: {profile.name}",
        metadata={"fields": sorted(changes), "pushed_to_google": payload.push_to_google},
    )
    await db.commit()
    await db.refresh(profile)
    return profile_out(profile)


@router.delete("/listings/{listing_id}", response_model=StatusResponse)
async def delete_listing(
    listing_id: str,
    actor: Actor = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    """Local delete only; a listing still on Google comes back on the next sync."""
    profile = await get_profile_or_404(db, actor.organization_id, listing_id)
    name = profile.name

    counts = await delete_business_profile(db, profile)
    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="DELETE",
        resource="business_profile",
        resource_id=listing_id,
        description=f"Deleted business profile: {name}",
        metadata=counts,
    )
    await db.commit()
    return StatusResponse(status="deleted")
