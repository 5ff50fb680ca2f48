from datetime import datetime, timezone
from typing import get_args

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.api.v1.endpoints.listings import get_profile_or_404
from gbp_hub.api.v1.endpoints.post_templates import get_post_template_or_404
from gbp_hub.core.db import get_db
from gbp_hub.models.post import Post
from gbp_hub.models.post_template import PostTemplate
from gbp_hub.schemas.common import StatusResponse
from gbp_hub.schemas.post import PostCreate, PostOut, PostStatus, PostUpdate
from gbp_hub.services.activity import log_activity
from gbp_hub.services.auth import Actor, get_actor

router = APIRouter()


def _post_out(p: Post) -> PostOut:
    return PostOut(
        id=p.id,
        business_profile_id=p.business_profile_id,
        template_id=p.template_id,
        content=p.content,
        post_type=p.post_type,
        call_to_action=p.call_to_action,
        media=p.media or [],
        status=p.status,
        scheduled_at=p.scheduled_at,
        published_at=p.published_at,
        created_by=p.created_by,
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


def _media(items) -> list[dict]:
    return [m.model_dump() for m in sorted(items, key=lambda m: m.order)]


async def _get_post_or_404(db: AsyncSession, organization_id: str, post_id: str) -> Post:
    stmt = select(Post).where(Post.id == post_id, Post.organization_id == organization_id)
    post = (await db.execute(stmt)).scalar_one_or_none()
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


@router.get("/posts", response_model=list[PostOut])
async def list_posts(
    business_profile_id: str = Query(...),
    status: str | None = Query(default=None),
    limit: int = Query(default=10, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[PostOut]:
    profile = await get_profile_or_404(db, actor.organization_id, business_profile_id)

    stmt = select(Post).where(Post.business_profile_id == profile.id)
    if status and status.upper() != "ALL":
        if status.upper() not in get_args(PostStatus):
            raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
        stmt = stmt.where(Post.status == status.upper())
    stmt = stmt.order_by(
        Post.scheduled_at.desc().nulls_last(),
        Post.published_at.desc().nulls_last(),
        Post.created_at.desc(),
    ).limit(limit)

    rows = (await db.execute(stmt)).scalars().all()
    return [_post_out(p) for p in rows]


@router.post("/posts", response_model=PostOut)
async def create_post(
    payload: PostCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> PostOut:
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Content is required")
    if payload.status == "SCHEDULED" and payload.scheduled_at is None:
        raise HTTPException(status_code=400, detail="Scheduled posts need scheduled_at")

    profile = await get_profile_or_404(db, actor.organization_id, payload.business_profile_id)
    template = None
    if payload.template_id:
        template = await get_post_template_or_404(db, actor.organization_id, payload.template_id)

    post = Post(
        organization_id=actor.organization_id,
        business_profile_id=profile.id,
        template_id=template.id if template else None,
        content=content,
        post_type=payload.post_type,
        call_to_action=payload.call_to_action.model_dump(exclude_none=True) if payload.call_to_action else None,
        media=_media(payload.media),
        status=payload.status,
        scheduled_at=payload.scheduled_at,
        published_at=datetime.now(timezone.utc) if payload.status == "PUBLISHED" else None,
        created_by=actor.api_key_id,
        updated_by=actor.api_key_id,
    )
    db.add(post)
    if template:
        template.usage_count = PostTemplate.usage_count + 1
    await db.flush()

    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="CREATE",
        resource="post",
        resource_id=post.id,
        description=f"Created {post.status.lower()} post for {profile.name}",
        metadata={
            "business_profile_id": profile.id,
            "status": post.status,
            "has_media": bool(post.media),
            "template_id": post.template_id,
        },
    )
    await db.commit()
    await db.refresh(post)
    return _post_out(post)


@router.get("/posts/{post_id}", response_model=PostOut)
async def get_post(
    post_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> PostOut:
    return _post_out(await _get_post_or_404(db, actor.organization_id, post_id))


@router.patch("/posts/{post_id}", response_model=PostOut)
async def update_post(
    post_id: str,
    payload: PostUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> PostOut:
    post = await _get_post_or_404(db, actor.organization_id, post_id)

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes provided")
    if "content" in changes and not (changes["content"] or "").strip():
        raise HTTPException(status_code=400, detail="Content is required")

    previous_status = post.status
    new_status = changes.get("status") or post.status
    scheduled_at = changes["scheduled_at"] if "scheduled_at" in changes else post.scheduled_at
    if new_status == "SCHEDULED" and scheduled_at is None:
        raise HTTPException(status_code=400, detail="Scheduled posts need scheduled_at")

    if "content" in changes:
        post.content = changes["content"].strip()
    if changes.get("post_type"):
        post.post_type = changes["post_type"]
    if "call_to_action" in changes:
        cta = changes["call_to_action"]
        post.call_to_action = {k: v for k, v in cta.items() if v is not None} if cta else None
    if "media" in changes:
        post.media = _media(payload.media or [])
    if "scheduled_at" in changes:
        post.scheduled_at = scheduled_at
    post.status = new_status
    if new_status == "PUBLISHED" and post.published_at is None:
        post.published_at = datetime.now(timezone.utc)
    post.updated_by = actor.api_key_id

    profile = await get_profile_or_404(db, actor.organization_id, post.business_profile_id)
    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="post",
        resource_id=post.id,
        description=f"Updated post for {profile.name}",
        metadata={"previous_status": previous_status, "new_status": new_status, "fields": sorted(changes)},
    )
    await db.commit()
    await db.refresh(post)
    return _post_out(post)


@router.delete("/posts/{post_id}", response_model=StatusResponse)
async def delete_post(
    post_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    post = await _get_post_or_404(db, actor.organization_id, post_id)
    profile = await get_profile_or_404(db, actor.organization_id, post.business_profile_id)

    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="DELETE",
        resource="post",
        resource_id=post.id,
        description=f"Deleted post from {profile.name}",
        metadata={"business_profile_id": profile.id, "media_count": len(post.media or [])},
    )
    await db.delete(post)
    await db.commit()
    return StatusResponse(status="deleted")
