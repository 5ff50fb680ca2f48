from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.api.v1.endpoints.listings import get_profile_or_404
from gbp_hub.core.db import get_db
from gbp_hub.models.post import Post
from gbp_hub.models.post_template import PostTemplate
from gbp_hub.schemas.common import StatusResponse
from gbp_hub.schemas.post import PostTemplateCreate, PostTemplateOut, PostTemplateUpdate, PostType
from gbp_hub.schemas.template import TemplateFavoriteOut
from gbp_hub.services.activity import log_activity
from gbp_hub.services.auth import Actor, get_actor

router = APIRouter()


def _post_template_out(t: PostTemplate) -> PostTemplateOut:
    return PostTemplateOut(
        id=t.id,
        business_profile_id=t.business_profile_id,
        name=t.name,
        description=t.description,
        content=t.content,
        post_type=t.post_type,
        call_to_action=t.call_to_action or {},
        tags=t.tags or [],
        usage_count=t.usage_count,
        is_favorite=t.is_favorite,
        created_by=t.created_by,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


async def get_post_template_or_404(db: AsyncSession, organization_id: str, template_id: str) -> PostTemplate:
    stmt = select(PostTemplate).where(
        PostTemplate.id == template_id,
        PostTemplate.organization_id == organization_id,
    )
    template = (await db.execute(stmt)).scalar_one_or_none()
    if not template:
        raise HTTPException(status_code=404, detail="Post template not found")
    return template


def _clean_tags(tags: list[str]) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


@router.get("/post-templates", response_model=list[PostTemplateOut])
async def list_post_templates(
    business_profile_id: str | None = Query(default=None),
    post_type: PostType | None = Query(default=None),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[PostTemplateOut]:
    stmt = select(PostTemplate).where(PostTemplate.organization_id == actor.organization_id)
    if business_profile_id:
        stmt = stmt.where(PostTemplate.business_profile_id == business_profile_id)
    if post_type:
        stmt = stmt.where(PostTemplate.post_type == post_type)
    stmt = stmt.order_by(PostTemplate.is_favorite.desc(), PostTemplate.usage_count.desc(), PostTemplate.name.asc())

    rows = (await db.execute(stmt)).scalars().all()
    return [_post_template_out(t) for t in rows]


@router.post("/post-templates", response_model=PostTemplateOut)
async def create_post_template(
    payload: PostTemplateCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> PostTemplateOut:
    if not payload.name.strip() or not payload.content.strip():
        raise HTTPException(status_code=400, detail="Name and content are required")
    profile = await get_profile_or_404(db, actor.organization_id, payload.business_profile_id)

    template = PostTemplate(
        organization_id=actor.organization_id,
        business_profile_id=profile.id,
        name=payload.name.strip(),
        description=(payload.description or "").strip() or None,
        content=payload.content.strip(),
        post_type=payload.post_type,
        call_to_action=payload.call_to_action.model_dump(exclude_none=True) if payload.call_to_action else {},
        tags=_clean_tags(payload.tags),
        created_by=actor.api_key_id,
        updated_by=actor.api_key_id,
    )
    db.add(template)
    await db.flush()
    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="CREATE",
        resource="post_template",
        resource_id=template.id,
        description=f"Created post template {template.name}",
        metadata={"post_type": template.post_type},
    )
    await db.commit()
    await db.refresh(template)
    return _post_template_out(template)


@router.patch("/post-templates/{template_id}", response_model=PostTemplateOut)
async def update_post_template(
    template_id: str,
    payload: PostTemplateUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> PostTemplateOut:
    template = await get_post_template_or_404(db, actor.organization_id, template_id)

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes provided")
    for required in ("name", "content"):
        if required in changes and not (changes[required] or "").strip():
            raise HTTPException(status_code=400, detail="Name and content are required")

    for field, value in changes.items():
        if field == "tags":
            value = _clean_tags(value or [])
        elif field == "call_to_action":
            value = {k: v for k, v in (value or {}).items() if v is not None}
        elif field == "description":
            value = (value or "").strip() or None
        elif field == "post_type":
            if value is None:
                continue
        elif isinstance(value, str):
            value = value.strip()
        setattr(template, field, value)
    template.updated_by = actor.api_key_id

    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="post_template",
        resource_id=template.id,
        description=f"Updated post template {template.name}",
        metadata={"fields": sorted(changes)},
    )
    await db.commit()
    await db.refresh(template)
    return _post_template_out(template)


@router.delete("/post-templates/{template_id}", response_model=StatusResponse)
async def delete_post_template(
    template_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    template = await get_post_template_or_404(db, actor.organization_id, template_id)

    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="DELETE",
        resource="post_template",
        resource_id=template.id,
        description=f"Deleted post template {template.name}",
    )
    # posts keep their content; only the template link goes
    await db.execute(update(Post).where(Post.template_id == template.id).values(template_id=None))
    await db.delete(template)
    await db.commit()
    return StatusResponse(status="deleted")


@router.post("/post-templates/{template_id}/favorite", response_model=TemplateFavoriteOut)
async def toggle_post_template_favorite(
    template_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> TemplateFavoriteOut:
    template = await get_post_template_or_404(db, actor.organization_id, template_id)

    template.is_favorite = not template.is_favorite
    template.updated_by = actor.api_key_id
    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="post_template",
        resource_id=template.id,
        description=f"{'Added' if template.is_favorite else 'Removed'} {template.name} {'to' if template.is_favorite else 'from'} favorites",
    )
    await db.commit()
    return TemplateFavoriteOut(is_favorite=template.is_favorite)
