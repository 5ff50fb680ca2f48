from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.api.v1.endpoints.listings import get_profile_or_404
from gbp_hub.core.db import get_db
from gbp_hub.models.response_template import ResponseTemplate
from gbp_hub.models.review import ReviewResponse
from gbp_hub.schemas.common import StatusResponse
from gbp_hub.schemas.template import TemplateCreate, TemplateFavoriteOut, TemplateOut, TemplateUpdate
from gbp_hub.services.activity import log_activity
from gbp_hub.services.auth import Actor, get_actor

router = APIRouter()


def _template_out(t: ResponseTemplate) -> TemplateOut:
    return TemplateOut(
        id=t.id,
        business_profile_id=t.business_profile_id,
        name=t.name,
        content=t.content,
        sentiment=t.sentiment,
        usage_count=t.usage_count,
        is_favorite=t.is_favorite,
        created_by=t.created_by,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


async def _get_template_or_404(db: AsyncSession, organization_id: str, template_id: str) -> ResponseTemplate:
    stmt = select(ResponseTemplate).where(
        ResponseTemplate.id == template_id,
        ResponseTemplate.organization_id == organization_id,
    )
    template = (await db.execute(stmt)).scalar_one_or_none()
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


@router.get("/templates", response_model=list[TemplateOut])
async def list_templates(
    business_profile_id: str | None = Query(default=None),
    sentiment: str | None = Query(default=None),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[TemplateOut]:
    stmt = select(ResponseTemplate).where(ResponseTemplate.organization_id == actor.organization_id)
    if business_profile_id:
        stmt = stmt.where(ResponseTemplate.business_profile_id == business_profile_id)
    if sentiment and sentiment.upper() != "ALL":
        # generic templates apply to every sentiment
        stmt = stmt.where(ResponseTemplate.sentiment.in_([sentiment.upper(), "ALL"]))
    stmt = stmt.order_by(ResponseTemplate.is_favorite.desc(), ResponseTemplate.usage_count.desc(), ResponseTemplate.name.asc())

    rows = (await db.execute(stmt)).scalars().all()
    return [_template_out(t) for t in rows]


@router.post("/templates", response_model=TemplateOut)
async def create_template(
    payload: TemplateCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> TemplateOut:
    profile = await get_profile_or_404(db, actor.organization_id, payload.business_profile_id)

    template = ResponseTemplate(
        organization_id=actor.organization_id,
        business_profile_id=profile.id,
        name=payload.name.strip(),
        content=payload.content.strip(),
        sentiment=payload.sentiment,
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
        resource="response_template",
        resource_id=template.id,
        description=f"Created response template {template.name}",
        metadata={"sentiment": template.sentiment},
    )
    await db.commit()
    await db.refresh(template)
    return _template_out(template)


@router.patch("/templates/{template_id}", response_model=TemplateOut)
async def update_template(
    template_id: str,
    payload: TemplateUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> TemplateOut:
    template = await _get_template_or_404(db, actor.organization_id, template_id)

    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes provided")
    for field, value in changes.items():
        setattr(template, field, value.strip() if isinstance(value, str) and field != "sentiment" else value)
    template.updated_by = actor.api_key_id

    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="response_template",
        resource_id=template.id,
        description=f"Updated response template {template.name}",
        metadata={"fields": sorted(changes)},
    )
    await db.commit()
    await db.refresh(template)
    return _template_out(template)


@router.delete("/templates/{template_id}", response_model=StatusResponse)
async def delete_template(
    template_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    template = await _get_template_or_404(db, actor.organization_id, template_id)

    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="DELETE",
        resource="response_template",
        resource_id=template.id,
        description=f"Deleted response template {template.name}",
    )
    # responses keep their text; only the template link goes
    await db.execute(
        update(ReviewResponse).where(ReviewResponse.template_id == template.id).values(template_id=None)
    )
    await db.delete(template)
    await db.commit()
    return StatusResponse(status="deleted")


@router.post("/templates/{template_id}/favorite", response_model=TemplateFavoriteOut)
async def toggle_template_favorite(
    template_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> TemplateFavoriteOut:
    template = await _get_template_or_404(db, actor.organization_id, template_id)

    template.is_favorite = not template.is_favorite
    template.updated_by = actor.api_key_id
    log_activity(
        db,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="response_template",
        resource_id=template.id,
        description=f"{'Added' if template.is_favorite else 'Removed'} {template.name} {'to' if template.is_favorite else 'from'} favorites",
    )
    await db.commit()
    return TemplateFavoriteOut(is_favorite=template.is_favorite)
