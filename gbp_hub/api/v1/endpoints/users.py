import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from gbp_hub.core.db import get_db
from gbp_hub.core.security import generate_api_key
from gbp_hub.models.api_key import ApiKey
from gbp_hub.models.user import User
from gbp_hub.schemas.user import ApiKeyCreated, UserCreate, UserOut, UserUpdate
from gbp_hub.services.activity import log_activity
from gbp_hub.services.auth import Actor, enforce_org_scope, require_org_admin

log = logging.getLogger(__name__)
router = APIRouter()


def _user_out(u: User) -> UserOut:
    return UserOut(
        id=u.id,
        organization_id=u.organization_id,
        email=u.email,
        name=u.name,
        role=u.role,
        is_active=u.is_active,
    )


async def _get_user_or_404(db: AsyncSession, organization_id: str, user_id: str) -> User:
    stmt = select(User).where(User.id == user_id, User.organization_id == organization_id)
    user = (await db.execute(stmt)).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/organizations/{organization_id}/users", response_model=UserOut)
async def create_user(
    organization_id: str,
    payload: UserCreate,
    actor: Actor = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    enforce_org_scope(actor, organization_id)

    user = User(
        organization_id=organization_id,
        email=str(payload.email).lower(),
        name=payload.name,
        role=payload.role,
        created_by=actor.api_key_id,
        updated_by=actor.api_key_id,
    )
    try:
        db.add(user)
        await db.flush()
        log_activity(
            db,
            organization_id=organization_id,
            user_id=actor.user_id,
            action="CREATE",
            resource="user",
            resource_id=user.id,
            description=f"Added {user.email} as {user.role}",
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="User with this email already exists")

    return _user_out(user)


@router.get("/organizations/{organization_id}/users", response_model=list[UserOut])
async def list_users(
    organization_id: str,
    actor: Actor = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db),
) -> list[UserOut]:
    enforce_org_scope(actor, organization_id)

    stmt = select(User).where(User.organization_id == organization_id).order_by(User.email.asc())
    users = (await db.execute(stmt)).scalars().all()
    return [_user_out(u) for u in users]


@router.patch("/organizations/{organization_id}/users/{user_id}", response_model=UserOut)
async def update_user(
    organization_id: str,
    user_id: str,
    payload: UserUpdate,
    actor: Actor = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    enforce_org_scope(actor, organization_id)
    user = await _get_user_or_404(db, organization_id, user_id)

    if user.id == actor.user_id and (payload.is_active is False or payload.role == "member"):
        raise HTTPException(status_code=400, detail="Admins cannot deactivate or demote themselves")

    if payload.name is not None:
        user.name = payload.name
    if payload.role is not None and payload.role != user.role:
        user.role = payload.role
        # keys carry the role they were issued with
        await db.execute(
            update(ApiKey).where(ApiKey.user_id == user.id).values(role=payload.role)
        )
    if payload.is_active is not None:
        user.is_active = payload.is_active
    user.updated_by = actor.api_key_id

    log_activity(
        db,
        organization_id=organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="user",
        resource_id=user.id,
        description=f"Updated user {user.email}",
        metadata=payload.model_dump(exclude_none=True),
    )
    await db.commit()
    return _user_out(user)


@router.post("/organizations/{organization_id}/users/{user_id}/api-keys/rotate", response_model=ApiKeyCreated)
async def rotate_user_api_key(
    organization_id: str,
    user_id: str,
    actor: Actor = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db),
) -> ApiKeyCreated:
    enforce_org_scope(actor, organization_id)
    user = await _get_user_or_404(db, organization_id, user_id)
    if not user.is_active:
        raise HTTPException(status_code=400, detail="User is inactive")

    # Disable previous keys
    await db.execute(
        update(ApiKey)
        .where(ApiKey.user_id == user.id, ApiKey.is_active.is_(True))
        .values(is_active=False, rotated_at=func.now())
    )

    new_key = generate_api_key()
    key_row = ApiKey(
        organization_id=organization_id,
        user_id=user.id,
        role=user.role,
        key_prefix=new_key.prefix,
        key_hash=new_key.hashed,
        is_active=True,
    )
    try:
        db.add(key_row)
        await db.flush()
        log_activity(
            db,
            organization_id=organization_id,
            user_id=actor.user_id,
            action="UPDATE",
            resource="api_key",
            resource_id=key_row.id,
            description=f"Rotated API key for {user.email}",
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        log.exception("rotate api key failed")
        raise HTTPException(status_code=409, detail="Constraint violation")

    return ApiKeyCreated(
        id=key_row.id,
        plain_key=new_key.plain,
        key_prefix=key_row.key_prefix,
        role=key_row.role,
        user_id=user.id,
    )
