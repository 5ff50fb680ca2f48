from dataclasses import dataclass
from fastapi import Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.core.db import get_db
from gbp_hub.core.security import hash_api_key
from gbp_hub.models.api_key import ApiKey
from gbp_hub.models.user import User

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


@dataclass(frozen=True)
class Actor:
    api_key_id: str
    organization_id: str
    user_id: str
    role: str  # "org_admin" | "member"


def _unauthorized(details: str) -> dict:
    return {"error": "Unauthorized", "details": details, "code": "unauthorized"}


async def get_actor(
    api_key: str | None = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    if not api_key:
        raise HTTPException(status_code=401, detail=_unauthorized("Missing X-API-Key"))

    hashed = hash_api_key(api_key)
    stmt = (
        select(ApiKey)
        .join(User, User.id == ApiKey.user_id)
        .where(
            ApiKey.key_hash == hashed,
            ApiKey.is_active.is_(True),
            User.is_active.is_(True),
        )
    )
    row = (await db.execute(stmt)).scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=401, detail=_unauthorized("Invalid API key"))

    return Actor(
        api_key_id=row.id,
        organization_id=row.organization_id,
        user_id=row.user_id,
        role=row.role,
    )


def require_org_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if actor.role != "org_admin":
        raise HTTPException(status_code=403, detail="Organization admin role required")
    return actor


def enforce_org_scope(actor: Actor, organization_id: str) -> None:
    if actor.organization_id != organization_id:
        raise HTTPException(status_code=403, detail="Cross-organization access forbidden")
