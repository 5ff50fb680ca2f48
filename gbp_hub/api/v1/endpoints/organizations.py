import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.core.db import get_db
from gbp_hub.core.ids import gen_id
from gbp_hub.core.security import generate_api_key
from gbp_hub.models.api_key import ApiKey
from gbp_hub.models.organization import Organization
from gbp_hub.models.user import User
from gbp_hub.schemas.organization import OrganizationBootstrap, OrganizationBootstrapOut
from gbp_hub.services.activity import log_activity
from gbp_hub.services.internal_admin import require_internal_admin


log = logging.getLogger(__name__)
router = APIRouter()

@router.post(
    "/organizations/bootstrap",
    response_model=OrganizationBootstrapOut,
    dependencies=[Depends(require_internal_admin)],
)
async def bootstrap_organization(
    payload: OrganizationBootstrap,
    db: AsyncSession = Depends(get_db),
) -> OrganizationBootstrapOut:
    """
    Create an organization with its owner user and first admin API key.
    Internal-only (ops/admin); the plain key is returned once.
    """
    # Generate IDs first so we can reference them safely
    org_id = gen_id("org")
    user_id = gen_id("usr")

    org = Organization(
        id=org_id,
        name=payload.name,
        type=payload.type,
        settings=payload.settings,
        created_by="internal",
        updated_by="internal",
    )
    owner = User(
        id=user_id,
        organization_id=org_id,
        email=str(payload.owner_email).lower(),
        name=payload.owner_name,
        role="org_admin",
        created_by="internal",
        updated_by="internal",
    )

    admin_key = generate_api_key()
    key_row = ApiKey(
        organization_id=org_id,
        user_id=user_id,
        role="org_admin",
        key_prefix=admin_key.prefix,
        key_hash=admin_key.hashed,
        is_active=True,
    )

    try:
        db.add(org)
        await db.flush()  # organization first (FK target)
        db.add(owner)
        await db.flush()
        db.add(key_row)
        log_activity(
            db,
            organization_id=org_id,
            user_id=user_id,
            action="CREATE",
            resource="organization",
            resource_id=org_id,
            description=f"Created organization {payload.name}",
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        log.exception("bootstrap failed: integrity error")
        raise HTTPException(status_code=409, detail="Constraint violation")

    return OrganizationBootstrapOut(
        organization_id=org_id,
        owner_user_id=user_id,
        admin_api_key=admin_key.plain,
    )
