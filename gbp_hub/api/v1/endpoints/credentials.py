from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.core.crypto import encrypt_json
from gbp_hub.core.db import get_db
from gbp_hub.models.organization_credential import OrganizationCredential
from gbp_hub.schemas.common import StatusResponse
from gbp_hub.schemas.credentials import GoogleCredentialOut, GoogleCredentialUpsert
from gbp_hub.services.activity import log_activity
from gbp_hub.services.auth import Actor, enforce_org_scope, require_org_admin
from gbp_hub.services.google_credentials import GOOGLE_PROVIDER

router = APIRouter()


def _credential_out(row: OrganizationCredential) -> GoogleCredentialOut:
    return GoogleCredentialOut(
        id=row.id,
        organization_id=row.organization_id,
        provider=row.provider,
        metadata=row.meta,
        is_active=row.is_active,
        created_at=str(row.created_at),
        updated_at=str(row.updated_at),
        created_by=row.created_by,
        updated_by=row.updated_by,
    )


async def _get_credential(db: AsyncSession, organization_id: str) -> OrganizationCredential | None:
    stmt = select(OrganizationCredential).where(
        OrganizationCredential.organization_id == organization_id,
        OrganizationCredential.provider == GOOGLE_PROVIDER,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


@router.get("/organizations/{organization_id}/google-credentials", response_model=GoogleCredentialOut)
async def get_google_credentials(
    organization_id: str,
    actor: Actor = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db),
) -> GoogleCredentialOut:
    enforce_org_scope(actor, organization_id)
    row = await _get_credential(db, organization_id)
    if not row:
        raise HTTPException(status_code=404, detail="Google credentials not configured")
    return _credential_out(row)


@router.put("/organizations/{organization_id}/google-credentials", response_model=GoogleCredentialOut)
async def upsert_google_credentials(
    organization_id: str,
    payload: GoogleCredentialUpsert,
    actor: Actor = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db),
) -> GoogleCredentialOut:
    enforce_org_scope(actor, organization_id)

    # Encrypt secrets (never returned)
    ciphertext = encrypt_json({"refresh_token": payload.refresh_token})

    row = await _get_credential(db, organization_id)
    if row:
        row.secret_ciphertext = ciphertext
        row.meta = payload.metadata
        row.is_active = payload.is_active
        row.updated_by = actor.api_key_id
    else:
        row = OrganizationCredential(
            organization_id=organization_id,
            provider=GOOGLE_PROVIDER,
            secret_ciphertext=ciphertext,
            meta=payload.metadata,
            is_active=payload.is_active,
            created_by=actor.api_key_id,
            updated_by=actor.api_key_id,
        )
        db.add(row)

    log_activity(
        db,
        organization_id=organization_id,
        user_id=actor.user_id,
        action="UPDATE",
        resource="google_credentials",
        resource_id=organization_id,
        description="Connected Google Business Profile account",
    )
    await db.commit()
    await db.refresh(row)
    return _credential_out(row)


@router.delete("/organizations/{organization_id}/google-credentials", response_model=StatusResponse)
async def delete_google_credentials(
    organization_id: str,
    actor: Actor = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    enforce_org_scope(actor, organization_id)

    res = await db.execute(
        delete(OrganizationCredential).where(
            OrganizationCredential.organization_id == organization_id,
            OrganizationCredential.provider == GOOGLE_PROVIDER,
        )
    )
    if res.rowcount == 0:
        await db.rollback()
        raise HTTPException(status_code=404, detail="Google credentials not configured")

    log_activity(
        db,
        organization_id=organization_id,
        user_id=actor.user_id,
        action="DELETE",
        resource="google_credentials",
        resource_id=organization_id,
        description="Disconnected Google Business Profile account",
    )
    await db.commit()
    return StatusResponse(status="deleted")
