from __future__ import annotations

import logging
from typing import AsyncIterator

from cryptography.fernet import InvalidToken
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.core.config import settings
from gbp_hub.core.crypto import decrypt_json
from gbp_hub.core.db import get_db
from gbp_hub.models.organization_credential import OrganizationCredential
from gbp_hub.services.auth import Actor, get_actor
from gbp_hub.services.google_business import GoogleBusinessClient

log = logging.getLogger(__name__)

GOOGLE_PROVIDER = "google"


async def load_google_refresh_token(db: AsyncSession, organization_id: str) -> str | None:
    """Organization's stored refresh token, else the deployment-wide fallback (if any)."""
    row = (await db.execute(
        select(OrganizationCredential).where(
            OrganizationCredential.organization_id == organization_id,
            OrganizationCredential.provider == GOOGLE_PROVIDER,
            OrganizationCredential.is_active.is_(True),
        )
    )).scalar_one_or_none()

    if row:
        try:
            return decrypt_json(row.secret_ciphertext).get("refresh_token")
        except InvalidToken:
            log.error("stored google credential for %s cannot be decrypted", organization_id)
            return None

    fallback = settings.google_refresh_token.get_secret_value()
    return fallback or None


def build_google_client(refresh_token: str | None) -> GoogleBusinessClient:
    return GoogleBusinessClient(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret.get_secret_value(),
        refresh_token=refresh_token,
        timeout_seconds=settings.google_timeout_seconds,
    )


async def get_google_client(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> AsyncIterator[GoogleBusinessClient]:
    """Request-scoped client for the caller's organization; closed when the request ends."""
    client = build_google_client(await load_google_refresh_token(db, actor.organization_id))
    try:
        yield client
    finally:
        await client.aclose()
