from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gbp_hub.models.business_profile import BusinessProfile
from gbp_hub.services.reconciler import LocalListing

# reconciler field name -> BusinessProfile column
_FIELD_COLUMNS = {
    "external_id": "external_id",
    "display_name": "name",
    "status": "status",
    "is_verified": "is_verified",
    "last_synced_at": "last_synced_at",
}


def to_local_listing(row: BusinessProfile) -> LocalListing:
    return LocalListing(
        id=row.id,
        organization_id=row.organization_id,
        external_id=row.external_id,
        display_name=row.name,
        status=row.status,
        is_verified=row.is_verified,
        last_synced_at=row.last_synced_at,
        attributes=dict(row.attributes or {}),
    )


def _columns(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - set(_FIELD_COLUMNS)
    if unknown:
        raise ValueError(f"unsupported listing fields: {sorted(unknown)}")
    return {_FIELD_COLUMNS[k]: v for k, v in fields.items()}


class SqlListingStore:
    """
    Tenant-scoped BusinessProfile persistence for the sync driver.

    Each create/update runs in its own SAVEPOINT so one failing record rolls
    back alone; the caller owns the outer transaction and commits it.
    """

    def __init__(self, db: AsyncSession, *, actor_id: str = "sync"):
        self.db = db
        self.actor_id = actor_id

    @asynccontextmanager
    async def lock(self, organization_id: str) -> AsyncIterator[None]:
        # Transaction-scoped: released on commit/rollback of the outer transaction.
        await self.db.execute(select(func.pg_advisory_xact_lock(func.hashtext(organization_id))))
        yield

    async def find_by_organization(self, organization_id: str) -> list[LocalListing]:
        stmt = select(BusinessProfile).where(BusinessProfile.organization_id == organization_id)
        rows = (await self.db.execute(stmt)).scalars().all()
        return [to_local_listing(r) for r in rows]

    async def create(self, organization_id: str, fields: dict[str, Any]) -> LocalListing:
        async with self.db.begin_nested():
            row = BusinessProfile(
                organization_id=organization_id,
                attributes={},
                created_by=self.actor_id,
                updated_by=self.actor_id,
                **_columns(fields),
            )
            self.db.add(row)
            await self.db.flush()
        return to_local_listing(row)

    async def update(self, organization_id: str, listing_id: str, fields: dict[str, Any]) -> LocalListing:
        async with self.db.begin_nested():
            stmt = select(BusinessProfile).where(
                BusinessProfile.id == listing_id,
                BusinessProfile.organization_id == organization_id,
            )
            row = (await self.db.execute(stmt)).scalar_one_or_none()
            if row is None:
                raise LookupError(f"listing {listing_id} not found in organization {organization_id}")
            for column, value in _columns(fields).items():
                setattr(row, column, value)
            row.updated_by = self.actor_id
            await self.db.flush()
        return to_local_listing(row)
