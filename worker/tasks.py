import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from worker.celery_app import celery
from gbp_hub.core.config import settings
import gbp_hub.models  # noqa: F401  # ensures Models are registered
from gbp_hub.models.organization import Organization
from gbp_hub.services.google_credentials import build_google_client, load_google_refresh_token
from gbp_hub.services.sync_service import run_organization_sync

log = logging.getLogger(__name__)


async def _sync_organization_listings(organization_id: str) -> dict:
    # asyncio.run() gives each task a fresh loop, so the engine cannot be shared
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with Session() as db:
            org = (await db.execute(select(Organization).where(Organization.id == organization_id))).scalar_one_or_none()
            if not org:
                log.warning("scheduled sync: organization %s not found", organization_id)
                return {"organization_id": organization_id, "status": "not_found"}

            client = build_google_client(await load_google_refresh_token(db, organization_id))
            try:
                report = await run_organization_sync(
                    db,
                    organization_id=organization_id,
                    source=client,
                    trigger="scheduled",
                    actor_id="scheduler",
                )
            finally:
                await client.aclose()
    finally:
        await engine.dispose()

    return {
        "organization_id": organization_id,
        "status": report.status.value,
        "synced_count": report.synced_count,
        "new_count": report.new_count,
        "failed_count": report.failed_count,
        "error": report.error,
    }


async def _organization_ids() -> list[str]:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with Session() as db:
            return list((await db.execute(select(Organization.id).order_by(Organization.id))).scalars().all())
    finally:
        await engine.dispose()


@celery.task(name="worker.tasks.sync_organization_listings")
def sync_organization_listings(organization_id: str) -> dict:
    return asyncio.run(_sync_organization_listings(organization_id))


@celery.task(name="worker.tasks.sync_all_organizations")
def sync_all_organizations() -> int:
    org_ids = asyncio.run(_organization_ids())
    for org_id in org_ids:
        sync_organization_listings.delay(org_id)
    log.info("scheduled sync: queued %d organizations", len(org_ids))
    return len(org_ids)
