from __future__ import annotations
from sqlalchemy.ext.asyncio import AsyncSession
from gbp_hub.models.activity_log import ActivityLog

ACTIONS = {"CREATE", "READ", "UPDATE", "DELETE"}

def log_activity(
    db: AsyncSession,
    *,
    organization_id: str | None,
    user_id: str | None,
    action: str,
    resource: str,
    resource_id: str | None = None,
    description: str = "",
    metadata: dict | None = None,
) -> None:
    """Stage an activity row in the caller's transaction (committed with the change it describes)."""
    if action not in ACTIONS:
        raise ValueError(f"unknown activity action: {action}")
    db.add(ActivityLog(
        organization_id=organization_id,
        user_id=user_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        description=description,
        meta=metadata or {},
    ))
