from datetime import datetime

from pydantic import BaseModel, Field

from gbp_hub.schemas.business_profile import BusinessProfileOut


class SyncFailureOut(BaseModel):
    external_id: str
    display_name: str
    error: str
    code: str = "internal_error"


class ListingSyncOut(BaseModel):
    success: bool = True
    message: str
    total_locations: int
    duplicate_count: int = 0
    synced_count: int
    new_count: int
    existing_count: int
    failed_count: int
    failures: list[SyncFailureOut] = Field(default_factory=list)
    business_profiles: list[BusinessProfileOut] = Field(default_factory=list)


class SyncRunOut(BaseModel):
    id: str
    trigger: str
    triggered_by: str | None
    status: str
    total_locations: int
    synced_count: int
    new_count: int
    failed_count: int
    failures: list[dict]
    error_detail: str | None
    created_at: datetime
