from pydantic import BaseModel, Field


class GoogleCredentialUpsert(BaseModel):
    # Secret, encrypted at rest and never returned
    refresh_token: str = Field(min_length=1)

    # Non-secret, safe to show on dashboards (account email, scopes...)
    metadata: dict = Field(default_factory=dict)

    is_active: bool = True


class GoogleCredentialOut(BaseModel):
    id: str
    organization_id: str
    provider: str
    metadata: dict
    is_active: bool
    created_at: str
    updated_at: str
    created_by: str | None
    updated_by: str | None
