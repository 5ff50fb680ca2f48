from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


class BusinessProfileOut(BaseModel):
    id: str
    external_id: str | None
    name: str
    description: str | None
    address: dict | None
    phone_number: str | None
    website: str | None
    categories: list
    status: str
    is_verified: bool
    is_selected: bool
    last_synced_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ListingToggle(BaseModel):
    toggle_type: Literal["analytics", "status"] = "analytics"


class ListingToggleOut(BaseModel):
    success: bool = True
    listing_id: str
    is_selected: bool | None = None
    status: str | None = None
    message: str


class BusinessProfileUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=300)
    description: str | None = None
    phone_number: str | None = Field(default=None, max_length=40)
    website: str | None = Field(default=None, max_length=500)
    address: dict | None = None
    categories: list[str] | None = None
    # patch the Google location first; nothing is stored if that fails
    push_to_google: bool = False


class BusinessProfileDetailOut(BusinessProfileOut):
    attributes: dict
    review_count: int
    post_count: int
    response_template_count: int
    post_template_count: int
    latest_insight_day: date | None
