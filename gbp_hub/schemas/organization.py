from typing import Literal

from pydantic import BaseModel, EmailStr, Field


class OrganizationBootstrap(BaseModel):
    name: str = Field(min_length=2, max_length=200)
    type: Literal["AGENCY", "BUSINESS"] = "BUSINESS"
    settings: dict = Field(default_factory=dict)
    owner_email: EmailStr
    owner_name: str = Field(min_length=2, max_length=200)


class OrganizationBootstrapOut(BaseModel):
    organization_id: str
    owner_user_id: str
    admin_api_key: str  # returned only once
