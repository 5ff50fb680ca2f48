from typing import Literal

from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=2, max_length=200)
    role: Literal["org_admin", "member"] = "member"


class UserUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=200)
    role: Literal["org_admin", "member"] | None = None
    is_active: bool | None = None


class UserOut(BaseModel):
    id: str
    organization_id: str
    email: EmailStr
    name: str
    role: str
    is_active: bool


class ApiKeyCreated(BaseModel):
    id: str
    plain_key: str  # returned only once
    key_prefix: str
    role: str
    user_id: str
