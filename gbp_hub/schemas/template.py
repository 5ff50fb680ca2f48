from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

TemplateSentiment = Literal["POSITIVE", "NEUTRAL", "NEGATIVE", "ALL"]


class TemplateCreate(BaseModel):
    business_profile_id: str
    name: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    sentiment: TemplateSentiment = "ALL"


class TemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    content: str | None = Field(default=None, min_length=1)
    sentiment: TemplateSentiment | None = None


class TemplateOut(BaseModel):
    id: str
    business_profile_id: str
    name: str
    content: str
    sentiment: str
    usage_count: int
    is_favorite: bool
    created_by: str | None
    created_at: datetime
    updated_at: datetime


class TemplateFavoriteOut(BaseModel):
    success: bool = True
    is_favorite: bool
