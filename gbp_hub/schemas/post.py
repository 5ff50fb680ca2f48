from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

PostType = Literal["UPDATE", "EVENT", "OFFER"]
# FAILED / DELETED are reached through updates only
NewPostStatus = Literal["DRAFT", "SCHEDULED", "PUBLISHED"]
PostStatus = Literal["DRAFT", "SCHEDULED", "PUBLISHED", "FAILED", "DELETED"]


class CallToAction(BaseModel):
    type: str | None = None
    url: str | None = None
    text: str | None = None


class PostMedia(BaseModel):
    url: str = Field(min_length=1, max_length=1000)
    alt: str = ""
    order: int = 0


class PostCreate(BaseModel):
    business_profile_id: str
    content: str
    post_type: PostType = "UPDATE"
    call_to_action: CallToAction | None = None
    media: list[PostMedia] = Field(default_factory=list)
    status: NewPostStatus = "DRAFT"
    scheduled_at: datetime | None = None
    template_id: str | None = None


class PostUpdate(BaseModel):
    content: str | None = None
    post_type: PostType | None = None
    call_to_action: CallToAction | None = None
    media: list[PostMedia] | None = None
    status: PostStatus | None = None
    scheduled_at: datetime | None = None


class PostOut(BaseModel):
    id: str
    business_profile_id: str
    template_id: str | None
    content: str
    post_type: str
    call_to_action: dict | None
    media: list[dict]
    status: str
    scheduled_at: datetime | None
    published_at: datetime | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime


class PostTemplateCreate(BaseModel):
    business_profile_id: str
    name: str = Field(max_length=200)
    description: str | None = None
    content: str
    post_type: PostType = "UPDATE"
    call_to_action: CallToAction | None = None
    tags: list[str] = Field(default_factory=list)


class PostTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    description: str | None = None
    content: str | None = None
    post_type: PostType | None = None
    call_to_action: CallToAction | None = None
    tags: list[str] | None = None


class PostTemplateOut(BaseModel):
    id: str
    business_profile_id: str
    name: str
    description: str | None
    content: str
    post_type: str
    call_to_action: dict
    tags: list[str]
    usage_count: int
    is_favorite: bool
    created_by: str | None
    created_at: datetime
    updated_at: datetime
