from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PostCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    body: str = Field(min_length=1)
    image_url: Optional[str] = Field(default=None, max_length=500)
    document_url: Optional[str] = Field(default=None, max_length=500)
    document_name: Optional[str] = Field(default=None, max_length=255)
    link_url: Optional[str] = Field(default=None, max_length=500)
    video_url: Optional[str] = Field(default=None, max_length=500)


class PostUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    body: Optional[str] = Field(default=None, min_length=1)
    image_url: Optional[str] = Field(default=None, max_length=500)
    document_url: Optional[str] = Field(default=None, max_length=500)
    document_name: Optional[str] = Field(default=None, max_length=255)
    link_url: Optional[str] = Field(default=None, max_length=500)
    video_url: Optional[str] = Field(default=None, max_length=500)


class ReplyCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    body: str = Field(min_length=1)
    video_url: Optional[str] = Field(default=None, max_length=500)


class ReportRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    reason: str = Field(min_length=1, max_length=200)
    details: Optional[str] = Field(default=None, max_length=300)


class CurateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    video_title: str = Field(min_length=1, max_length=200)


class PostPublic(BaseModel):
    id: int
    author_id: int
    context_id: int
    parent_id: Optional[int] = None
    body: str
    status: str
    image_url: Optional[str] = None
    document_url: Optional[str] = None
    document_name: Optional[str] = None
    link_url: Optional[str] = None
    video_url: Optional[str] = None
    video_title: Optional[str] = None
    is_featured: bool = False
    posted_as_system: bool = False
    created_at: datetime

    class Config:
        from_attributes = True


class ModerationRightsPublic(BaseModel):
    edit: bool
    delete: bool
    report: bool
