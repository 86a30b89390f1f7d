from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.enums import EventStatus, EventType


class EventCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    event_type: EventType
    start_at: datetime
    end_at: Optional[datetime] = None

    description: Optional[str] = None
    intention: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    access_details: Optional[str] = None
    additional_info_link: Optional[str] = Field(default=None, max_length=500)

    status: EventStatus = EventStatus.DRAFT

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_at is not None and self.end_at < self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class EventUpdate(EventCreate):
    # sin status → no se toca
    status: Optional[EventStatus] = None


class EventPublic(BaseModel):
    id: int
    group_id: int
    created_by: int
    title: str
    event_type: str
    start_at: datetime
    end_at: Optional[datetime] = None
    description: Optional[str] = None
    intention: Optional[str] = None
    image_url: Optional[str] = None
    access_details: Optional[str] = None
    additional_info_link: Optional[str] = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class EventResultPublic(BaseModel):
    ok: bool = True
    event: EventPublic
    announcement_posted: Optional[bool] = None
