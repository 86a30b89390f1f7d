from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from app.models.enums import MemberRole, Visibility

class GroupCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=120)
    slug: str = Field(min_length=1, max_length=120, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = Field(default=None, max_length=2000)
    visibility: Visibility = Visibility.OPEN
    invite_code: Optional[str] = Field(default=None, max_length=64)

class GroupUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)
    visibility: Optional[Visibility] = None
    invite_code: Optional[str] = Field(default=None, max_length=64)

class GroupPublic(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    visibility: str
    created_by: int
    created_at: datetime

    join_action: Optional[str] = None
    members_count: Optional[int] = None
    my_role: Optional[str] = None

class RoleUpdate(BaseModel):
    role: MemberRole

class MemberPublic(BaseModel):
    user_id: int
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: str
    joined_at: datetime

class MemberPage(BaseModel):
    members: list[MemberPublic]
    total_count: int
    page: int
    page_size: int

class OwnerContactPublic(BaseModel):
    group_id: int
    group_name: str
    owner_id: int
    display_name: str
