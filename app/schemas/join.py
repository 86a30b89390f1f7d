from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class InviteCodeRequest(BaseModel):
    invite_code: Optional[str] = None


class JoinResultPublic(BaseModel):
    ok: bool = True
    group_id: int
    state: str
    created: bool
    request_id: Optional[int] = None


class JoinRequestPublic(BaseModel):
    request_id: int
    user_id: int
    group_id: int
    status: str
    requested_at: datetime
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


class AdminJoinRequestPublic(JoinRequestPublic):
    group_name: str


class ApprovalPublic(BaseModel):
    ok: bool = True
    request_id: int
    group_id: int
    user_id: int
    already_member: bool = False
