from fastapi import APIRouter, Depends

from app.api.deps import get_store
from app.core.auth import caller_id_of, get_current_user, get_current_user_optional
from app.models.user import User
from app.schemas.join import (
    AdminJoinRequestPublic,
    ApprovalPublic,
    InviteCodeRequest,
    JoinRequestPublic,
    JoinResultPublic,
)
from app.services import join_policy
from app.services.join_policy import JoinResult
from app.services.store import MembershipStore

router = APIRouter(tags=["join"])


def _result(result: JoinResult) -> JoinResultPublic:
    return JoinResultPublic(
        group_id=result.group_id,
        state=result.state.value,
        created=result.created,
        request_id=result.request_id,
    )


@router.get("/groups/{group_id}/join-state")
def join_state(
    group_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    if current_user is None:
        return {"group_id": group_id, "state": None}
    state = join_policy.join_state(store, group_id, current_user.id)
    return {"group_id": group_id, "state": state.value}


@router.post("/groups/{group_id}/join", response_model=JoinResultPublic)
def join_group(
    group_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    return _result(join_policy.join_group(store, current_user.id, group_id))


@router.post("/groups/{group_id}/join-requests", response_model=JoinResultPublic)
def request_to_join(
    group_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    return _result(join_policy.request_to_join(store, current_user.id, group_id))


@router.post("/groups/{group_id}/redeem-invite", response_model=JoinResultPublic)
def redeem_invite(
    group_id: int,
    payload: InviteCodeRequest,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    return _result(join_policy.redeem_invite_code(store, current_user.id, group_id, payload.invite_code))


@router.post("/groups/join-by-invite", response_model=JoinResultPublic)
def join_by_invite(
    payload: InviteCodeRequest,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    return _result(join_policy.join_by_invite_code(store, current_user.id, payload.invite_code))


@router.get("/groups/{group_id}/join-requests", response_model=list[JoinRequestPublic])
def list_pending_requests(
    group_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    rows = join_policy.list_pending_requests(store, current_user.id, group_id)
    return [
        JoinRequestPublic(
            request_id=r.id,
            user_id=r.user_id,
            group_id=r.group_id,
            status=r.status,
            requested_at=r.created_at,
            full_name=u.full_name,
            avatar_url=u.avatar_url,
        )
        for (r, u) in rows
    ]


@router.get("/join-requests/mine")
def my_request_statuses(
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    statuses = join_policy.my_request_statuses(store, caller_id_of(current_user))
    return {"statuses": {str(group_id): status for group_id, status in statuses.items()}}


@router.get("/join-requests/admin", response_model=list[AdminJoinRequestPublic])
def admin_join_requests(
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    rows = join_policy.list_admin_join_requests(store, current_user.id)
    return [
        AdminJoinRequestPublic(
            request_id=r.id,
            user_id=r.user_id,
            group_id=r.group_id,
            group_name=g.name,
            status=r.status,
            requested_at=r.created_at,
            full_name=u.full_name,
            avatar_url=u.avatar_url,
        )
        for (r, g, u) in rows
    ]


@router.post("/join-requests/{request_id}/approve", response_model=ApprovalPublic)
def approve_request(
    request_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    result = join_policy.approve_join_request(store, current_user.id, request_id)
    return ApprovalPublic(
        request_id=result.request_id,
        group_id=result.group_id,
        user_id=result.user_id,
        already_member=result.already_member,
    )


@router.post("/join-requests/{request_id}/deny")
def deny_request(
    request_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    request = join_policy.deny_join_request(store, current_user.id, request_id)
    return {"ok": True, "request_id": request.id, "status": request.status}


@router.delete("/join-requests/{request_id}")
def clear_request(
    request_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    join_policy.clear_join_request(store, current_user.id, request_id)
    return {"ok": True, "cleared_request_id": request_id}
