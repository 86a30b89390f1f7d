from fastapi import APIRouter, Depends, Query

from app.api.deps import get_store
from app.core.auth import caller_id_of, get_current_user, get_current_user_optional
from app.models.group import Group
from app.models.user import User
from app.schemas.group import (
    GroupCreate,
    GroupPublic,
    GroupUpdate,
    MemberPage,
    MemberPublic,
    OwnerContactPublic,
    RoleUpdate,
)
from app.services import groups as group_service
from app.services.store import MembershipStore


router = APIRouter(prefix="/groups", tags=["groups"])


def _group_public(group: Group, role: str | None = None, members_count: int | None = None) -> GroupPublic:
    return GroupPublic(
        id=group.id,
        name=group.name,
        slug=group.slug,
        description=group.description,
        visibility=group.visibility,
        created_by=group.created_by,
        created_at=group.created_at,
        join_action=group_service.join_action(group),
        members_count=members_count,
        my_role=role,
    )


@router.post("", response_model=GroupPublic)
def create_group(
    payload: GroupCreate,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    group = group_service.create_group(store, current_user.id, payload)
    return _group_public(group, role="owner", members_count=1)


@router.get("", response_model=list[GroupPublic])
def list_groups(
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    listings = group_service.list_groups(store, caller_id_of(current_user))
    return [_group_public(g.group, g.role.value, g.member_count) for g in listings]


@router.get("/{group_id}", response_model=GroupPublic)
def get_group(
    group_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    listing = group_service.get_group(store, caller_id_of(current_user), group_id)
    return _group_public(listing.group, listing.role.value, listing.member_count)


@router.patch("/{group_id}", response_model=GroupPublic)
def update_group(
    group_id: int,
    payload: GroupUpdate,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    group = group_service.update_group_settings(store, current_user.id, group_id, payload)
    return _group_public(group)


# borrado lógico: status=deleted + deleted_at
@router.delete("/{group_id}")
def delete_group(
    group_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    group_service.delete_group(store, current_user.id, group_id)
    return {"ok": True, "deleted_group_id": group_id}


@router.get("/{group_id}/members/me")
def my_role(
    group_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    role = group_service.my_role(store, caller_id_of(current_user), group_id)
    return {"role": role.value}


@router.get("/{group_id}/members", response_model=MemberPage)
def list_members(
    group_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: str | None = None,
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    rows, total = group_service.list_members(
        store,
        caller_id_of(current_user),
        group_id,
        page=page,
        page_size=page_size,
        search=search,
    )
    return MemberPage(
        members=[
            MemberPublic(
                user_id=u.id,
                full_name=u.full_name,
                avatar_url=u.avatar_url,
                role=m.role,
                joined_at=m.joined_at,
            )
            for (m, u) in rows
        ],
        total_count=total,
        page=page,
        page_size=page_size,
    )


@router.post("/{group_id}/members/{user_id}/role")
def set_member_role(
    group_id: int,
    user_id: int,
    payload: RoleUpdate,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    member = group_service.set_member_role(store, current_user.id, group_id, user_id, payload.role)
    return {"ok": True, "user_id": user_id, "role": member.role}


@router.post("/{group_id}/members/{user_id}/kick")
def kick_member(
    group_id: int,
    user_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    group_service.remove_member(store, current_user.id, group_id, user_id)
    return {"ok": True, "kicked_user_id": user_id}


@router.post("/{group_id}/leave")
def leave_group(
    group_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    group_service.leave_group(store, current_user.id, group_id)
    return {"ok": True}


@router.get("/{group_id}/owner", response_model=OwnerContactPublic)
def owner_contact(
    group_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    contact = group_service.get_owner_contact(store, current_user.id, group_id)
    return OwnerContactPublic(
        group_id=contact.group_id,
        group_name=contact.group_name,
        owner_id=contact.owner_id,
        display_name=contact.display_name,
    )
