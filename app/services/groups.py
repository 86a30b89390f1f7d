"""Administración de grupos: alta, ajustes, borrado lógico y gestión de miembros."""

from dataclasses import dataclass
from typing import Optional

from app.core.errors import Conflict, InvalidState, NotFound, Unauthorized
from app.core.logging_config import get_logger
from app.core.timeutils import utc_now_naive
from app.models.enums import GroupStatus, MemberRole, Visibility
from app.models.group import Group
from app.models.membership import GroupMember
from app.models.user import User
from app.schemas.group import GroupCreate, GroupUpdate
from app.services.join_policy import join_action_for
from app.services.roles import Role, classify_role, get_active_group, require_caller
from app.services.store import MembershipStore

logger = get_logger(__name__)


@dataclass
class GroupListing:
    group: Group
    role: Role
    member_count: int


@dataclass
class OwnerContact:
    group_id: int
    group_name: str
    owner_id: int
    display_name: str


def create_group(store: MembershipStore, caller_id: int | None, payload: GroupCreate) -> Group:
    user_id = require_caller(caller_id, "You must be logged in to create a group")

    if store.get_group_by_slug(payload.slug) is not None:
        raise Conflict("A group with this slug already exists")

    # grupo + fila owner del creador en la misma transacción
    with store.transaction():
        group = store.insert_group(
            name=payload.name,
            slug=payload.slug,
            description=payload.description or None,
            visibility=payload.visibility.value,
            invite_code=payload.invite_code or None,
            created_by=user_id,
            status=GroupStatus.ACTIVE.value,
        )
        store.insert_membership(group.id, user_id, MemberRole.OWNER.value)

    logger.info("Group %s created by %s (%s)", group.id, user_id, group.visibility)
    return group


def update_group_settings(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    payload: GroupUpdate,
) -> Group:
    user_id = require_caller(caller_id)
    group = get_active_group(store, group_id)
    if not classify_role(store, user_id, group_id).can_moderate:
        raise Unauthorized("Only group owners and moderators can change group settings")

    fields = payload.model_dump(exclude_unset=True, mode="json")
    for required in ("name", "visibility"):
        if fields.get(required, "") is None:
            fields.pop(required)
    if "invite_code" in fields:
        fields["invite_code"] = fields["invite_code"] or None

    with store.transaction():
        store.update_group(group, **fields)
    return group


def delete_group(store: MembershipStore, caller_id: int | None, group_id: int) -> Group:
    """Borrado lógico: status + deleted_at. Nunca se borra la fila."""
    user_id = require_caller(caller_id)
    group = get_active_group(store, group_id)
    if classify_role(store, user_id, group_id) is not Role.OWNER:
        raise Unauthorized("Only the group owner can delete the group")

    with store.transaction():
        store.update_group(group, status=GroupStatus.DELETED.value, deleted_at=utc_now_naive())
    logger.info("Group %s soft-deleted by %s", group_id, user_id)
    return group


def set_member_role(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    user_id: int,
    role: MemberRole,
) -> GroupMember:
    owner_id = require_caller(caller_id)
    group = get_active_group(store, group_id)
    if classify_role(store, owner_id, group_id) is not Role.OWNER:
        raise Unauthorized("Only the group owner can change roles")

    if role is MemberRole.OWNER or user_id == group.created_by:
        raise InvalidState("Group ownership cannot be transferred")

    target = store.get_membership(group_id, user_id)
    if target is None:
        raise NotFound("User is not a member of this group")

    with store.transaction():
        store.update_membership_role(target, role.value)
    logger.info("User %s is now %s in group %s", user_id, role.value, group_id)
    return target


def remove_member(store: MembershipStore, caller_id: int | None, group_id: int, user_id: int) -> None:
    moderator_id = require_caller(caller_id)
    group = get_active_group(store, group_id)
    caller_role = classify_role(store, moderator_id, group_id)
    if not caller_role.can_moderate:
        raise Unauthorized("Only group owners and moderators can remove members")

    if user_id == group.created_by:
        raise InvalidState("The group owner cannot be removed")

    target = store.get_membership(group_id, user_id)
    if target is None:
        raise NotFound("User is not a member of this group")

    if caller_role is Role.MODERATOR and classify_role(store, user_id, group_id) is Role.MODERATOR:
        raise Unauthorized("Only the group owner can remove moderators")

    with store.transaction():
        store.delete_membership(target)
    logger.info("User %s removed from group %s by %s", user_id, group_id, moderator_id)


def leave_group(store: MembershipStore, caller_id: int | None, group_id: int) -> None:
    user_id = require_caller(caller_id)
    group = get_active_group(store, group_id)
    if user_id == group.created_by:
        raise InvalidState("The group owner cannot leave the group")

    membership = store.get_membership(group_id, user_id)
    if membership is None:
        raise NotFound("You are not a member of this group")

    with store.transaction():
        store.delete_membership(membership)


def my_role(store: MembershipStore, caller_id: int | None, group_id: int) -> Role:
    get_active_group(store, group_id)
    return classify_role(store, caller_id, group_id)


def get_group(store: MembershipStore, caller_id: int | None, group_id: int) -> GroupListing:
    group = get_active_group(store, group_id)
    role = classify_role(store, caller_id, group_id)
    counts = store.count_members([group_id])
    return GroupListing(group=group, role=role, member_count=counts.get(group_id, 0))


def list_groups(store: MembershipStore, caller_id: int | None) -> list[GroupListing]:
    """Grupos del usuario primero (con su rol), luego el resto de grupos listados."""
    listings: list[GroupListing] = []
    seen: set[int] = set()

    if caller_id is not None:
        for group, _ in store.list_groups_for_user(caller_id):
            if group.id in seen or not group.is_active:
                continue
            seen.add(group.id)
            role = classify_role(store, caller_id, group.id)
            listings.append(GroupListing(group=group, role=role, member_count=0))

    for group in store.list_listed_groups():
        if group.id in seen:
            continue
        seen.add(group.id)
        listings.append(GroupListing(group=group, role=Role.NONE, member_count=0))

    counts = store.count_members(seen)
    for listing in listings:
        listing.member_count = counts.get(listing.group.id, 0)
    return listings


def list_members(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    page: int = 1,
    page_size: int = 20,
    search: str | None = None,
) -> tuple[list[tuple[GroupMember, User]], int]:
    group = get_active_group(store, group_id)
    if group.visibility != Visibility.OPEN.value and not classify_role(store, caller_id, group_id).is_member:
        raise Unauthorized("You are not a member of this group")
    return store.list_members(group_id, page=page, page_size=page_size, search=(search or "").strip() or None)


def get_owner_contact(store: MembershipStore, caller_id: int | None, group_id: int) -> OwnerContact:
    require_caller(caller_id)
    group = get_active_group(store, group_id)
    owner: Optional[User] = store.get_user(group.created_by)
    if owner is None:
        raise NotFound("Owner not found")
    return OwnerContact(
        group_id=group.id,
        group_name=group.name,
        owner_id=owner.id,
        display_name=owner.full_name or "Group Admin",
    )


def join_action(group: Group) -> str:
    return join_action_for(group.visibility).value
