"""
Resource Permission Gate.

Tabla fija (rol, acción) → permitido. El gate solo devuelve bool; el mensaje
que ve el usuario sale de ``DENIAL_MESSAGES`` en quien llama.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from app.core.errors import Unauthorized
from app.services.roles import Role, classify_role, require_caller
from app.services.store import MembershipStore


class Action(str, Enum):
    DELETE_POST = "delete_post"
    CREATE_EVENT = "create_event"
    UPDATE_EVENT = "update_event"
    PUBLISH_EVENT = "publish_event"
    DELETE_EVENT = "delete_event"
    CURATE_VIDEO = "curate_video"


@dataclass(frozen=True)
class ResourceRef:
    author_id: Optional[int] = None
    video_url: Optional[str] = None

    @classmethod
    def from_post(cls, post) -> "ResourceRef":
        return cls(author_id=post.author_id, video_url=post.video_url)


_MODERATORS = frozenset({Role.OWNER, Role.MODERATOR})

ACTION_ROLES: dict[Action, frozenset[Role]] = {
    Action.DELETE_POST: _MODERATORS,
    Action.CREATE_EVENT: _MODERATORS,
    Action.UPDATE_EVENT: _MODERATORS,
    Action.PUBLISH_EVENT: _MODERATORS,
    Action.DELETE_EVENT: _MODERATORS,
    Action.CURATE_VIDEO: _MODERATORS,
}

DENIAL_MESSAGES: dict[Action, str] = {
    Action.DELETE_POST: "You do not have permission to delete this post",
    Action.CREATE_EVENT: "Only group owners and moderators can create events",
    Action.UPDATE_EVENT: "Only group owners and moderators can update events",
    Action.PUBLISH_EVENT: "Only group owners and moderators can publish events",
    Action.DELETE_EVENT: "Only group owners and moderators can delete events",
    Action.CURATE_VIDEO: "Only group owners and moderators can curate videos",
}


def is_allowed(
    role: Role,
    action: Action,
    caller_id: int | None = None,
    resource: ResourceRef | None = None,
) -> bool:
    if action is Action.DELETE_POST and caller_id is not None and resource is not None:
        # el autor puede borrar lo suyo, sea cual sea su rol
        if resource.author_id == caller_id:
            return True

    if role not in ACTION_ROLES[action]:
        return False

    if action is Action.CURATE_VIDEO:
        return resource is not None and resource.video_url is not None

    return True


def can_perform(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    action: Action,
    resource: ResourceRef | None = None,
) -> bool:
    if caller_id is None:
        return False
    role = classify_role(store, caller_id, group_id)
    return is_allowed(role, action, caller_id, resource)


def require_permission(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    action: Action,
    resource: ResourceRef | None = None,
) -> int:
    """Como ``can_perform`` pero lanza Unauthenticated/Unauthorized. Antes de escribir nada."""
    caller_id = require_caller(caller_id)
    if not can_perform(store, caller_id, group_id, action, resource):
        raise Unauthorized(DENIAL_MESSAGES[action])
    return caller_id
