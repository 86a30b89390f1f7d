"""Role Classifier: el rol efectivo de quien llama dentro de un grupo."""

from enum import Enum

from app.core.errors import EngineError, NotFound, Unauthenticated, Unauthorized
from app.core.logging_config import get_logger
from app.models.enums import MODERATOR_ROLE_VALUES, Visibility
from app.models.group import Group
from app.services.store import MembershipStore

logger = get_logger(__name__)


class Role(str, Enum):
    OWNER = "owner"
    MODERATOR = "moderator"
    MEMBER = "member"
    NONE = "none"

    @property
    def can_moderate(self) -> bool:
        return self in (Role.OWNER, Role.MODERATOR)

    @property
    def is_member(self) -> bool:
        return self is not Role.NONE


def classify_role(store: MembershipStore, caller_id: int | None, group_id: int) -> Role:
    """
    owner si es el creador del grupo; si no, según la fila de membresía.
    Sin caché: cada decisión vuelve a consultar. Cualquier error → NONE.
    """
    if caller_id is None:
        return Role.NONE

    try:
        group = store.get_group(group_id)
        if group is None or not group.is_active:
            return Role.NONE

        if group.created_by == caller_id:
            return Role.OWNER

        membership = store.get_membership(group_id, caller_id)
    except EngineError:
        logger.warning("Role lookup failed (group_id=%s user_id=%s), failing closed", group_id, caller_id)
        return Role.NONE

    if membership is None:
        return Role.NONE
    if membership.role in MODERATOR_ROLE_VALUES:
        return Role.MODERATOR
    return Role.MEMBER


def require_caller(caller_id: int | None, message: str | None = None) -> int:
    if caller_id is None:
        raise Unauthenticated(message)
    return caller_id


def get_active_group(store: MembershipStore, group_id: int) -> Group:
    group = store.get_group(group_id)
    if group is None or not group.is_active:
        raise NotFound("Group not found")
    return group


def require_readable(store: MembershipStore, caller_id: int | None, group: Group) -> None:
    """El contenido de un grupo privado solo lo ven sus miembros."""
    if group.visibility == Visibility.PRIVATE.value and not classify_role(store, caller_id, group.id).is_member:
        raise Unauthorized("You are not a member of this group")
