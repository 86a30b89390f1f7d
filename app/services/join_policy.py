"""
Join Policy Engine.

Según la visibilidad del grupo, un no-miembro:

- ``open``    → se une directamente;
- ``request`` → envía una solicitud que un moderador/owner aprueba o rechaza;
- ``private`` → canjea el código de invitación.

Ciclo de vida de la solicitud: ``pending → approved | rejected``. Una
solicitud rechazada bloquea nuevas solicitudes hasta que un moderador la
limpia (``clear_join_request``).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from app.core.errors import Conflict, ContactAdmin, InvalidState, NotFound, Unauthorized
from app.core.logging_config import get_logger
from app.models.enums import JoinRequestStatus, MemberRole, Visibility
from app.models.group import Group
from app.models.join_request import GroupJoinRequest
from app.models.user import User
from app.services.roles import classify_role, get_active_group, require_caller
from app.services.store import MembershipStore

logger = get_logger(__name__)

REVIEW_DENIED = "Only group owners and moderators can review join requests"
OPEN_STATUSES = (JoinRequestStatus.PENDING.value, JoinRequestStatus.REJECTED.value)


class JoinAction(str, Enum):
    JOIN = "join"
    REQUEST = "request"
    INVITE_CODE = "invite_code"


class JoinState(str, Enum):
    NOT_REQUESTED = "not_requested"
    PENDING = "pending"
    REJECTED = "rejected"
    MEMBER = "member"


@dataclass
class JoinResult:
    group_id: int
    state: JoinState
    created: bool
    request_id: Optional[int] = None


@dataclass
class ApprovalResult:
    request_id: int
    group_id: int
    user_id: int
    already_member: bool = False


def join_action_for(visibility: str) -> JoinAction:
    if visibility == Visibility.OPEN.value:
        return JoinAction.JOIN
    if visibility == Visibility.REQUEST.value:
        return JoinAction.REQUEST
    return JoinAction.INVITE_CODE


def join_state(store: MembershipStore, group_id: int, user_id: int) -> JoinState:
    group = get_active_group(store, group_id)
    if group.created_by == user_id or store.get_membership(group_id, user_id) is not None:
        return JoinState.MEMBER

    request = store.get_join_request(group_id, user_id, OPEN_STATUSES)
    if request is None:
        return JoinState.NOT_REQUESTED
    if request.status == JoinRequestStatus.REJECTED.value:
        return JoinState.REJECTED
    return JoinState.PENDING


def _insert_member(store: MembershipStore, group: Group, user_id: int) -> JoinResult:
    # doble unión → Conflict (uq_group_user), no se ignora en silencio
    with store.transaction():
        store.insert_membership(group.id, user_id, MemberRole.MEMBER.value)
    logger.info("User %s joined group %s", user_id, group.id)
    return JoinResult(group_id=group.id, state=JoinState.MEMBER, created=True)


def join_group(store: MembershipStore, caller_id: int | None, group_id: int) -> JoinResult:
    user_id = require_caller(caller_id, "You must be logged in to join a group")
    group = get_active_group(store, group_id)

    action = join_action_for(group.visibility)
    if action is JoinAction.REQUEST:
        raise InvalidState("This group requires approval: send a join request instead")
    if action is JoinAction.INVITE_CODE:
        raise Unauthorized("This group is private: an invite code is required")

    if group.created_by == user_id or store.get_membership(group.id, user_id) is not None:
        raise Conflict("You are already a member of this group")

    return _insert_member(store, group, user_id)


def redeem_invite_code(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    invite_code: str | None,
) -> JoinResult:
    """Comparación exacta del código (tras quitar espacios). Sin caducidad ni uso único."""
    user_id = require_caller(caller_id, "You must be logged in to join a group")
    group = get_active_group(store, group_id)

    code = (invite_code or "").strip()
    if not code or group.invite_code is None or code != group.invite_code:
        raise Unauthorized("Invalid invite code")

    if group.created_by == user_id or store.get_membership(group.id, user_id) is not None:
        raise Conflict("You are already a member of this group")

    return _insert_member(store, group, user_id)


def join_by_invite_code(store: MembershipStore, caller_id: int | None, invite_code: str | None) -> JoinResult:
    require_caller(caller_id, "You must be logged in to join a group")
    code = (invite_code or "").strip()
    if not code:
        raise Unauthorized("Invalid invite code")

    group = store.get_group_by_invite_code(code)
    if group is None:
        raise Unauthorized("Invalid invite code")
    return redeem_invite_code(store, caller_id, group.id, code)


def request_to_join(store: MembershipStore, caller_id: int | None, group_id: int) -> JoinResult:
    user_id = require_caller(caller_id, "You must be logged in to join a group")
    group = get_active_group(store, group_id)

    if group.visibility != Visibility.REQUEST.value:
        raise InvalidState("This group does not take join requests")

    if group.created_by == user_id or store.get_membership(group.id, user_id) is not None:
        raise Conflict("You are already a member of this group")

    existing = store.get_join_request(group.id, user_id, OPEN_STATUSES)
    if existing is not None:
        if existing.status == JoinRequestStatus.REJECTED.value:
            raise ContactAdmin()
        # ya pendiente: idempotente
        return JoinResult(group_id=group.id, state=JoinState.PENDING, created=False, request_id=existing.id)

    try:
        with store.transaction():
            request = store.insert_join_request(group.id, user_id)
            request_id = request.id
    except Conflict:
        # otra petición concurrente ya creó la pendiente
        existing = store.get_join_request(group.id, user_id, [JoinRequestStatus.PENDING.value])
        if existing is None:
            raise
        return JoinResult(group_id=group.id, state=JoinState.PENDING, created=False, request_id=existing.id)

    logger.info("Join request %s created (group_id=%s user_id=%s)", request_id, group.id, user_id)
    return JoinResult(group_id=group.id, state=JoinState.PENDING, created=True, request_id=request_id)


def _load_request_for_review(
    store: MembershipStore,
    caller_id: int | None,
    request_id: int,
) -> tuple[int, GroupJoinRequest]:
    reviewer_id = require_caller(caller_id)
    request = store.get_join_request_by_id(request_id)
    if request is None:
        raise NotFound("Join request not found")

    get_active_group(store, request.group_id)
    if not classify_role(store, reviewer_id, request.group_id).can_moderate:
        raise Unauthorized(REVIEW_DENIED)
    return reviewer_id, request


def _require_pending(request: GroupJoinRequest) -> None:
    if request.status == JoinRequestStatus.APPROVED.value:
        raise InvalidState("This join request has already been approved")
    if request.status != JoinRequestStatus.PENDING.value:
        raise InvalidState("This join request is no longer pending")


def approve_join_request(store: MembershipStore, caller_id: int | None, request_id: int) -> ApprovalResult:
    """
    Dos escrituras, una transacción: primero la membresía, después la
    solicitud pasa a ``approved``. Si la membresía ya existe (otro moderador
    aprobó a la vez) la aprobación es un no-op benigno.
    """
    reviewer_id, request = _load_request_for_review(store, caller_id, request_id)
    _require_pending(request)

    group_id, user_id = request.group_id, request.user_id
    approved = JoinRequestStatus.APPROVED.value
    pending = JoinRequestStatus.PENDING.value

    try:
        with store.transaction():
            store.insert_membership(group_id, user_id, MemberRole.MEMBER.value)
            if not store.update_join_request_status(request_id, approved, reviewer_id, expected_status=pending):
                raise InvalidState("This join request is no longer pending")
    except Conflict:
        with store.transaction():
            store.update_join_request_status(request_id, approved, reviewer_id, expected_status=pending)
        logger.info("Join request %s: user %s was already a member of group %s", request_id, user_id, group_id)
        return ApprovalResult(request_id=request_id, group_id=group_id, user_id=user_id, already_member=True)

    logger.info("Join request %s approved by %s", request_id, reviewer_id)
    return ApprovalResult(request_id=request_id, group_id=group_id, user_id=user_id)


def deny_join_request(store: MembershipStore, caller_id: int | None, request_id: int) -> GroupJoinRequest:
    reviewer_id, request = _load_request_for_review(store, caller_id, request_id)
    _require_pending(request)

    with store.transaction():
        changed = store.update_join_request_status(
            request_id,
            JoinRequestStatus.REJECTED.value,
            reviewer_id,
            expected_status=JoinRequestStatus.PENDING.value,
        )
        if not changed:
            raise InvalidState("This join request is no longer pending")

    logger.info("Join request %s rejected by %s", request_id, reviewer_id)
    return store.get_join_request_by_id(request_id)


def clear_join_request(store: MembershipStore, caller_id: int | None, request_id: int) -> None:
    """Borra una solicitud rechazada para que el usuario pueda volver a pedir."""
    reviewer_id, request = _load_request_for_review(store, caller_id, request_id)
    if request.status != JoinRequestStatus.REJECTED.value:
        raise InvalidState("Only rejected requests can be cleared")

    with store.transaction():
        store.delete_join_request(request)
    logger.info("Join request %s cleared by %s", request_id, reviewer_id)


def list_pending_requests(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
) -> list[tuple[GroupJoinRequest, User]]:
    reviewer_id = require_caller(caller_id)
    get_active_group(store, group_id)
    if not classify_role(store, reviewer_id, group_id).can_moderate:
        raise Unauthorized(REVIEW_DENIED)
    return store.list_join_requests(group_id, JoinRequestStatus.PENDING.value)


def my_request_statuses(store: MembershipStore, caller_id: int | None) -> dict[int, str]:
    if caller_id is None:
        return {}
    requests = store.list_user_join_requests(caller_id, OPEN_STATUSES)
    return {r.group_id: r.status for r in requests}


def list_admin_join_requests(
    store: MembershipStore,
    caller_id: int | None,
) -> list[tuple[GroupJoinRequest, Group, User]]:
    """Bandeja del moderador: pendientes de todos los grupos que posee o modera."""
    if caller_id is None:
        return []
    return store.list_moderated_join_requests(caller_id, JoinRequestStatus.PENDING.value)
