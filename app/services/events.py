"""
Event Publication Coordinator.

``draft → published`` es de un solo sentido. Cada entrada en ``published``
(al crear, al publicar un borrador, o al guardar con status ``published``)
inserta un anuncio en el feed del grupo como actor de sistema.

El evento manda: si el anuncio falla se registra en el log y se devuelve
``announcement_posted=False``, pero el cambio del evento no se deshace ni se
reintenta.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.errors import EngineError, InvalidState, NotFound
from app.core.logging_config import get_logger
from app.core.timeutils import to_utc_naive, utc_now_naive
from app.models.enums import EventStatus, EventType
from app.models.event import GroupEvent
from app.schemas.event import EventCreate, EventUpdate
from app.services.permissions import Action, require_permission
from app.services.roles import classify_role, get_active_group, require_caller, require_readable
from app.services.store import SYSTEM_ACTOR, Attachments, MembershipStore

logger = get_logger(__name__)

_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

TYPE_LABELS = {
    EventType.IN_PERSON.value: "In-Person",
    EventType.VIRTUAL.value: "Virtual",
}


@dataclass
class EventResult:
    event: GroupEvent
    # None: no tocaba anunciar
    announcement_posted: Optional[bool] = None


def _format_when(dt: datetime) -> str:
    # sin locale: mismo texto en cualquier máquina
    hour = dt.hour % 12 or 12
    meridiem = "AM" if dt.hour < 12 else "PM"
    return (
        f"{_WEEKDAYS[dt.weekday()]}, {_MONTHS[dt.month - 1]} {dt.day}, {dt.year} "
        f"at {hour}:{dt.minute:02d} {meridiem}"
    )


def type_label(event_type: str) -> str:
    return TYPE_LABELS.get(event_type, "Hybrid")


def format_announcement(
    title: str,
    start_at: datetime,
    end_at: datetime | None,
    event_type: str,
    description: str | None,
) -> str:
    when = _format_when(start_at)
    if end_at is not None:
        when = f"{when} - {_format_when(end_at)}"

    body = f"📅 **{title}**\n\n"
    body += f"🕐 {when} (UTC)\n"
    body += f"📍 {type_label(event_type)} Event\n"
    if description:
        body += f"\n{description}"
    body += "\n\nView details by clicking the event in the Event Calendar to the right."
    return body


def _announce(store: MembershipStore, event: GroupEvent, author_id: int) -> bool:
    body = format_announcement(
        event.title,
        event.start_at,
        event.end_at,
        event.event_type,
        event.description,
    )
    attachments = Attachments(
        image_url=event.image_url,
        link_url=event.additional_info_link,
    )
    event_id, group_id = event.id, event.group_id
    try:
        with store.transaction():
            store.insert_feed_post(
                group_id,
                body,
                attachments=attachments,
                actor=SYSTEM_ACTOR,
                author_id=author_id,
            )
    except EngineError:
        logger.exception("EVENT ANNOUNCEMENT INSERT FAILED (event_id=%s group_id=%s)", event_id, group_id)
        return False

    logger.info("Event %s announced in group %s", event_id, group_id)
    return True


def _event_fields(payload: EventCreate | EventUpdate) -> dict:
    return {
        "title": payload.title,
        "event_type": payload.event_type.value,
        "start_at": to_utc_naive(payload.start_at),
        "end_at": to_utc_naive(payload.end_at) if payload.end_at else None,
        "description": payload.description or None,
        "intention": payload.intention or None,
        "image_url": payload.image_url or None,
        "access_details": payload.access_details or None,
        "additional_info_link": payload.additional_info_link or None,
    }


def _get_group_event(store: MembershipStore, group_id: int, event_id: int) -> GroupEvent:
    event = store.get_event(event_id)
    if event is None or event.group_id != group_id:
        raise NotFound("Event not found")
    return event


def create_event(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    payload: EventCreate,
) -> EventResult:
    require_caller(caller_id)
    get_active_group(store, group_id)
    user_id = require_permission(store, caller_id, group_id, Action.CREATE_EVENT)

    status = EventStatus.PUBLISHED if payload.status is EventStatus.PUBLISHED else EventStatus.DRAFT
    with store.transaction():
        event = store.insert_event(
            group_id=group_id,
            created_by=user_id,
            status=status.value,
            **_event_fields(payload),
        )

    logger.info("Event %s created in group %s (%s)", event.id, group_id, status.value)
    if status is EventStatus.PUBLISHED:
        return EventResult(event=event, announcement_posted=_announce(store, event, user_id))
    return EventResult(event=event)


def update_event(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    event_id: int,
    payload: EventUpdate,
) -> EventResult:
    """
    Guardar con status ``published`` vuelve a anunciar aunque el evento ya
    estuviera publicado (comportamiento heredado, ver DESIGN.md).
    """
    require_caller(caller_id)
    get_active_group(store, group_id)
    user_id = require_permission(store, caller_id, group_id, Action.UPDATE_EVENT)
    event = _get_group_event(store, group_id, event_id)

    fields = _event_fields(payload)
    if payload.status is not None:
        if event.status == EventStatus.PUBLISHED.value and payload.status is EventStatus.DRAFT:
            raise InvalidState("Published events cannot go back to draft")
        fields["status"] = payload.status.value

    with store.transaction():
        store.update_event(event, **fields)

    if event.status == EventStatus.PUBLISHED.value and payload.status is EventStatus.PUBLISHED:
        return EventResult(event=event, announcement_posted=_announce(store, event, user_id))
    return EventResult(event=event)


def publish_event(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    event_id: int,
) -> EventResult:
    require_caller(caller_id)
    get_active_group(store, group_id)
    user_id = require_permission(store, caller_id, group_id, Action.PUBLISH_EVENT)
    event = _get_group_event(store, group_id, event_id)

    if event.status == EventStatus.PUBLISHED.value:
        raise InvalidState("This event is already published")

    with store.transaction():
        changed = store.update_event_status(
            event_id,
            EventStatus.PUBLISHED.value,
            expected_status=EventStatus.DRAFT.value,
        )
        if not changed:
            raise InvalidState("This event is already published")

    event = store.get_event(event_id)
    logger.info("Event %s published in group %s", event_id, group_id)
    return EventResult(event=event, announcement_posted=_announce(store, event, user_id))


def delete_event(store: MembershipStore, caller_id: int | None, group_id: int, event_id: int) -> None:
    require_caller(caller_id)
    get_active_group(store, group_id)
    require_permission(store, caller_id, group_id, Action.DELETE_EVENT)
    event = _get_group_event(store, group_id, event_id)

    with store.transaction():
        store.delete_event(event)
    logger.info("Event %s deleted from group %s", event_id, group_id)


def list_events(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    include_drafts: bool = False,
) -> list[GroupEvent]:
    group = get_active_group(store, group_id)
    require_readable(store, caller_id, group)
    if include_drafts and classify_role(store, caller_id, group_id).can_moderate:
        return store.list_events(group_id)
    return store.list_events(group_id, statuses=[EventStatus.PUBLISHED.value])


def upcoming_events(
    store: MembershipStore,
    group_id: int,
    limit: int = 3,
    caller_id: int | None = None,
) -> list[GroupEvent]:
    group = get_active_group(store, group_id)
    require_readable(store, caller_id, group)
    return store.list_events(
        group_id,
        statuses=[EventStatus.PUBLISHED.value],
        starts_after=utc_now_naive(),
        limit=limit,
    )


def get_event(store: MembershipStore, caller_id: int | None, group_id: int, event_id: int) -> GroupEvent:
    group = get_active_group(store, group_id)
    require_readable(store, caller_id, group)
    event = _get_group_event(store, group_id, event_id)
    # los borradores solo los ve quien puede gestionarlos
    if event.status != EventStatus.PUBLISHED.value and not classify_role(store, caller_id, group_id).can_moderate:
        raise NotFound("Event not found")
    return event
