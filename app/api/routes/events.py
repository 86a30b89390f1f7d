from fastapi import APIRouter, Depends, Query

from app.api.deps import get_store
from app.core.auth import caller_id_of, get_current_user, get_current_user_optional
from app.models.user import User
from app.schemas.event import EventCreate, EventPublic, EventResultPublic, EventUpdate
from app.services import events as event_service
from app.services.events import EventResult
from app.services.store import MembershipStore

router = APIRouter(tags=["events"])


def _result(result: EventResult) -> EventResultPublic:
    return EventResultPublic(
        event=EventPublic.model_validate(result.event),
        announcement_posted=result.announcement_posted,
    )


@router.post("/groups/{group_id}/events", response_model=EventResultPublic)
def create_event(
    group_id: int,
    payload: EventCreate,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    return _result(event_service.create_event(store, current_user.id, group_id, payload))


@router.get("/groups/{group_id}/events", response_model=list[EventPublic])
def list_events(
    group_id: int,
    include_drafts: bool = False,
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    return event_service.list_events(store, caller_id_of(current_user), group_id, include_drafts=include_drafts)


# ✅ IMPORTANTE: upcoming ANTES que /events/{event_id}
@router.get("/groups/{group_id}/events/upcoming", response_model=list[EventPublic])
def upcoming_events(
    group_id: int,
    limit: int = Query(3, ge=1, le=50),
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    return event_service.upcoming_events(store, group_id, limit=limit, caller_id=caller_id_of(current_user))


@router.get("/groups/{group_id}/events/{event_id}", response_model=EventPublic)
def get_event(
    group_id: int,
    event_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    return event_service.get_event(store, caller_id_of(current_user), group_id, event_id)


@router.put("/groups/{group_id}/events/{event_id}", response_model=EventResultPublic)
def update_event(
    group_id: int,
    event_id: int,
    payload: EventUpdate,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    return _result(event_service.update_event(store, current_user.id, group_id, event_id, payload))


@router.post("/groups/{group_id}/events/{event_id}/publish", response_model=EventResultPublic)
def publish_event(
    group_id: int,
    event_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    return _result(event_service.publish_event(store, current_user.id, group_id, event_id))


@router.delete("/groups/{group_id}/events/{event_id}")
def delete_event(
    group_id: int,
    event_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    event_service.delete_event(store, current_user.id, group_id, event_id)
    return {"ok": True, "deleted_event_id": event_id}
