"""Publicación de eventos y su anuncio en el feed."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from app.core.errors import InvalidState, NotFound, Unauthenticated, Unauthorized, UpstreamFailure
from app.core.timeutils import utc_now_naive
from app.models.enums import EventStatus, EventType, MemberRole, Visibility
from app.models.event import GroupEvent
from app.models.feed_post import FeedPost
from app.schemas.event import EventCreate, EventUpdate
from app.services import events as event_service
from app.services.events import format_announcement

START = datetime(2025, 1, 6, 15, 0)


def _payload(status=EventStatus.DRAFT, **overrides):
    data = {
        "title": "Sunday Run",
        "event_type": EventType.IN_PERSON,
        "start_at": START,
        "description": "Meet at the park gate.",
        "status": status,
    }
    data.update(overrides)
    return EventCreate(**data)


def _update_payload(status=None, **overrides):
    return EventUpdate(**_payload(**overrides).model_dump(exclude={"status"}), status=status)


def _feed_posts(db, group_id):
    return list(
        db.execute(
            select(FeedPost).where(FeedPost.context_id == group_id).order_by(FeedPost.id)
        ).scalars().all()
    )


def _event_rows(db, group_id):
    return db.execute(
        select(func.count()).select_from(GroupEvent).where(GroupEvent.group_id == group_id)
    ).scalar_one()


class TestAnnouncementFormat:
    def test_body_is_deterministic(self):
        body = format_announcement("Sunday Run", START, None, "in_person", "Meet at the park gate.")
        assert body == (
            "📅 **Sunday Run**\n\n"
            "🕐 Monday, January 6, 2025 at 3:00 PM (UTC)\n"
            "📍 In-Person Event\n"
            "\nMeet at the park gate."
            "\n\nView details by clicking the event in the Event Calendar to the right."
        )

    def test_end_time_and_fallback_label(self):
        end = START + timedelta(hours=2)
        body = format_announcement("Call", START, end, "hybrid", None)
        assert "🕐 Monday, January 6, 2025 at 3:00 PM - Monday, January 6, 2025 at 5:00 PM (UTC)\n" in body
        assert "📍 Hybrid Event\n" in body

    def test_midnight_and_noon(self):
        assert "at 12:05 AM" in format_announcement("x", datetime(2025, 3, 1, 0, 5), None, "virtual", None)
        assert "at 12:30 PM" in format_announcement("x", datetime(2025, 3, 1, 12, 30), None, "virtual", None)


class TestPublishing:
    def test_draft_has_no_announcement(self, db, store, make_user, make_group):
        owner = make_user()
        group = make_group(owner)

        result = event_service.create_event(store, owner.id, group.id, _payload())
        assert result.event.status == EventStatus.DRAFT.value
        assert result.announcement_posted is None
        assert _feed_posts(db, group.id) == []

    def test_publish_posts_exactly_one_announcement(self, db, store, make_user, make_group, add_member):
        owner, mod = make_user(), make_user()
        group = make_group(owner)
        add_member(group, mod, MemberRole.MODERATOR)
        draft = event_service.create_event(store, mod.id, group.id, _payload()).event

        result = event_service.publish_event(store, mod.id, group.id, draft.id)

        assert result.announcement_posted is True
        assert result.event.status == EventStatus.PUBLISHED.value
        posts = _feed_posts(db, group.id)
        assert len(posts) == 1
        assert posts[0].author_id == mod.id
        assert posts[0].posted_as_system is True
        assert posts[0].body == format_announcement(
            "Sunday Run", START, None, "in_person", "Meet at the park gate."
        )

    def test_publish_twice_is_invalid(self, db, store, make_user, make_group):
        owner = make_user()
        group = make_group(owner)
        draft = event_service.create_event(store, owner.id, group.id, _payload()).event
        event_service.publish_event(store, owner.id, group.id, draft.id)

        with pytest.raises(InvalidState):
            event_service.publish_event(store, owner.id, group.id, draft.id)
        assert len(_feed_posts(db, group.id)) == 1

    def test_create_published_announces(self, db, store, make_user, make_group):
        owner = make_user()
        group = make_group(owner)

        result = event_service.create_event(
            store, owner.id, group.id, _payload(EventStatus.PUBLISHED, image_url="https://example.com/a.png")
        )
        assert result.announcement_posted is True
        posts = _feed_posts(db, group.id)
        assert len(posts) == 1
        assert posts[0].image_url == "https://example.com/a.png"

    def test_saving_published_twice_announces_twice(self, db, store, make_user, make_group):
        owner = make_user()
        group = make_group(owner)
        event = event_service.create_event(store, owner.id, group.id, _payload()).event

        event_service.update_event(store, owner.id, group.id, event.id, _update_payload(EventStatus.PUBLISHED))
        event_service.update_event(
            store, owner.id, group.id, event.id, _update_payload(EventStatus.PUBLISHED, title="Sunday Run 2")
        )

        posts = _feed_posts(db, group.id)
        assert len(posts) == 2
        assert "**Sunday Run 2**" in posts[1].body

    def test_update_without_status_does_not_announce(self, db, store, make_user, make_group):
        owner = make_user()
        group = make_group(owner)
        event = event_service.create_event(store, owner.id, group.id, _payload(EventStatus.PUBLISHED)).event

        result = event_service.update_event(store, owner.id, group.id, event.id, _update_payload(title="Renamed"))
        assert result.announcement_posted is None
        assert result.event.title == "Renamed"
        assert len(_feed_posts(db, group.id)) == 1

    def test_published_cannot_go_back_to_draft(self, store, make_user, make_group):
        owner = make_user()
        group = make_group(owner)
        event = event_service.create_event(store, owner.id, group.id, _payload(EventStatus.PUBLISHED)).event

        with pytest.raises(InvalidState):
            event_service.update_event(store, owner.id, group.id, event.id, _update_payload(EventStatus.DRAFT))

    def test_announcement_failure_keeps_event(self, db, store, make_user, make_group, monkeypatch):
        owner = make_user()
        group = make_group(owner)

        def boom(*args, **kwargs):
            raise UpstreamFailure()

        monkeypatch.setattr(store, "insert_feed_post", boom)
        result = event_service.create_event(store, owner.id, group.id, _payload(EventStatus.PUBLISHED))

        assert result.announcement_posted is False
        stored = store.get_event(result.event.id)
        assert stored.status == EventStatus.PUBLISHED.value
        assert _feed_posts(db, group.id) == []


class TestEventPermissions:
    def test_member_cannot_create(self, db, store, make_user, make_group, add_member):
        owner, member = make_user(), make_user()
        group = make_group(owner)
        add_member(group, member)

        with pytest.raises(Unauthorized) as exc:
            event_service.create_event(store, member.id, group.id, _payload(EventStatus.PUBLISHED))
        assert exc.value.message == "Only group owners and moderators can create events"
        assert _event_rows(db, group.id) == 0
        assert _feed_posts(db, group.id) == []

    def test_member_cannot_publish_or_delete(self, db, store, make_user, make_group, add_member):
        owner, member = make_user(), make_user()
        group = make_group(owner)
        add_member(group, member)
        event = event_service.create_event(store, owner.id, group.id, _payload()).event

        with pytest.raises(Unauthorized):
            event_service.publish_event(store, member.id, group.id, event.id)
        with pytest.raises(Unauthorized):
            event_service.delete_event(store, member.id, group.id, event.id)
        assert store.get_event(event.id).status == EventStatus.DRAFT.value

    def test_drafts_hidden_from_members(self, store, make_user, make_group, add_member):
        owner, member = make_user(), make_user()
        group = make_group(owner)
        add_member(group, member)
        draft = event_service.create_event(store, owner.id, group.id, _payload()).event

        assert event_service.list_events(store, member.id, group.id, include_drafts=True) == []
        assert [e.id for e in event_service.list_events(store, owner.id, group.id, include_drafts=True)] == [draft.id]
        with pytest.raises(NotFound):
            event_service.get_event(store, member.id, group.id, draft.id)

    def test_upcoming_only_future_published(self, store, make_user, make_group):
        owner = make_user()
        group = make_group(owner)
        future = utc_now_naive() + timedelta(days=3)
        event_service.create_event(store, owner.id, group.id, _payload(EventStatus.PUBLISHED))
        upcoming = event_service.create_event(
            store, owner.id, group.id, _payload(EventStatus.PUBLISHED, start_at=future)
        ).event
        event_service.create_event(store, owner.id, group.id, _payload(start_at=future))

        assert [e.id for e in event_service.upcoming_events(store, group.id)] == [upcoming.id]

    def test_delete_removes_row(self, db, store, make_user, make_group):
        owner = make_user()
        group = make_group(owner)
        event = event_service.create_event(store, owner.id, group.id, _payload()).event

        event_service.delete_event(store, owner.id, group.id, event.id)
        assert _event_rows(db, group.id) == 0

    def test_anonymous_caller_is_unauthenticated_before_group_lookup(self, store):
        missing_group, missing_event = 9999, 8888
        with pytest.raises(Unauthenticated):
            event_service.create_event(store, None, missing_group, _payload())
        with pytest.raises(Unauthenticated):
            event_service.update_event(store, None, missing_group, missing_event, _update_payload())
        with pytest.raises(Unauthenticated):
            event_service.publish_event(store, None, missing_group, missing_event)
        with pytest.raises(Unauthenticated):
            event_service.delete_event(store, None, missing_group, missing_event)


class TestPrivateGroupEvents:
    def test_outsiders_cannot_read_events(self, store, make_user, make_group, add_member):
        owner, member, outsider = make_user(), make_user(), make_user()
        group = make_group(owner, Visibility.PRIVATE, invite_code="inner")
        add_member(group, member)
        future = utc_now_naive() + timedelta(days=2)
        event = event_service.create_event(
            store, owner.id, group.id, _payload(EventStatus.PUBLISHED, start_at=future)
        ).event

        for caller_id in (outsider.id, None):
            with pytest.raises(Unauthorized):
                event_service.list_events(store, caller_id, group.id)
            with pytest.raises(Unauthorized):
                event_service.get_event(store, caller_id, group.id, event.id)
            with pytest.raises(Unauthorized):
                event_service.upcoming_events(store, group.id, caller_id=caller_id)

        assert [e.id for e in event_service.list_events(store, member.id, group.id)] == [event.id]
        assert [e.id for e in event_service.upcoming_events(store, group.id, caller_id=member.id)] == [event.id]
