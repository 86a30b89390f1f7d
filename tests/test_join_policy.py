"""Unión a grupos: open, request y private (código de invitación)."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.core.errors import Conflict, ContactAdmin, InvalidState, Unauthenticated, Unauthorized, UpstreamFailure
from app.models.enums import JoinRequestStatus, MemberRole, Visibility
from app.models.join_request import GroupJoinRequest
from app.models.membership import GroupMember
from app.services import join_policy
from app.services.join_policy import JoinState


def _member_rows(db, group_id, user_id):
    return db.execute(
        select(func.count())
        .select_from(GroupMember)
        .where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    ).scalar_one()


def _request_rows(db, group_id, user_id):
    return db.execute(
        select(func.count())
        .select_from(GroupJoinRequest)
        .where(GroupJoinRequest.group_id == group_id, GroupJoinRequest.user_id == user_id)
    ).scalar_one()


class TestOpenGroups:
    def test_join_then_double_join_conflicts(self, db, store, make_user, make_group):
        owner, user = make_user(), make_user()
        group = make_group(owner)

        result = join_policy.join_group(store, user.id, group.id)
        assert result.created is True
        assert result.state is JoinState.MEMBER

        with pytest.raises(Conflict):
            join_policy.join_group(store, user.id, group.id)
        assert _member_rows(db, group.id, user.id) == 1

    def test_owner_cannot_join_own_group(self, store, make_user, make_group):
        owner = make_user()
        group = make_group(owner)
        with pytest.raises(Conflict):
            join_policy.join_group(store, owner.id, group.id)

    def test_anonymous_join(self, store, make_user, make_group):
        group = make_group(make_user())
        with pytest.raises(Unauthenticated):
            join_policy.join_group(store, None, group.id)

    def test_direct_join_rejected_for_other_visibilities(self, store, make_user, make_group):
        owner, user = make_user(), make_user()
        request_group = make_group(owner, Visibility.REQUEST)
        private_group = make_group(owner, Visibility.PRIVATE, invite_code="secret")

        with pytest.raises(InvalidState):
            join_policy.join_group(store, user.id, request_group.id)
        with pytest.raises(Unauthorized):
            join_policy.join_group(store, user.id, private_group.id)


class TestJoinRequests:
    def test_pending_request_is_idempotent(self, db, store, make_user, make_group):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)

        first = join_policy.request_to_join(store, user.id, group.id)
        second = join_policy.request_to_join(store, user.id, group.id)

        assert first.created is True
        assert second.created is False
        assert second.request_id == first.request_id
        assert _request_rows(db, group.id, user.id) == 1
        assert join_policy.join_state(store, group.id, user.id) is JoinState.PENDING

    def test_request_on_open_group_is_invalid(self, store, make_user, make_group):
        group = make_group(make_user())
        with pytest.raises(InvalidState):
            join_policy.request_to_join(store, make_user().id, group.id)

    def test_rejected_request_means_contact_admin(self, db, store, make_user, make_group):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)
        request = join_policy.request_to_join(store, user.id, group.id)
        join_policy.deny_join_request(store, owner.id, request.request_id)

        with pytest.raises(ContactAdmin) as exc:
            join_policy.request_to_join(store, user.id, group.id)
        assert exc.value.code == "contact_admin"
        assert _request_rows(db, group.id, user.id) == 1
        assert join_policy.join_state(store, group.id, user.id) is JoinState.REJECTED

    def test_cleared_rejection_allows_new_request(self, store, make_user, make_group):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)
        request = join_policy.request_to_join(store, user.id, group.id)
        join_policy.deny_join_request(store, owner.id, request.request_id)

        join_policy.clear_join_request(store, owner.id, request.request_id)
        again = join_policy.request_to_join(store, user.id, group.id)
        assert again.created is True

    @pytest.mark.parametrize("reviewer_role", [None, MemberRole.MODERATOR])
    def test_approval_creates_one_membership(
        self, db, store, make_user, make_group, add_member, reviewer_role
    ):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)
        reviewer = owner
        if reviewer_role is not None:
            reviewer = make_user()
            add_member(group, reviewer, reviewer_role)

        request = join_policy.request_to_join(store, user.id, group.id)
        result = join_policy.approve_join_request(store, reviewer.id, request.request_id)

        assert result.already_member is False
        assert _member_rows(db, group.id, user.id) == 1
        stored = store.get_join_request_by_id(request.request_id)
        assert stored.status == JoinRequestStatus.APPROVED.value
        assert stored.resolved_by == reviewer.id

    def test_second_approval_is_invalid(self, db, store, make_user, make_group):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)
        request = join_policy.request_to_join(store, user.id, group.id)
        join_policy.approve_join_request(store, owner.id, request.request_id)

        with pytest.raises(InvalidState):
            join_policy.approve_join_request(store, owner.id, request.request_id)
        assert _member_rows(db, group.id, user.id) == 1

    def test_racing_approval_is_a_no_op(self, db, store, make_user, make_group, add_member):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)
        request = join_policy.request_to_join(store, user.id, group.id)
        # otro moderador ya insertó la membresía
        add_member(group, user)

        result = join_policy.approve_join_request(store, owner.id, request.request_id)

        assert result.already_member is True
        assert _member_rows(db, group.id, user.id) == 1
        assert store.get_join_request_by_id(request.request_id).status == JoinRequestStatus.APPROVED.value

    def test_concurrent_request_returns_existing_row(self, db, store, make_user, make_group, monkeypatch):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)
        real_get = store.get_join_request
        calls = {"n": 0}

        def racing_get(group_id, user_id, statuses):
            calls["n"] += 1
            if calls["n"] == 1:
                # otra petición inserta la pendiente entre la lectura y el insert
                with store.transaction():
                    store.insert_join_request(group_id, user_id)
                return None
            return real_get(group_id, user_id, statuses)

        monkeypatch.setattr(store, "get_join_request", racing_get)
        result = join_policy.request_to_join(store, user.id, group.id)

        existing = real_get(group.id, user.id, [JoinRequestStatus.PENDING.value])
        assert result.created is False
        assert result.request_id == existing.id
        assert _request_rows(db, group.id, user.id) == 1

    def test_store_failure_aborts_approval(self, db, store, make_user, make_group, monkeypatch):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)
        request = join_policy.request_to_join(store, user.id, group.id)

        def broken_insert(*args, **kwargs):
            raise OperationalError("INSERT INTO group_members", {}, Exception("database is locked"))

        monkeypatch.setattr(store, "insert_membership", broken_insert)
        with pytest.raises(UpstreamFailure):
            join_policy.approve_join_request(store, owner.id, request.request_id)

        assert store.get_membership(group.id, user.id) is None
        assert store.get_join_request_by_id(request.request_id).status == JoinRequestStatus.PENDING.value

    @pytest.mark.parametrize("as_member", [True, False])
    def test_non_moderator_cannot_review(self, db, store, make_user, make_group, add_member, as_member):
        owner, user, other = make_user(), make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)
        if as_member:
            add_member(group, other)
        request = join_policy.request_to_join(store, user.id, group.id)

        with pytest.raises(Unauthorized):
            join_policy.approve_join_request(store, other.id, request.request_id)
        with pytest.raises(Unauthorized):
            join_policy.deny_join_request(store, other.id, request.request_id)

        assert _member_rows(db, group.id, user.id) == 0
        assert store.get_join_request_by_id(request.request_id).status == JoinRequestStatus.PENDING.value

    def test_pending_list_and_my_statuses(self, store, make_user, make_group):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)
        join_policy.request_to_join(store, user.id, group.id)

        rows = join_policy.list_pending_requests(store, owner.id, group.id)
        assert [(r.user_id, u.id) for (r, u) in rows] == [(user.id, user.id)]
        assert join_policy.my_request_statuses(store, user.id) == {group.id: "pending"}
        assert join_policy.my_request_statuses(store, None) == {}


class TestInviteCodes:
    def test_matching_code_joins(self, db, store, make_user, make_group):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.PRIVATE, invite_code="open-sesame")

        result = join_policy.redeem_invite_code(store, user.id, group.id, "  open-sesame ")
        assert result.state is JoinState.MEMBER
        assert _member_rows(db, group.id, user.id) == 1

    @pytest.mark.parametrize("code", [None, "", "   ", "wrong", "OPEN-SESAME"])
    def test_bad_or_missing_code(self, db, store, make_user, make_group, code):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.PRIVATE, invite_code="open-sesame")

        with pytest.raises(Unauthorized):
            join_policy.redeem_invite_code(store, user.id, group.id, code)
        assert _member_rows(db, group.id, user.id) == 0

    def test_group_without_code_rejects_everything(self, store, make_user, make_group):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.PRIVATE)
        with pytest.raises(Unauthorized):
            join_policy.redeem_invite_code(store, user.id, group.id, "anything")

    def test_join_by_code_only(self, store, make_user, make_group):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.PRIVATE, invite_code="team-42")

        result = join_policy.join_by_invite_code(store, user.id, "team-42")
        assert result.group_id == group.id
        with pytest.raises(Unauthorized):
            join_policy.join_by_invite_code(store, make_user().id, "nope")


class TestModeratorInbox:
    def test_pending_requests_across_moderated_groups(self, store, make_user, make_group, add_member):
        owner, other_owner, requester = make_user(), make_user(), make_user()
        owned = make_group(owner, Visibility.REQUEST)
        moderated = make_group(other_owner, Visibility.REQUEST)
        unrelated = make_group(other_owner, Visibility.REQUEST)
        add_member(moderated, owner, MemberRole.MODERATOR)

        for group in (owned, moderated, unrelated):
            join_policy.request_to_join(store, requester.id, group.id)

        rows = join_policy.list_admin_join_requests(store, owner.id)
        assert sorted(g.id for (_, g, _) in rows) == sorted([owned.id, moderated.id])
        assert {g.name for (_, g, _) in rows} == {owned.name, moderated.name}
        assert all(r.status == "pending" and u.id == requester.id for (r, _, u) in rows)

    def test_resolved_requests_leave_the_inbox(self, store, make_user, make_group):
        owner, user = make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)
        request = join_policy.request_to_join(store, user.id, group.id)
        join_policy.deny_join_request(store, owner.id, request.request_id)

        assert join_policy.list_admin_join_requests(store, owner.id) == []

    def test_outsider_and_member_see_nothing(self, store, make_user, make_group, add_member):
        owner, member, outsider, requester = make_user(), make_user(), make_user(), make_user()
        group = make_group(owner, Visibility.REQUEST)
        add_member(group, member)
        join_policy.request_to_join(store, requester.id, group.id)

        assert join_policy.list_admin_join_requests(store, outsider.id) == []
        assert join_policy.list_admin_join_requests(store, member.id) == []
        assert join_policy.list_admin_join_requests(store, None) == []
