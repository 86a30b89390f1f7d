"""
Membership Store Adapter.

Única capa que toca la base de datos para grupos, membresías, solicitudes,
eventos y posts del feed. Traduce los errores de SQLAlchemy a la taxonomía
del motor (``Conflict`` / ``UpstreamFailure``) y aplica las reglas de fila:

- insertar en el feed de un grupo exige ser miembro (u owner) del grupo;
- editar el contenido de un post exige ser su autor.

El ``SYSTEM_ACTOR`` se salta ambas reglas. Se pasa explícitamente en cada
escritura que lo necesita (anuncios de eventos, curación de vídeos).

Las escrituras solo hacen ``flush``; el commit lo decide quien llama con
``store.transaction()``.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import Conflict, EngineError, Unauthorized, UpstreamFailure
from app.core.logging_config import get_logger
from app.core.timeutils import utc_now_naive
from app.models.enums import GROUP_FEED, MODERATOR_ROLE_VALUES, GroupStatus, MemberRole, VISIBLE_POST_STATUSES
from app.models.event import GroupEvent
from app.models.feed_post import FeedPost
from app.models.group import Group
from app.models.join_request import GroupJoinRequest
from app.models.membership import GroupMember
from app.models.user import User

logger = get_logger(__name__)


@dataclass(frozen=True)
class Actor:
    """Quién ejecuta una escritura a efectos de las reglas de fila."""

    user_id: Optional[int]
    is_system: bool = False


SYSTEM_ACTOR = Actor(user_id=None, is_system=True)


def as_user(user_id: int) -> Actor:
    return Actor(user_id=user_id)


@dataclass(frozen=True)
class Attachments:
    image_url: Optional[str] = None
    document_url: Optional[str] = None
    document_name: Optional[str] = None
    link_url: Optional[str] = None
    video_url: Optional[str] = None


class MembershipStore:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # unidad de trabajo
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["MembershipStore"]:
        """Commit al salir bien, rollback ante cualquier error."""
        try:
            yield self
            self.db.commit()
        except EngineError:
            self.db.rollback()
            raise
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("Integrity violation: %s", exc.orig)
            raise Conflict() from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Store write failed")
            raise UpstreamFailure() from exc
        except Exception:
            self.db.rollback()
            raise

    @contextmanager
    def _reading(self) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception("Store read failed")
            raise UpstreamFailure() from exc

    def _flush(self, conflict_message: str | None = None) -> None:
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise Conflict(conflict_message) from exc

    def _conditional_update(self, stmt) -> bool:
        """UPDATE con WHERE sobre el estado actual. Devuelve si cambió alguna fila."""
        self._flush()
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        # las instancias cargadas se releen en el siguiente acceso
        self.db.expire_all()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # usuarios
    # ------------------------------------------------------------------

    def get_user(self, user_id: int) -> Optional[User]:
        with self._reading():
            return self.db.get(User, user_id)

    # ------------------------------------------------------------------
    # grupos
    # ------------------------------------------------------------------

    def get_group(self, group_id: int) -> Optional[Group]:
        with self._reading():
            return self.db.get(Group, group_id)

    def get_group_by_slug(self, slug: str) -> Optional[Group]:
        with self._reading():
            return self.db.execute(select(Group).where(Group.slug == slug)).scalar_one_or_none()

    def get_group_by_invite_code(self, invite_code: str) -> Optional[Group]:
        with self._reading():
            return self.db.execute(
                select(Group).where(
                    Group.invite_code == invite_code,
                    Group.status == GroupStatus.ACTIVE.value,
                )
            ).scalars().first()

    def insert_group(self, **fields) -> Group:
        group = Group(**fields)
        self.db.add(group)
        self._flush("A group with this slug already exists")
        return group

    def update_group(self, group: Group, **fields) -> Group:
        for key, value in fields.items():
            setattr(group, key, value)
        group.updated_at = utc_now_naive()
        self._flush()
        return group

    def list_listed_groups(self) -> list[Group]:
        """Grupos activos no privados."""
        with self._reading():
            return list(
                self.db.execute(
                    select(Group)
                    .where(Group.status == GroupStatus.ACTIVE.value)
                    .where(Group.deleted_at.is_(None))
                    .where(Group.visibility != "private")
                    .order_by(Group.created_at.desc(), Group.id.desc())
                ).scalars().all()
            )

    def list_groups_for_user(self, user_id: int) -> list[tuple[Group, GroupMember]]:
        with self._reading():
            rows = self.db.execute(
                select(Group, GroupMember)
                .join(GroupMember, GroupMember.group_id == Group.id)
                .where(GroupMember.user_id == user_id)
                .where(Group.status == GroupStatus.ACTIVE.value)
                .order_by(Group.created_at.desc(), Group.id.desc())
            ).all()
            return [(g, m) for (g, m) in rows]

    def count_members(self, group_ids: Iterable[int]) -> dict[int, int]:
        ids = list(group_ids)
        if not ids:
            return {}
        with self._reading():
            rows = self.db.execute(
                select(GroupMember.group_id, func.count())
                .where(GroupMember.group_id.in_(ids))
                .group_by(GroupMember.group_id)
            ).all()
            return {group_id: count for (group_id, count) in rows}

    # ------------------------------------------------------------------
    # membresías
    # ------------------------------------------------------------------

    def get_membership(self, group_id: int, user_id: int) -> Optional[GroupMember]:
        with self._reading():
            return self.db.execute(
                select(GroupMember).where(
                    GroupMember.group_id == group_id,
                    GroupMember.user_id == user_id,
                )
            ).scalar_one_or_none()

    def insert_membership(self, group_id: int, user_id: int, role: str = MemberRole.MEMBER.value) -> GroupMember:
        member = GroupMember(group_id=group_id, user_id=user_id, role=role)
        self.db.add(member)
        # uq_group_user: una fila por (grupo, usuario)
        self._flush("You are already a member of this group")
        return member

    def update_membership_role(self, member: GroupMember, role: str) -> GroupMember:
        member.role = role
        self._flush()
        return member

    def delete_membership(self, member: GroupMember) -> None:
        self.db.delete(member)
        self._flush()

    def list_members(
        self,
        group_id: int,
        page: int = 1,
        page_size: int = 20,
        search: str | None = None,
    ) -> tuple[list[tuple[GroupMember, User]], int]:
        stmt = (
            select(GroupMember, User)
            .join(User, User.id == GroupMember.user_id)
            .where(GroupMember.group_id == group_id)
        )
        if search:
            stmt = stmt.where(User.full_name.ilike(f"%{search}%"))

        with self._reading():
            total = self.db.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar_one()
            rows = self.db.execute(
                stmt.order_by(GroupMember.joined_at.desc(), GroupMember.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            ).all()
            return [(m, u) for (m, u) in rows], total

    # ------------------------------------------------------------------
    # solicitudes de unión
    # ------------------------------------------------------------------

    def get_join_request(
        self,
        group_id: int,
        user_id: int,
        statuses: Iterable[str],
    ) -> Optional[GroupJoinRequest]:
        with self._reading():
            return self.db.execute(
                select(GroupJoinRequest)
                .where(
                    GroupJoinRequest.group_id == group_id,
                    GroupJoinRequest.user_id == user_id,
                    GroupJoinRequest.status.in_(list(statuses)),
                )
                .order_by(GroupJoinRequest.created_at.desc(), GroupJoinRequest.id.desc())
            ).scalars().first()

    def get_join_request_by_id(self, request_id: int) -> Optional[GroupJoinRequest]:
        with self._reading():
            return self.db.get(GroupJoinRequest, request_id)

    def insert_join_request(self, group_id: int, user_id: int) -> GroupJoinRequest:
        request = GroupJoinRequest(group_id=group_id, user_id=user_id, status="pending")
        self.db.add(request)
        self._flush("A join request is already pending")
        return request

    def update_join_request_status(
        self,
        request_id: int,
        status: str,
        resolved_by: int | None = None,
        expected_status: str | None = None,
    ) -> bool:
        """Cambia el estado; con ``expected_status`` solo si sigue en ese estado."""
        stmt = (
            update(GroupJoinRequest)
            .where(GroupJoinRequest.id == request_id)
            .values(status=status, resolved_by=resolved_by, resolved_at=utc_now_naive())
        )
        if expected_status is not None:
            stmt = stmt.where(GroupJoinRequest.status == expected_status)
        return self._conditional_update(stmt)

    def delete_join_request(self, request: GroupJoinRequest) -> None:
        self.db.delete(request)
        self._flush()

    def list_join_requests(self, group_id: int, status: str) -> list[tuple[GroupJoinRequest, User]]:
        with self._reading():
            rows = self.db.execute(
                select(GroupJoinRequest, User)
                .join(User, User.id == GroupJoinRequest.user_id)
                .where(GroupJoinRequest.group_id == group_id)
                .where(GroupJoinRequest.status == status)
                .order_by(GroupJoinRequest.created_at.asc(), GroupJoinRequest.id.asc())
            ).all()
            return [(r, u) for (r, u) in rows]

    def list_moderated_join_requests(
        self,
        user_id: int,
        status: str,
    ) -> list[tuple[GroupJoinRequest, Group, User]]:
        """Solicitudes de todos los grupos activos que ``user_id`` posee o modera."""
        moderated = (
            select(GroupMember.group_id)
            .where(GroupMember.user_id == user_id)
            .where(GroupMember.role.in_(MODERATOR_ROLE_VALUES))
        )
        with self._reading():
            rows = self.db.execute(
                select(GroupJoinRequest, Group, User)
                .join(Group, Group.id == GroupJoinRequest.group_id)
                .join(User, User.id == GroupJoinRequest.user_id)
                .where(GroupJoinRequest.status == status)
                .where(Group.status == GroupStatus.ACTIVE.value)
                .where(Group.deleted_at.is_(None))
                .where(or_(Group.created_by == user_id, Group.id.in_(moderated)))
                .order_by(GroupJoinRequest.created_at.asc(), GroupJoinRequest.id.asc())
            ).all()
            return [(r, g, u) for (r, g, u) in rows]

    def list_user_join_requests(self, user_id: int, statuses: Iterable[str]) -> list[GroupJoinRequest]:
        with self._reading():
            return list(
                self.db.execute(
                    select(GroupJoinRequest)
                    .where(GroupJoinRequest.user_id == user_id)
                    .where(GroupJoinRequest.status.in_(list(statuses)))
                ).scalars().all()
            )

    # ------------------------------------------------------------------
    # eventos
    # ------------------------------------------------------------------

    def get_event(self, event_id: int) -> Optional[GroupEvent]:
        with self._reading():
            return self.db.get(GroupEvent, event_id)

    def insert_event(self, **fields) -> GroupEvent:
        event = GroupEvent(**fields)
        self.db.add(event)
        self._flush()
        return event

    def update_event(self, event: GroupEvent, **fields) -> GroupEvent:
        for key, value in fields.items():
            setattr(event, key, value)
        self._flush()
        return event

    def update_event_status(self, event_id: int, status: str, expected_status: str | None = None) -> bool:
        stmt = (
            update(GroupEvent)
            .where(GroupEvent.id == event_id)
            .values(status=status)
        )
        if expected_status is not None:
            stmt = stmt.where(GroupEvent.status == expected_status)
        return self._conditional_update(stmt)

    def delete_event(self, event: GroupEvent) -> None:
        self.db.delete(event)
        self._flush()

    def list_events(
        self,
        group_id: int,
        statuses: Iterable[str] | None = None,
        starts_after=None,
        limit: int | None = None,
    ) -> list[GroupEvent]:
        stmt = select(GroupEvent).where(GroupEvent.group_id == group_id)
        if statuses is not None:
            stmt = stmt.where(GroupEvent.status.in_(list(statuses)))
        if starts_after is not None:
            stmt = stmt.where(GroupEvent.start_at >= starts_after)
        stmt = stmt.order_by(GroupEvent.start_at.asc(), GroupEvent.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._reading():
            return list(self.db.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # feed
    # ------------------------------------------------------------------

    def _can_write_feed(self, group_id: int, user_id: int | None) -> bool:
        if user_id is None:
            return False
        group = self.get_group(group_id)
        if group is not None and group.created_by == user_id:
            return True
        return self.get_membership(group_id, user_id) is not None

    def insert_feed_post(
        self,
        group_id: int,
        body: str,
        attachments: Attachments | None = None,
        actor: Actor | None = None,
        author_id: int | None = None,
        parent_id: int | None = None,
    ) -> FeedPost:
        """
        Inserta un post en el feed del grupo.

        Con un actor normal el autor es siempre ``actor.user_id`` y debe ser
        miembro del grupo. El actor de sistema puede firmar en nombre de
        ``author_id`` sin esa comprobación.
        """
        if actor is None:
            raise Unauthorized()

        if actor.is_system:
            if author_id is None:
                raise ValueError("system writes need an explicit author_id")
        else:
            if not self._can_write_feed(group_id, actor.user_id):
                raise Unauthorized("You are not a member of this group")
            author_id = actor.user_id

        attachments = attachments or Attachments()
        post = FeedPost(
            author_id=author_id,
            context_type=GROUP_FEED,
            context_id=group_id,
            parent_id=parent_id,
            body=body,
            status="active",
            image_url=attachments.image_url,
            document_url=attachments.document_url,
            document_name=attachments.document_name,
            link_url=attachments.link_url,
            video_url=attachments.video_url,
            posted_as_system=actor.is_system,
        )
        self.db.add(post)
        self._flush()
        return post

    def get_post(self, post_id: int) -> Optional[FeedPost]:
        with self._reading():
            return self.db.get(FeedPost, post_id)

    def update_post_content(self, post: FeedPost, actor: Actor, **fields) -> FeedPost:
        """Edición de contenido: solo el autor, salvo actor de sistema."""
        if not actor.is_system and post.author_id != actor.user_id:
            raise Unauthorized()
        for key, value in fields.items():
            setattr(post, key, value)
        post.updated_at = utc_now_naive()
        self._flush()
        return post

    def transition_post_status(
        self,
        post_id: int,
        status: str,
        from_statuses: Iterable[str],
        **extra,
    ) -> bool:
        """UPDATE condicionado al estado actual. Devuelve si cambió alguna fila."""
        return self._conditional_update(
            update(FeedPost)
            .where(FeedPost.id == post_id)
            .where(FeedPost.status.in_(list(from_statuses)))
            .values(status=status, updated_at=utc_now_naive(), **extra)
        )

    def list_feed_posts(
        self,
        group_id: int,
        top_level_only: bool = True,
        parent_id: int | None = None,
        only_videos: bool = False,
        only_curated: bool = False,
        only_resources: bool = False,
        newest_first: bool = True,
    ) -> list[FeedPost]:
        stmt = (
            select(FeedPost)
            .where(FeedPost.context_type == GROUP_FEED)
            .where(FeedPost.context_id == group_id)
            .where(FeedPost.status.in_(VISIBLE_POST_STATUSES))
        )
        if parent_id is not None:
            stmt = stmt.where(FeedPost.parent_id == parent_id)
        elif top_level_only:
            stmt = stmt.where(FeedPost.parent_id.is_(None))
        if only_videos or only_curated:
            stmt = stmt.where(FeedPost.video_url.is_not(None))
        if only_curated:
            stmt = stmt.where(FeedPost.video_title.is_not(None)).where(FeedPost.is_featured.is_(True))
        if only_resources:
            stmt = stmt.where(
                or_(
                    FeedPost.image_url.is_not(None),
                    FeedPost.document_url.is_not(None),
                    FeedPost.link_url.is_not(None),
                )
            )
        if newest_first:
            stmt = stmt.order_by(FeedPost.created_at.desc(), FeedPost.id.desc())
        else:
            stmt = stmt.order_by(FeedPost.created_at.asc(), FeedPost.id.asc())
        with self._reading():
            return list(self.db.execute(stmt).scalars().all())

