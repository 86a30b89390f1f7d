"""Feed del grupo: posts, respuestas, moderación, reportes y curación de vídeos."""

from dataclasses import dataclass

from app.core.errors import InvalidState, NotFound, Unauthorized
from app.core.logging_config import get_logger
from app.core.timeutils import utc_now_naive
from app.models.enums import GROUP_FEED, PostStatus
from app.models.feed_post import FeedPost
from app.schemas.feed import PostCreate, PostUpdate, ReplyCreate
from app.services.permissions import DENIAL_MESSAGES, Action, ResourceRef, require_permission
from app.services.roles import classify_role, get_active_group, require_caller, require_readable
from app.services.store import SYSTEM_ACTOR, Attachments, MembershipStore, as_user

logger = get_logger(__name__)


@dataclass(frozen=True)
class ModerationRights:
    edit: bool
    delete: bool
    report: bool


def can_moderate(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    post: FeedPost,
) -> ModerationRights:
    is_author = caller_id is not None and post.author_id == caller_id
    moderator = classify_role(store, caller_id, group_id).can_moderate
    return ModerationRights(
        edit=is_author,
        delete=is_author or moderator,
        # un post aprobado ya no se puede reportar
        report=post.status != PostStatus.APPROVED.value,
    )


def get_post(store: MembershipStore, group_id: int, post_id: int) -> FeedPost:
    post = store.get_post(post_id)
    if (
        post is None
        or post.context_type != GROUP_FEED
        or post.context_id != group_id
        or post.status == PostStatus.DELETED.value
    ):
        raise NotFound("Post not found")
    return post


def create_post(store: MembershipStore, caller_id: int | None, group_id: int, payload: PostCreate) -> FeedPost:
    user_id = require_caller(caller_id, "You must be logged in to create a post")
    get_active_group(store, group_id)

    attachments = Attachments(
        image_url=payload.image_url or None,
        document_url=payload.document_url or None,
        document_name=payload.document_name or None,
        link_url=payload.link_url or None,
        video_url=payload.video_url or None,
    )
    with store.transaction():
        post = store.insert_feed_post(group_id, payload.body, attachments, actor=as_user(user_id))
    logger.info("Post %s created in group %s by %s", post.id, group_id, user_id)
    return post


def create_reply(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    parent_id: int,
    payload: ReplyCreate,
) -> FeedPost:
    user_id = require_caller(caller_id, "You must be logged in to reply")
    get_active_group(store, group_id)
    parent = get_post(store, group_id, parent_id)
    if parent.parent_id is not None:
        raise InvalidState("Replies cannot be nested")

    attachments = Attachments(video_url=payload.video_url or None)
    with store.transaction():
        reply = store.insert_feed_post(
            group_id,
            payload.body,
            attachments,
            actor=as_user(user_id),
            parent_id=parent.id,
        )
    return reply


def edit_post(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    post_id: int,
    payload: PostUpdate,
) -> FeedPost:
    user_id = require_caller(caller_id)
    get_active_group(store, group_id)
    post = get_post(store, group_id, post_id)

    if not can_moderate(store, user_id, group_id, post).edit:
        raise Unauthorized("Only the author can edit this post")

    fields = payload.model_dump(exclude_unset=True)
    if fields.get("body", "") is None:
        fields.pop("body")
    with store.transaction():
        store.update_post_content(post, as_user(user_id), **fields)
    return post


def delete_post(store: MembershipStore, caller_id: int | None, group_id: int, post_id: int) -> None:
    """Borrado lógico: status → deleted."""
    require_caller(caller_id, "You must be logged in to delete a post")
    get_active_group(store, group_id)
    post = get_post(store, group_id, post_id)
    user_id = require_permission(store, caller_id, group_id, Action.DELETE_POST, ResourceRef.from_post(post))

    with store.transaction():
        store.transition_post_status(
            post.id,
            PostStatus.DELETED.value,
            from_statuses=[s.value for s in PostStatus if s is not PostStatus.DELETED],
        )
    logger.info("Post %s deleted by %s", post_id, user_id)


def report_post(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    post_id: int,
    reason: str,
    details: str | None = None,
) -> bool:
    """
    ``active → reported``. Un segundo reporte no cambia nada: el UPDATE solo
    aplica sobre posts en ``active``. Devuelve si hubo transición.
    """
    user_id = require_caller(caller_id, "You must be logged in to report content")
    group = get_active_group(store, group_id)
    require_readable(store, user_id, group)
    post = store.get_post(post_id)
    if post is None or post.context_type != GROUP_FEED or post.context_id != group_id:
        raise NotFound("Post not found")

    if not can_moderate(store, user_id, group_id, post).report:
        raise InvalidState("This post has already been reviewed")

    report_reason = reason if not details else f"{reason}: {details}"
    with store.transaction():
        changed = store.transition_post_status(
            post.id,
            PostStatus.REPORTED.value,
            from_statuses=[PostStatus.ACTIVE.value],
            reported_by=user_id,
            reported_at=utc_now_naive(),
            report_reason=report_reason[:500],
        )

    if changed:
        logger.info("Post %s reported by %s", post_id, user_id)
    return changed


def curate_video(
    store: MembershipStore,
    caller_id: int | None,
    group_id: int,
    post_id: int,
    video_title: str,
) -> FeedPost:
    user_id = require_caller(caller_id, "You must be logged in to curate videos")
    get_active_group(store, group_id)
    post = get_post(store, group_id, post_id)
    if not classify_role(store, user_id, group_id).can_moderate:
        raise Unauthorized(DENIAL_MESSAGES[Action.CURATE_VIDEO])
    if post.video_url is None:
        raise InvalidState("This post has no video")

    require_permission(store, caller_id, group_id, Action.CURATE_VIDEO, ResourceRef.from_post(post))

    # el post es de otro usuario: la escritura va como actor de sistema
    with store.transaction():
        store.update_post_content(post, SYSTEM_ACTOR, video_title=video_title, is_featured=True)
    logger.info("Video post %s curated by %s in group %s", post_id, user_id, group_id)
    return post


def list_feed_posts(store: MembershipStore, caller_id: int | None, group_id: int) -> list[FeedPost]:
    group = get_active_group(store, group_id)
    require_readable(store, caller_id, group)
    return store.list_feed_posts(group_id)


def list_replies(store: MembershipStore, caller_id: int | None, group_id: int, post_id: int) -> list[FeedPost]:
    group = get_active_group(store, group_id)
    require_readable(store, caller_id, group)
    parent = get_post(store, group_id, post_id)
    return store.list_feed_posts(group_id, parent_id=parent.id, newest_first=False)


def list_videos(store: MembershipStore, caller_id: int | None, group_id: int, curated_only: bool = False) -> list[FeedPost]:
    group = get_active_group(store, group_id)
    require_readable(store, caller_id, group)
    return store.list_feed_posts(
        group_id,
        top_level_only=False,
        only_videos=True,
        only_curated=curated_only,
    )


def list_resources(store: MembershipStore, caller_id: int | None, group_id: int) -> list[FeedPost]:
    group = get_active_group(store, group_id)
    require_readable(store, caller_id, group)
    return store.list_feed_posts(group_id, top_level_only=False, only_resources=True)
