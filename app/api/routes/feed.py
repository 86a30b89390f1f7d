from fastapi import APIRouter, Depends

from app.api.deps import get_store
from app.core.auth import caller_id_of, get_current_user, get_current_user_optional
from app.models.user import User
from app.schemas.feed import (
    CurateRequest,
    ModerationRightsPublic,
    PostCreate,
    PostPublic,
    PostUpdate,
    ReplyCreate,
    ReportRequest,
)
from app.services import feed as feed_service
from app.services.store import MembershipStore

router = APIRouter(prefix="/groups/{group_id}/feed", tags=["feed"])


@router.get("", response_model=list[PostPublic])
def list_posts(
    group_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    return feed_service.list_feed_posts(store, caller_id_of(current_user), group_id)


@router.post("", response_model=PostPublic)
def create_post(
    group_id: int,
    payload: PostCreate,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    return feed_service.create_post(store, current_user.id, group_id, payload)


@router.get("/videos", response_model=list[PostPublic])
def list_videos(
    group_id: int,
    curated: bool = False,
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    return feed_service.list_videos(store, caller_id_of(current_user), group_id, curated_only=curated)


@router.get("/resources", response_model=list[PostPublic])
def list_resources(
    group_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    return feed_service.list_resources(store, caller_id_of(current_user), group_id)


@router.get("/{post_id}/replies", response_model=list[PostPublic])
def list_replies(
    group_id: int,
    post_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    return feed_service.list_replies(store, caller_id_of(current_user), group_id, post_id)


@router.post("/{post_id}/replies", response_model=PostPublic)
def create_reply(
    group_id: int,
    post_id: int,
    payload: ReplyCreate,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    return feed_service.create_reply(store, current_user.id, group_id, post_id, payload)


@router.get("/{post_id}/permissions", response_model=ModerationRightsPublic)
def post_permissions(
    group_id: int,
    post_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User | None = Depends(get_current_user_optional),
):
    post = feed_service.get_post(store, group_id, post_id)
    rights = feed_service.can_moderate(store, caller_id_of(current_user), group_id, post)
    return ModerationRightsPublic(edit=rights.edit, delete=rights.delete, report=rights.report)


@router.patch("/{post_id}", response_model=PostPublic)
def edit_post(
    group_id: int,
    post_id: int,
    payload: PostUpdate,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    return feed_service.edit_post(store, current_user.id, group_id, post_id, payload)


@router.delete("/{post_id}")
def delete_post(
    group_id: int,
    post_id: int,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    feed_service.delete_post(store, current_user.id, group_id, post_id)
    return {"ok": True, "deleted_post_id": post_id}


@router.post("/{post_id}/report")
def report_post(
    group_id: int,
    post_id: int,
    payload: ReportRequest,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    changed = feed_service.report_post(store, current_user.id, group_id, post_id, payload.reason, payload.details)
    return {"ok": True, "reported": changed}


@router.post("/{post_id}/curate", response_model=PostPublic)
def curate_video(
    group_id: int,
    post_id: int,
    payload: CurateRequest,
    store: MembershipStore = Depends(get_store),
    current_user: User = Depends(get_current_user),
):
    return feed_service.curate_video(store, current_user.id, group_id, post_id, payload.video_title)
