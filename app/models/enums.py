from enum import Enum


class Visibility(str, Enum):
    OPEN = "open"
    REQUEST = "request"
    PRIVATE = "private"


class GroupStatus(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class MemberRole(str, Enum):
    OWNER = "owner"
    MODERATOR = "moderator"
    MEMBER = "member"


# roles heredados que cuentan como moderador
MODERATOR_ROLE_VALUES = ("moderator", "admin")


class JoinRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EventStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class EventType(str, Enum):
    IN_PERSON = "in_person"
    VIRTUAL = "virtual"
    HYBRID = "hybrid"


class PostStatus(str, Enum):
    ACTIVE = "active"
    APPROVED = "approved"
    REPORTED = "reported"
    DELETED = "deleted"


VISIBLE_POST_STATUSES = (PostStatus.ACTIVE.value, PostStatus.APPROVED.value)

GROUP_FEED = "group_feed"
