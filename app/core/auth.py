from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import Unauthenticated
from app.core.logging_config import get_logger
from app.core.security import decode_subject
from app.models.user import User

from typing import Optional

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


def get_current_user_optional(
    creds: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    # ✅ Sin token → anónimo (None), nunca 401 aquí
    if creds is None:
        return None

    user_id = decode_subject(creds.credentials)
    if user_id is None:
        logger.debug("Bearer token rejected")
        return None

    return db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()


def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    if user is None:
        raise Unauthenticated()
    return user


def caller_id_of(user: Optional[User]) -> int | None:
    return user.id if user is not None else None
