from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.services.store import MembershipStore

__all__ = ["get_db", "get_store"]


def get_store(db: Session = Depends(get_db)) -> MembershipStore:
    return MembershipStore(db)
