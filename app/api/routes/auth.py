from fastapi import APIRouter, Depends

from app.core.auth import get_current_user
from app.models.user import User
from app.schemas.user import UserPublic


router = APIRouter(prefix="/auth", tags=["auth"])

# login/registro viven fuera: aquí solo se consume la identidad ya resuelta
@router.get("/me", response_model=UserPublic)
def me(user: User = Depends(get_current_user)):
    return user
