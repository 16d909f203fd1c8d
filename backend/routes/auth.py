from fastapi import APIRouter, Depends

from models.users import User
from schemas.user import UserResponse
from utils.tokenJWT import get_current_user

router = APIRouter(tags=["Auth"])


# Profile of the signed-in user; the frontend uses the role to pick its pages
@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user
