from typing import Optional

from fastapi import APIRouter, Depends

from auth import get_db, get_token_service, require_admin
from database import serialize
from models import UserStatusUpdate
from services.users import UserService

router = APIRouter(prefix="/api/users", tags=["Admin"])


@router.get("")
def list_users(
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    admin=Depends(require_admin),
    db=Depends(get_db),
):
    result = UserService(db).list_users(page, limit, search)
    return {"message": "Users retrieved successfully", **result}


@router.patch("/{userId}/status")
def update_user_status(
    userId: str,
    body: UserStatusUpdate,
    admin=Depends(require_admin),
    db=Depends(get_db),
    token_service=Depends(get_token_service),
):
    user = UserService(db, token_service).update_user_status(userId, body.status)
    return {"message": "User status updated successfully", "user": serialize(user)}
