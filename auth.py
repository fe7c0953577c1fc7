import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from passlib.context import CryptContext
from pymongo.database import Database

from enums import ROLE_PERMISSIONS, AccountStatus, Permission, ShopRole, TokenType, UserType
from errors import ForbiddenError, UnauthenticatedError
from services.mechanics import MechanicService
from services.service_cache import ServiceCatalogCache
from services.token_service import TokenService

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def hash_password(password):
    return pwd_context.hash(password)


def verify_password(plain, hashed):
    return pwd_context.verify(plain, hashed)


def device_info(request: Request) -> Dict[str, Any]:
    return {
        "userAgent": request.headers.get("user-agent"),
        "ip": request.client.host if request.client else None,
    }


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_service_cache(request: Request) -> ServiceCatalogCache:
    return request.app.state.service_cache


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Database = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
):
    if not token:
        raise UnauthenticatedError("Authentication required")

    # some clients store the credential JSON-encoded
    credential = token.strip().strip('"').strip("'")
    record = token_service.validate_token(credential, TokenType.AUTH)

    user = db["users"].find_one({"_id": record["userId"]}, {"password": 0})
    if user is None:
        logger.warning(f"Token {record['_id']} references missing user {record['userId']}")
        raise UnauthenticatedError("User not found")
    if user.get("status", AccountStatus.ACTIVE.value) != AccountStatus.ACTIVE.value:
        raise UnauthenticatedError("Account is not active")

    request.state.credential = credential
    request.state.token_record = record
    return user


def require_admin(user=Depends(get_current_user)):
    if user.get("type") != UserType.ADMIN.value:
        raise ForbiddenError("Admin access required")
    return user


def shop_role(db: Database, mechanic_id, user) -> ShopRole:
    role = MechanicService(db).admin_role(mechanic_id, user["_id"])
    if role is None:
        raise ForbiddenError("Not an admin of this mechanic shop")
    return role


def check_permission(db: Database, mechanic_id, user, permission: Permission) -> ShopRole:
    role = shop_role(db, mechanic_id, user)
    if permission not in ROLE_PERMISSIONS[role]:
        logger.warning(f"User {user['_id']} ({role.value}) lacks {permission.value} on mechanic {mechanic_id}")
        raise ForbiddenError("Insufficient permissions", required=permission.value)
    return role


def get_mechanic_admin_role(mechanicId: str, user=Depends(get_current_user), db: Database = Depends(get_db)) -> ShopRole:
    return shop_role(db, mechanicId, user)


def require_permission(permission: Permission):
    """Dependency factory guarding ``/{mechanicId}/...`` routes by shop role."""

    def dependency(mechanicId: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
        check_permission(db, mechanicId, user, permission)
        return user

    return dependency
