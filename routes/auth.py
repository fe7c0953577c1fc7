from fastapi import APIRouter, Depends, Request

from auth import device_info, get_current_user, get_db, get_token_service
from models import LoginRequest, SignupRequest
from services.users import UserService, sanitize_user

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/signup", status_code=201)
def signup(body: SignupRequest, request: Request, db=Depends(get_db), token_service=Depends(get_token_service)):
    user, token = UserService(db, token_service).signup(body.model_dump(), device_info(request))
    return {"message": "User registered successfully", "token": token, "user": sanitize_user(user)}


@router.post("/login")
def login(body: LoginRequest, request: Request, db=Depends(get_db), token_service=Depends(get_token_service)):
    user, token = UserService(db, token_service).login(body.email, body.password, device_info(request))
    return {"message": "Login successful", "token": token, "user": sanitize_user(user)}


@router.post("/logout")
def logout(request: Request, user=Depends(get_current_user), token_service=Depends(get_token_service)):
    token_service.invalidate_token(request.state.credential)
    return {"message": "Logged out successfully"}


@router.post("/logout-all")
def logout_all(user=Depends(get_current_user), token_service=Depends(get_token_service)):
    token_service.invalidate_user_tokens(user["_id"])
    return {"message": "Logged out from all devices"}


@router.get("/check-email/{email}")
def check_email(email: str, db=Depends(get_db)):
    return UserService(db).check_email(email)
