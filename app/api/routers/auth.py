from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse

from app.core.auth import get_password_hash, verify_password, verify_refresh_token
from app.core.repository import MongoDBRepo, get_repo
from app.core.schemas import AuthLoginRequest, AuthRegisterRequest, AuthResponse, User, UserInDB
from app.core.security import (
    REFRESH_TOKEN_COOKIE,
    clear_auth_cookies,
    get_current_user,
    set_auth_cookies,
)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _auth_response(user: UserInDB) -> AuthResponse:
    return AuthResponse(user=User.model_validate(user.model_dump()))


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: AuthRegisterRequest,
    response: Response,
    repo: MongoDBRepo = Depends(get_repo),
):
    """Create an account and sign the new user in."""
    if await repo.get_user_by_email(payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    try:
        user = await repo.create_user(
            email=payload.email,
            name=payload.name,
            password_hash=get_password_hash(payload.password),
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    set_auth_cookies(response, user)
    return _auth_response(user)


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: AuthLoginRequest,
    response: Response,
    repo: MongoDBRepo = Depends(get_repo),
):
    user = await repo.get_user_by_email(payload.email)
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    set_auth_cookies(response, user)
    return _auth_response(user)


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    response: Response,
    refresh_token: Optional[str] = Cookie(None, alias=REFRESH_TOKEN_COOKIE),
    repo: MongoDBRepo = Depends(get_repo),
):
    """Exchange a refresh cookie for a new token pair."""
    if not refresh_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing refresh token")

    payload = verify_refresh_token(refresh_token)
    user = await repo.get_user_by_id(payload.user_id) if payload else None
    if user is None:
        rejected = JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "Invalid refresh token"},
        )
        clear_auth_cookies(rejected)
        return rejected

    set_auth_cookies(response, user)
    return _auth_response(user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout():
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_auth_cookies(response)
    return response


@router.get("/me", response_model=AuthResponse)
async def me(current_user: UserInDB = Depends(get_current_user)):
    return _auth_response(current_user)
