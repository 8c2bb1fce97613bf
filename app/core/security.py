from typing import Optional

from fastapi import Cookie, Depends, HTTPException, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.auth import (
    TokenPayload,
    create_access_token,
    create_refresh_token,
    verify_access_token,
)
from app.core.repository import MongoDBRepo, get_repo
from app.core.schemas import UserInDB
from app.core.settings import Settings, get_settings

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

# Bearer tokens are accepted alongside the cookie for API clients
security = HTTPBearer(auto_error=False)


def set_auth_cookies(response: Response, user: UserInDB, settings: Optional[Settings] = None) -> None:
    """Issue a fresh access/refresh token pair as HttpOnly cookies."""
    settings = settings or get_settings()
    payload = TokenPayload(user_id=user.id, email=user.email)
    cookie_options = {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "none" if settings.cookie_secure else "lax",
        "path": "/",
    }
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        create_access_token(payload, settings),
        max_age=settings.access_token_expire_minutes * 60,
        **cookie_options,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        create_refresh_token(payload, settings),
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        **cookie_options,
    )


def clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_TOKEN_COOKIE, path="/")
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path="/")


async def get_current_user(
    access_token: Optional[str] = Cookie(None, alias=ACCESS_TOKEN_COOKIE),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    repo: MongoDBRepo = Depends(get_repo),
) -> UserInDB:
    """
    Dependency to get the current authenticated user.

    The access token is read from the accessToken cookie, falling back to an
    Authorization: Bearer header.

    Raises:
        HTTPException: 401 Unauthorized if the token is missing or invalid,
            or the user no longer exists
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
    )

    token = access_token or (credentials.credentials if credentials else None)
    if not token:
        raise credentials_exception

    payload = verify_access_token(token)
    if payload is None:
        raise credentials_exception

    user = await repo.get_user_by_id(payload.user_id)
    if user is None:
        raise credentials_exception
    return user
