from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from app.core.settings import Settings, get_settings

ALGORITHM = "HS256"

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TokenType = Literal["access", "refresh"]


class TokenPayload(BaseModel):
    user_id: str
    email: str


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a hashed password.

    Args:
        plain_password: The plain text password to verify
        hashed_password: The hashed password to compare against

    Returns:
        bool: True if password matches, False otherwise
    """
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: The plain text password to hash

    Returns:
        str: The hashed password
    """
    return pwd_context.hash(password)


def _secret_for(token_type: TokenType, settings: Settings) -> str:
    secret = settings.jwt_access_secret if token_type == "access" else settings.jwt_refresh_secret
    if not secret:
        env_name = "JWT_ACCESS_SECRET" if token_type == "access" else "JWT_REFRESH_SECRET"
        raise ValueError(f"{env_name} environment variable is required")
    return secret


def _create_token(
    payload: TokenPayload,
    token_type: TokenType,
    expires_delta: timedelta,
    settings: Settings,
) -> str:
    to_encode = {
        "sub": payload.user_id,
        "email": payload.email,
        "type": token_type,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(to_encode, _secret_for(token_type, settings), algorithm=ALGORITHM)


def create_access_token(payload: TokenPayload, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return _create_token(
        payload,
        "access",
        timedelta(minutes=settings.access_token_expire_minutes),
        settings,
    )


def create_refresh_token(payload: TokenPayload, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return _create_token(
        payload,
        "refresh",
        timedelta(days=settings.refresh_token_expire_days),
        settings,
    )


def _verify_token(
    token: str, token_type: TokenType, settings: Optional[Settings]
) -> Optional[TokenPayload]:
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, _secret_for(token_type, settings), algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != token_type or not payload.get("sub"):
        return None
    return TokenPayload(user_id=payload["sub"], email=payload.get("email", ""))


def verify_access_token(token: str, settings: Optional[Settings] = None) -> Optional[TokenPayload]:
    """
    Verify and decode an access token.

    Returns:
        Optional[TokenPayload]: The payload if valid, None otherwise
    """
    return _verify_token(token, "access", settings)


def verify_refresh_token(token: str, settings: Optional[Settings] = None) -> Optional[TokenPayload]:
    return _verify_token(token, "refresh", settings)
