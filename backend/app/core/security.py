"""Security utilities for password hashing and JWT token management."""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import Settings, get_settings


# Password hashing context using bcrypt
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
DOWNLOAD_TOKEN_TYPE = "download"


def hash_password(plain_password: str) -> str:
    """
    Hash a plain text password using bcrypt.

    Args:
        plain_password: The plain text password to hash

    Returns:
        The hashed password string
    """
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain text password against a bcrypt hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    user_id: str,
    email: str,
    role: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> str:
    """
    Create a JWT access token for a user.

    Args:
        user_id: The user's unique identifier (UUID as string)
        email: The user's email address
        role: The user's role, carried for clients that render role-specific UI
        settings: Settings to sign with (defaults to the cached settings)

    Returns:
        JWT token string
    """
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "typ": ACCESS_TOKEN_TYPE,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        "iat": now,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_download_token(
    locator: str,
    ttl_seconds: int,
    settings: Optional[Settings] = None,
) -> str:
    """Sign a short-lived token that grants read access to one stored blob."""
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": locator,
        "typ": DOWNLOAD_TOKEN_TYPE,
        "exp": now + timedelta(seconds=ttl_seconds),
        "iat": now,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(
    token: str,
    settings: Optional[Settings] = None,
    expected_type: str = ACCESS_TOKEN_TYPE,
) -> Dict[str, Any]:
    """
    Decode and validate a JWT token.

    Raises:
        JWTError: If the token is invalid, expired, malformed or of the wrong type
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as e:
        raise JWTError(f"Invalid token: {str(e)}")

    if payload.get("typ", ACCESS_TOKEN_TYPE) != expected_type:
        raise JWTError("Invalid token: wrong token type")
    return payload
