"""FastAPI dependencies for authentication, settings and service wiring."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.errors import AuthorizationError
from app.core.permissions import Action, can
from app.core.security import decode_token
from app.db.database import get_db
from app.models.user import User
from app.services.file_storage import BlobStorage


# Security scheme for Bearer token
security = HTTPBearer()


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> BlobStorage:
    return request.app.state.storage


def get_queues(request: Request):
    return getattr(request.app.state, "queues", None)


AppSettings = Annotated[Settings, Depends(get_app_settings)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Storage = Annotated[BlobStorage, Depends(get_storage)]


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: DbSession,
    settings: AppSettings,
) -> User:
    """
    Dependency to get the current authenticated user.

    Raises:
        HTTPException 401: If token is invalid, expired, or user not found
        HTTPException 403: If the account is deactivated
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_token(credentials.credentials, settings)
        user_id_str = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        try:
            user_id = UUID(user_id_str)
        except ValueError:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return user


# Type alias for easier use in route handlers
CurrentUser = Annotated[User, Depends(get_current_user)]


def require_capability(action: Action):
    """Dependency factory: the caller's role must be granted ``action``."""

    async def _checker(current_user: CurrentUser) -> User:
        if not can(current_user.role, action):
            raise AuthorizationError(
                f"Your role cannot perform {action.value}",
                "INSUFFICIENT_PERMISSIONS",
            )
        return current_user

    return _checker


CaseReviewer = Annotated[User, Depends(require_capability(Action.DOCUMENT_REVIEW))]
