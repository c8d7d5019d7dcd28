"""Authentication endpoints for user registration, login, and profile."""

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, EmailStr
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.deps import AppSettings, CurrentUser, DbSession
from app.core.enums import ActivityAction, UserRole
from app.core.errors import ValidationError
from app.core.security import hash_password, verify_password, create_access_token
from app.models.user import User
from app.schemas.shared import UserCreate, UserResponse, TokenResponse
from app.services.activity_service import ActivityRecorder
from app.utils.clock import utcnow


router = APIRouter(prefix="/auth", tags=["auth"])


# Login request schema
class LoginRequest(BaseModel):
    """Request schema for user login."""
    email: EmailStr
    password: str


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: DbSession, request: Request):
    """
    Register a new client account.

    Self-registration always yields the CLIENT role; staff accounts are
    provisioned by an admin.

    Raises:
        ValidationError 400: If email already exists
    """
    email = user_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise ValidationError("Email already registered", "EMAIL_TAKEN")

    new_user = User(
        email=email,
        hashed_password=hash_password(user_data.password),
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        phone=user_data.phone,
        role=UserRole.CLIENT.value,
        is_active=True,
    )
    db.add(new_user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationError("Email already registered", "EMAIL_TAKEN")

    await ActivityRecorder(request.app.state.database).record(
        new_user.id,
        ActivityAction.USER_REGISTERED,
        f"User {new_user.email} registered",
        entity_type="user",
        entity_id=str(new_user.id),
    )
    return UserResponse.model_validate(new_user)


@router.post("/login", response_model=TokenResponse)
async def login(credentials: LoginRequest, db: DbSession, settings: AppSettings, request: Request):
    """
    Login user and return JWT access token.

    Raises:
        HTTPException 401: If credentials are invalid
        HTTPException 403: If the account is inactive
    """
    result = await db.execute(select(User).where(User.email == credentials.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    user.last_login_at = utcnow()
    await db.commit()

    await ActivityRecorder(request.app.state.database).record(
        user.id,
        ActivityAction.USER_LOGIN,
        f"User {user.email} logged in",
        entity_type="user",
        entity_id=str(user.id),
    )

    access_token = create_access_token(
        user_id=str(user.id),
        email=user.email,
        role=user.role,
        settings=settings,
    )
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: CurrentUser):
    """Profile of the authenticated user."""
    return UserResponse.model_validate(current_user)
