from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from expense_api.api.deps import get_current_user
from expense_api.core.config import get_settings
from expense_api.core.db import get_session
from expense_api.core.logging_config import get_logger
from expense_api.core.security import (
    create_access_token,
    hash_password,
    new_one_time_token,
    verify_password,
)
from expense_api.models.user import User
from expense_api.schemas.auth import (
    AuthResponse,
    LoginRequest,
    PasswordResetRequest,
    PasswordResetResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()
logger = get_logger(__name__)

PASSWORD_RESET_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)


def _current_time() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=str(user.id),
        email=user.email,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role.value if hasattr(user.role, "value") else str(user.role),
        avatar_url=user.avatar_url,
        email_verified=user.email_verified,
        is_active=user.is_active,
        created_at=user.created_at.isoformat(),
        updated_at=user.updated_at.isoformat(),
    )


def _issue_token(user: User) -> TokenResponse:
    role = user.role.value if hasattr(user.role, "value") else str(user.role)
    return TokenResponse(access_token=create_access_token(str(user.id), {"role": role}))


async def authenticate_user(
    session: AsyncSession,
    email: str,
    password: str,
) -> User:
    result = await session.execute(select(User).where(User.email == email.lower().strip()))
    user = result.scalar_one_or_none()
    if not user or not verify_password(password, user.hashed_password):
        logger.info("auth.login_failed", email=email.lower().strip())
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )
    return user


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_session),
) -> AuthResponse:
    email = payload.email.lower().strip()
    username = payload.username.strip()

    existing_email = await session.execute(select(User).where(User.email == email))
    if existing_email.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already exists",
        )

    existing_username = await session.execute(select(User).where(User.username == username))
    if existing_username.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already taken",
        )

    user = User(
        email=email,
        username=username,
        hashed_password=hash_password(payload.password),
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        role=payload.role,
        email_verification_token=new_one_time_token(),
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)

    logger.info("auth.registered", user_id=str(user.id), role=user.role.value)
    return AuthResponse(token=_issue_token(user), user=to_user_response(user))


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_session),
) -> AuthResponse:
    user = await authenticate_user(session, payload.email, payload.password)
    user.updated_at = _current_time()
    session.add(user)
    await session.commit()
    await session.refresh(user)

    return AuthResponse(token=_issue_token(user), user=to_user_response(user))


@router.post("/token", response_model=TokenResponse)
async def token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: AsyncSession = Depends(get_session),
) -> TokenResponse:
    # For OAuth2 password flow, username field is used to carry email.
    user = await authenticate_user(session, form_data.username, form_data.password)
    return _issue_token(user)


@router.post("/reset-password", response_model=PasswordResetResponse)
async def reset_password(
    payload: PasswordResetRequest,
    session: AsyncSession = Depends(get_session),
) -> PasswordResetResponse:
    result = await session.execute(
        select(User).where(User.email == payload.email.lower().strip())
    )
    user = result.scalar_one_or_none()
    if user and user.is_active:
        now = _current_time()
        user.password_reset_token = new_one_time_token()
        user.password_reset_expires = now + timedelta(
            minutes=settings.password_reset_expire_minutes
        )
        user.updated_at = now
        session.add(user)
        await session.commit()
        logger.info("auth.password_reset_requested", user_id=str(user.id))

    # Same answer either way so the endpoint cannot be used to probe emails.
    return PasswordResetResponse(success=True, message=PASSWORD_RESET_MESSAGE)


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return to_user_response(current_user)


@router.patch("/me", response_model=UserResponse)
async def update_profile(
    payload: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> UserResponse:
    updates = payload.model_dump(exclude_unset=True)
    if "first_name" in updates and updates["first_name"] is not None:
        current_user.first_name = updates["first_name"].strip()
    if "last_name" in updates and updates["last_name"] is not None:
        current_user.last_name = updates["last_name"].strip()
    if "avatar_url" in updates:
        current_user.avatar_url = (updates["avatar_url"] or "").strip() or None

    current_user.updated_at = _current_time()
    session.add(current_user)
    await session.commit()
    await session.refresh(current_user)
    return to_user_response(current_user)
