import logging
from typing import Annotated
from datetime import timedelta, datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from jose import JWTError

from app.config import settings
from app.database import get_db
from app.auth import schemas, security, dependencies
from app.auth.guards import session_notices
from app.models.user import User
from app.models.auth import RefreshToken
from app.models.enums import UserType
from app.models.profiles import Trainer
from app.core.rate_limit import rate_limit_dependency
from app.core.responses import StandardResponse
from app.services.audit_service import AuditService
from app.services.role_resolver import Resolution

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_utc_datetime(value: int | float | datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _persist_refresh_token(db: AsyncSession, user_id, refresh_token: str) -> None:
    payload = security.decode_token(refresh_token)
    db.add(
        RefreshToken(
            user_id=user_id,
            jti=str(payload["jti"]),
            token_hash=security.hash_token(refresh_token),
            expires_at=_to_utc_datetime(payload["exp"]),
        )
    )


async def _issue_tokens(db: AsyncSession, user: User) -> schemas.Token:
    access_token = security.create_access_token(
        subject=user.email, expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    refresh_token = security.create_refresh_token(subject=user.email)
    _persist_refresh_token(db, user.id, refresh_token)
    await db.commit()
    return schemas.Token(access_token=access_token, refresh_token=refresh_token, token_type="bearer")


async def _get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def revoke_refresh_tokens(db: AsyncSession, user_id, reason: str) -> None:
    await db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
        .values(revoked_at=datetime.now(timezone.utc), revoked_reason=reason)
    )


@router.post(
    "/signup",
    response_model=StandardResponse[schemas.UserResponse],
    dependencies=[rate_limit_dependency(route_key="auth.signup", limit=10, window_seconds=60)],
)
async def signup(
    user_in: schemas.SignupRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Self-service registration. Client principals are created by their trainer."""
    if user_in.user_type != UserType.TRAINER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Client accounts are created by trainers.",
        )
    if await _get_user_by_email(db, user_in.email):
        raise HTTPException(
            status_code=400,
            detail="The user with this email already exists in the system.",
        )

    email = user_in.email.strip().lower()
    user = User(
        email=email,
        hashed_password=security.get_password_hash(user_in.password),
        full_name=user_in.full_name,
        user_type=UserType.TRAINER,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    db.add(Trainer(id=user.id, full_name=user_in.full_name, email=email))
    await AuditService.log_action(db, actor_id=user.id, action="SIGNUP", target_id=str(user.id), details=f"Registered trainer {email}")
    await db.commit()
    await db.refresh(user)
    logger.info("Registered trainer %s", user.id)

    return StandardResponse(data=user, message="Account created")

@router.post(
    "/login",
    response_model=StandardResponse[schemas.Token],
    dependencies=[rate_limit_dependency(route_key="auth.login", limit=5, window_seconds=60, json_fields=("email",))],
)
async def login(
    login_data: schemas.LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    user = await _get_user_by_email(db, login_data.email)

    if not user or not security.verify_password(login_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")

    return StandardResponse(data=await _issue_tokens(db, user), message="Welcome back!")

@router.post(
    "/refresh",
    response_model=StandardResponse[schemas.Token],
    dependencies=[rate_limit_dependency(route_key="auth.refresh", limit=10, window_seconds=60)],
)
async def refresh_token(
    token: Annotated[str, Depends(dependencies.oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    credentials_exception = dependencies.credentials_exception()

    try:
        payload = security.decode_token(token)
    except JWTError:
        raise credentials_exception
    username = payload.get("sub")
    jti = payload.get("jti")
    if username is None or payload.get("type") != "refresh" or jti is None:
        raise credentials_exception

    user = await _get_user_by_email(db, username)
    if user is None or not user.is_active:
        raise credentials_exception

    refresh_stmt = select(RefreshToken).where(
        RefreshToken.user_id == user.id,
        RefreshToken.jti == str(jti),
        RefreshToken.revoked_at.is_(None)
    )
    token_record = (await db.execute(refresh_stmt)).scalar_one_or_none()
    if token_record is None or token_record.token_hash != security.hash_token(token):
        raise credentials_exception

    now = datetime.now(timezone.utc)
    if _to_utc_datetime(token_record.expires_at) <= now:
        raise credentials_exception

    token_record.revoked_at = now
    token_record.revoked_reason = "rotated"
    return StandardResponse(data=await _issue_tokens(db, user), message="Token Refreshed")

@router.post("/logout", response_model=StandardResponse)
async def logout(
    current_user: Annotated[User, Depends(dependencies.get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    await revoke_refresh_tokens(db, current_user.id, "logout")
    await db.commit()
    return StandardResponse(message="You have been successfully signed out.")

@router.get("/me", response_model=StandardResponse[schemas.UserResponse])
async def read_users_me(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
):
    return StandardResponse(data=current_user)

@router.get("/session", response_model=StandardResponse[schemas.SessionResponse])
async def read_session(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    resolution: Annotated[Resolution, Depends(dependencies.get_resolution)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Resolve the caller's role and tell the dashboard where to send them."""
    if resolution.requires_sign_out:
        logger.warning("Signing out %s: no role could be resolved", current_user.id)
        await revoke_refresh_tokens(db, current_user.id, "role_unresolved")
        await db.commit()

    return StandardResponse(
        data=schemas.SessionResponse(
            user=schemas.UserResponse.model_validate(current_user),
            role=resolution.role,
            source=resolution.source,
            redirect_to=resolution.dashboard,
            inconsistent=resolution.inconsistent,
            signed_out=resolution.requires_sign_out,
            notices=session_notices(resolution),
            trainer_id=resolution.trainer.id if resolution.trainer else None,
            client_id=resolution.client.id if resolution.client else None,
        )
    )

@router.put("/me/password", response_model=StandardResponse)
async def change_password(
    password_data: schemas.PasswordChange,
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Change current user password."""
    if not security.verify_password(password_data.current_password, current_user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Incorrect current password"
        )

    current_user.hashed_password = security.get_password_hash(password_data.new_password)
    await revoke_refresh_tokens(db, current_user.id, "password_change")
    await AuditService.log_action(
        db,
        actor_id=current_user.id,
        action="CHANGE_PASSWORD",
        target_id=str(current_user.id),
        details="Password changed; refresh tokens revoked",
    )
    await db.commit()

    return StandardResponse(message="Password changed successfully")
