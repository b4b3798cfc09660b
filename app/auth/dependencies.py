from dataclasses import dataclass
from typing import Annotated, List
import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.config import settings
from app.database import get_db
from app.models.user import User
from app.auth.schemas import TokenPayload
from app.auth.security import decode_token
from app.auth.guards import guard_route
from app.models.enums import ResolvedRole
from app.services.role_resolver import Resolution, RoleResolver, get_role_resolver

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")


def credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def user_from_access_token(token: str, db: AsyncSession) -> User:
    try:
        payload = decode_token(token)
        token_data = TokenPayload(sub=payload.get("sub"), type=payload.get("type"))
    except JWTError:
        raise credentials_exception()
    if token_data.sub is None or token_data.type != "access":
        raise credentials_exception()

    result = await db.execute(select(User).where(User.email == token_data.sub))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exception()
    return user


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    return await user_from_access_token(token, db)

async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


async def get_resolution(
    current_user: Annotated[User, Depends(get_current_active_user)],
    resolver: Annotated[RoleResolver, Depends(get_role_resolver)],
) -> Resolution:
    return await resolver.resolve_user(current_user)


@dataclass
class Actor:
    """The authenticated principal together with its resolved role."""

    user: User
    resolution: Resolution

    @property
    def id(self) -> uuid.UUID:
        return self.user.id

    @property
    def role(self) -> ResolvedRole:
        return self.resolution.role

    @property
    def is_trainer(self) -> bool:
        return self.role == ResolvedRole.TRAINER

    @property
    def is_client(self) -> bool:
        return self.role == ResolvedRole.CLIENT


class RoleChecker:
    def __init__(self, allowed_roles: List[ResolvedRole]):
        self.allowed_roles = tuple(allowed_roles)

    def __call__(
        self,
        user: Annotated[User, Depends(get_current_active_user)],
        resolution: Annotated[Resolution, Depends(get_resolution)],
    ) -> Actor:
        decision = guard_route(resolution.role, self.allowed_roles)
        if decision.allowed:
            return Actor(user=user, resolution=resolution)
        if resolution.requires_sign_out:
            raise credentials_exception("No trainer or client profile is linked to this account")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "detail": "Operation not permitted",
                "role": resolution.role.value,
                "redirect_to": decision.redirect_to,
                "notice": decision.notice,
            },
        )


get_current_trainer = RoleChecker([ResolvedRole.TRAINER])
get_current_client = RoleChecker([ResolvedRole.CLIENT])
get_current_member = RoleChecker([ResolvedRole.TRAINER, ResolvedRole.CLIENT])
