"""Account maintenance functions.

These keep the flat ``{"success", "message", ...}`` response shape that the
web client expects from them instead of the ``StandardResponse`` envelope.
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import dependencies
from app.core.responses import FunctionResponse
from app.database import get_db
from app.models.enums import UserType
from app.models.user import User
from app.services.account_service import AccountService, NewClientProfile
from app.services.realtime import ChangeFeed, get_change_feed
from app.services.role_resolver import RoleResolver, get_role_resolver

logger = logging.getLogger(__name__)

router = APIRouter()


class ClientData(BaseModel):
    age: int | None = Field(default=None, ge=1, le=120)
    height: float | None = Field(default=None, gt=0, le=300)
    weight: float | None = Field(default=None, gt=0, le=500)
    goals: str | None = None
    phone: str | None = None
    notes: str | None = None


class CreateClientAccountRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    full_name: str = Field(min_length=1, max_length=120)
    trainer_id: uuid.UUID
    client_data: ClientData = Field(default_factory=ClientData)


class UpdateUserTypeRequest(BaseModel):
    user_id: uuid.UUID
    user_type: UserType


@router.post("/create-client-account", response_model=FunctionResponse)
async def create_client_account(
    data: CreateClientAccountRequest,
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    resolver: Annotated[RoleResolver, Depends(get_role_resolver)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    resolution = await resolver.resolve_user(current_user)
    profile = NewClientProfile(
        email=str(data.email),
        password=data.password,
        full_name=data.full_name.strip(),
        **data.client_data.model_dump(),
    )
    client = await AccountService.create_client_account(
        db, current_user, data.trainer_id, profile, resolution, feed=feed
    )
    return FunctionResponse(message="Client account created successfully", client_id=str(client.id))


@router.post("/update-user-type", response_model=FunctionResponse)
async def update_user_type(
    data: UpdateUserTypeRequest,
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    user_type = await AccountService.update_user_type(db, current_user, data.user_id, data.user_type)
    return FunctionResponse(message="User type updated successfully", user_type=user_type.value)


@router.post("/fix-user-data", response_model=FunctionResponse)
async def fix_user_data(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    resolver: Annotated[RoleResolver, Depends(get_role_resolver)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    result = await AccountService.fix_user_data(db, current_user, tie_break=resolver.tie_break, feed=feed)
    logger.info("Fixed user data for %s: %s", current_user.id, result.fixed_data)
    return FunctionResponse(
        message="User data fixed successfully",
        user_type=result.user_type.value,
        fixed_data=result.fixed_data,
    )
