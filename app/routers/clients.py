import logging
import re
import uuid
from datetime import datetime
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import dependencies
from app.auth.dependencies import Actor
from app.core.responses import StandardResponse
from app.database import get_db
from app.models.enums import ChangeEvent
from app.models.profiles import Client, Trainer
from app.models.user import User
from app.services.audit_service import AuditService
from app.services.ownership import get_client_in_reach_or_404, scope_for
from app.services.realtime import ChangeFeed, get_change_feed

logger = logging.getLogger(__name__)

router = APIRouter()

PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9\s\-()]{6,19}$")


class ClientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    trainer_id: uuid.UUID
    name: str
    email: str | None = None
    phone: str | None = None
    age: int | None = None
    height: float | None = None
    weight: float | None = None
    goals: str | None = None
    notes: str | None = None
    join_date: datetime
    profile_image: str | None = None


class ClientUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    phone: str | None = None
    age: int | None = Field(default=None, ge=1, le=120)
    height: float | None = Field(default=None, gt=0, le=300)
    weight: float | None = Field(default=None, gt=0, le=500)
    goals: str | None = None
    notes: str | None = None
    profile_image: str | None = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: str | None) -> str | None:
        if value is None:
            return value
        normalized = value.strip()
        if not PHONE_PATTERN.match(normalized):
            raise ValueError("Invalid phone number format")
        return normalized


class TrainerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    email: EmailStr | None = None
    avatar_url: str | None = None


@router.get("", response_model=StandardResponse[List[ClientResponse]])
async def list_clients(
    actor: Annotated[Actor, Depends(dependencies.get_current_trainer)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """List the trainer's clients by name."""
    result = await db.execute(select(Client).where(Client.trainer_id == actor.id).order_by(Client.name))
    return StandardResponse(data=[ClientResponse.model_validate(c) for c in result.scalars().all()])


@router.get("/me", response_model=StandardResponse[ClientResponse])
async def read_own_profile(
    actor: Annotated[Actor, Depends(dependencies.get_current_client)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    client = await get_client_in_reach_or_404(db, actor, actor.id)
    return StandardResponse(data=ClientResponse.model_validate(client))


@router.get("/me/trainer", response_model=StandardResponse[TrainerResponse])
async def read_own_trainer(
    actor: Annotated[Actor, Depends(dependencies.get_current_client)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    client = await get_client_in_reach_or_404(db, actor, actor.id)
    trainer = (await db.execute(select(Trainer).where(Trainer.id == client.trainer_id))).scalar_one_or_none()
    if trainer is None:
        raise HTTPException(status_code=404, detail="Trainer not found")
    return StandardResponse(data=TrainerResponse.model_validate(trainer))


@router.get("/{client_id}", response_model=StandardResponse[ClientResponse])
async def read_client(
    client_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    client = await get_client_in_reach_or_404(db, actor, client_id)
    return StandardResponse(data=ClientResponse.model_validate(client))


@router.put("/{client_id}", response_model=StandardResponse[ClientResponse])
async def update_client(
    client_id: uuid.UUID,
    data: ClientUpdate,
    actor: Annotated[Actor, Depends(dependencies.get_current_trainer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    client = await get_client_in_reach_or_404(db, actor, client_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(client, field, value)
    await db.commit()
    await db.refresh(client)

    feed.publish("clients", ChangeEvent.UPDATE, client.id, **scope_for(client))
    return StandardResponse(data=ClientResponse.model_validate(client), message="Client updated")


@router.delete("/{client_id}", response_model=StandardResponse)
async def delete_client(
    client_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_trainer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    """Delete a client record with its plans, progress and messages.

    The login goes too, so the email can be registered again. A principal that
    also holds a trainer record keeps its login.
    """
    client = await get_client_in_reach_or_404(db, actor, client_id)
    scope = scope_for(client)
    await db.delete(client)
    await db.flush()

    principal = (await db.execute(select(User).where(User.id == client_id))).scalar_one_or_none()
    holds_trainer_record = (await db.execute(select(Trainer.id).where(Trainer.id == client_id))).scalar_one_or_none()
    if principal is not None and holds_trainer_record is None:
        await db.delete(principal)
    await AuditService.log_action(
        db,
        actor_id=actor.id,
        action="DELETE_CLIENT",
        target_id=str(client_id),
        details=f"Deleted client {client.email or client.name}",
    )
    await db.commit()
    logger.info("Trainer %s deleted client %s", actor.id, client_id)

    feed.publish("clients", ChangeEvent.DELETE, client_id, **scope)
    return StandardResponse(message="Client deleted")
