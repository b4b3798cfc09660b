import uuid
from datetime import datetime
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import dependencies
from app.auth.dependencies import Actor
from app.core.responses import StandardResponse
from app.database import get_db
from app.models.enums import ChangeEvent, SenderType
from app.models.messaging import Message
from app.services.ownership import get_client_in_reach_or_404, scope_for
from app.services.realtime import ChangeFeed, get_change_feed

router = APIRouter()

MAX_MESSAGE_LENGTH = 4000


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)

    @field_validator("content")
    @classmethod
    def normalize_content(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Message cannot be empty")
        return cleaned


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: uuid.UUID
    sender_id: uuid.UUID
    sender_type: SenderType
    content: str
    timestamp: datetime
    read: bool


class UnreadCount(BaseModel):
    unread: int


def _sender_type(actor: Actor) -> SenderType:
    return SenderType.TRAINER if actor.is_trainer else SenderType.CLIENT


def _other_party(actor: Actor) -> SenderType:
    return SenderType.CLIENT if actor.is_trainer else SenderType.TRAINER


@router.get("/{client_id}", response_model=StandardResponse[List[MessageResponse]])
async def list_messages(
    client_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = Query(200, ge=1, le=500),
):
    """Conversation between a client and their trainer, oldest first."""
    await get_client_in_reach_or_404(db, actor, client_id)
    stmt = (
        select(Message)
        .where(Message.client_id == client_id)
        .order_by(Message.timestamp.desc())
        .limit(limit)
    )
    messages = list(reversed((await db.execute(stmt)).scalars().all()))
    return StandardResponse(data=[MessageResponse.model_validate(m) for m in messages])


@router.post("/{client_id}", response_model=StandardResponse[MessageResponse])
async def send_message(
    client_id: uuid.UUID,
    data: MessageCreate,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    client = await get_client_in_reach_or_404(db, actor, client_id)
    sender_type = _sender_type(actor)
    message = Message(
        client_id=client.id,
        sender_id=actor.id,
        sender_type=sender_type,
        content=data.content,
        # The trainer reads their own messages as they write them.
        read=sender_type == SenderType.TRAINER,
    )
    db.add(message)
    await db.commit()

    feed.publish("messages", ChangeEvent.INSERT, message.id, **scope_for(client))
    return StandardResponse(data=MessageResponse.model_validate(message), message="Message sent")


@router.get("/{client_id}/unread-count", response_model=StandardResponse[UnreadCount])
async def read_unread_count(
    client_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Unread messages sent to the caller by the other party."""
    await get_client_in_reach_or_404(db, actor, client_id)
    stmt = select(func.count(Message.id)).where(
        Message.client_id == client_id,
        Message.sender_type == _other_party(actor),
        Message.read.is_(False),
    )
    unread = (await db.execute(stmt)).scalar_one()
    return StandardResponse(data=UnreadCount(unread=unread))


@router.post("/{client_id}/read", response_model=StandardResponse[UnreadCount])
async def mark_conversation_read(
    client_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    """Mark every message from the other party as read. Returns how many changed."""
    client = await get_client_in_reach_or_404(db, actor, client_id)
    unread_ids = (
        await db.execute(
            select(Message.id).where(
                Message.client_id == client_id,
                Message.sender_type == _other_party(actor),
                Message.read.is_(False),
            )
        )
    ).scalars().all()
    if unread_ids:
        await db.execute(update(Message).where(Message.id.in_(unread_ids)).values(read=True))
        await db.commit()
        for message_id in unread_ids:
            feed.publish("messages", ChangeEvent.UPDATE, message_id, **scope_for(client))
    return StandardResponse(data=UnreadCount(unread=len(unread_ids)), message="Conversation marked as read")


@router.patch("/{client_id}/{message_id}/read", response_model=StandardResponse[MessageResponse])
async def mark_message_read(
    client_id: uuid.UUID,
    message_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    client = await get_client_in_reach_or_404(db, actor, client_id)
    stmt = select(Message).where(Message.id == message_id, Message.client_id == client_id)
    message = (await db.execute(stmt)).scalar_one_or_none()
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    if message.sender_id == actor.id:
        raise HTTPException(status_code=400, detail="Cannot mark your own message as read")

    if not message.read:
        message.read = True
        await db.commit()
        feed.publish("messages", ChangeEvent.UPDATE, message.id, **scope_for(client))
    return StandardResponse(data=MessageResponse.model_validate(message))
