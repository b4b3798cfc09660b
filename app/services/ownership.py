import uuid

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import Actor
from app.models.profiles import Client


async def get_client_in_reach_or_404(db: AsyncSession, actor: Actor, client_id: uuid.UUID) -> Client:
    """A trainer reaches their own clients, a client reaches only themselves."""
    if actor.is_client and actor.id != client_id:
        raise HTTPException(status_code=403, detail="Access denied")

    result = await db.execute(select(Client).where(Client.id == client_id))
    client = result.scalar_one_or_none()
    if client is None or (actor.is_trainer and client.trainer_id != actor.id):
        raise HTTPException(status_code=404, detail="Client not found")
    return client


def scope_for(client: Client) -> dict[str, uuid.UUID]:
    return {"trainer_id": client.trainer_id, "client_id": client.id}
