from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import dependencies
from app.auth.dependencies import Actor
from app.core.responses import StandardResponse
from app.database import get_db
from app.routers.clients import TrainerResponse

router = APIRouter()


def _trainer_record_or_404(actor: Actor):
    if actor.resolution.trainer is None:
        raise HTTPException(status_code=404, detail="Trainer profile not found")
    return actor.resolution.trainer


class TrainerUpdate(BaseModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=120)
    avatar_url: str | None = None


@router.get("/me", response_model=StandardResponse[TrainerResponse])
async def read_trainer_profile(
    actor: Annotated[Actor, Depends(dependencies.get_current_trainer)],
):
    return StandardResponse(data=TrainerResponse.model_validate(_trainer_record_or_404(actor)))


@router.put("/me", response_model=StandardResponse[TrainerResponse])
async def update_trainer_profile(
    data: TrainerUpdate,
    actor: Annotated[Actor, Depends(dependencies.get_current_trainer)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Update display name and avatar. The principal's full name follows the trainer record."""
    trainer = await db.merge(_trainer_record_or_404(actor))
    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(trainer, field, value)
    if "full_name" in update_data:
        actor.user.full_name = update_data["full_name"]
    await db.commit()
    return StandardResponse(data=TrainerResponse.model_validate(trainer), message="Profile updated successfully")
