import uuid
from datetime import date
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth import dependencies
from app.auth.dependencies import Actor
from app.core.responses import StandardResponse
from app.database import get_db
from app.models.enums import ChangeEvent
from app.models.fitness import Exercise, WorkoutPlan
from app.services.ownership import get_client_in_reach_or_404
from app.services.realtime import ChangeFeed, get_change_feed

router = APIRouter()


class ExerciseData(BaseModel):
    name: str
    sets: int = Field(default=3, ge=1, le=100)
    reps: int = Field(default=10, ge=0, le=1000)
    weight: float | None = Field(default=None, ge=0)
    duration: int | None = Field(default=None, ge=0) # minutes
    rest_time: int = Field(default=60, ge=0) # seconds
    notes: str | None = None

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Exercise name cannot be empty")
        return normalized


class ExerciseResponse(ExerciseData):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_index: int


class WorkoutPlanCreate(BaseModel):
    client_id: uuid.UUID
    name: str = Field(min_length=1)
    description: str | None = None
    start_date: date
    end_date: date | None = None
    exercises: List[ExerciseData] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_dates(self) -> "WorkoutPlanCreate":
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class WorkoutPlanUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    exercises: List[ExerciseData] | None = None


class WorkoutPlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: uuid.UUID
    trainer_id: uuid.UUID
    name: str
    description: str | None = None
    start_date: date
    end_date: date | None = None
    exercises: List[ExerciseResponse] = Field(default_factory=list)


def _build_exercises(exercises: List[ExerciseData]) -> list[Exercise]:
    return [Exercise(**exercise.model_dump(), order_index=index) for index, exercise in enumerate(exercises)]


async def _get_workout_plan_or_404(db: AsyncSession, plan_id: uuid.UUID, actor: Actor) -> WorkoutPlan:
    stmt = select(WorkoutPlan).where(WorkoutPlan.id == plan_id).options(selectinload(WorkoutPlan.exercises))
    plan = (await db.execute(stmt)).scalar_one_or_none()
    if plan is None:
        raise HTTPException(status_code=404, detail="Workout plan not found")
    owner_id = plan.trainer_id if actor.is_trainer else plan.client_id
    if owner_id != actor.id:
        raise HTTPException(status_code=404, detail="Workout plan not found")
    return plan


def _publish(feed: ChangeFeed, event: ChangeEvent, plan: WorkoutPlan) -> None:
    feed.publish("workout_plans", event, plan.id, trainer_id=plan.trainer_id, client_id=plan.client_id)


@router.get("", response_model=StandardResponse[List[WorkoutPlanResponse]])
async def list_workout_plans(
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    client_id: uuid.UUID | None = Query(None),
):
    """Newest plans first; a client only ever sees their own."""
    stmt = select(WorkoutPlan).options(selectinload(WorkoutPlan.exercises))
    if actor.is_trainer:
        stmt = stmt.where(WorkoutPlan.trainer_id == actor.id)
        if client_id:
            stmt = stmt.where(WorkoutPlan.client_id == client_id)
    else:
        stmt = stmt.where(WorkoutPlan.client_id == actor.id)
    stmt = stmt.order_by(WorkoutPlan.start_date.desc(), WorkoutPlan.created_at.desc())

    plans = (await db.execute(stmt)).scalars().all()
    return StandardResponse(data=[WorkoutPlanResponse.model_validate(p) for p in plans])


@router.get("/{plan_id}", response_model=StandardResponse[WorkoutPlanResponse])
async def read_workout_plan(
    plan_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    plan = await _get_workout_plan_or_404(db, plan_id, actor)
    return StandardResponse(data=WorkoutPlanResponse.model_validate(plan))


@router.post("", response_model=StandardResponse[WorkoutPlanResponse])
async def create_workout_plan(
    data: WorkoutPlanCreate,
    actor: Annotated[Actor, Depends(dependencies.get_current_trainer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    client = await get_client_in_reach_or_404(db, actor, data.client_id)
    plan = WorkoutPlan(
        client_id=client.id,
        trainer_id=actor.id,
        name=data.name,
        description=data.description,
        start_date=data.start_date,
        end_date=data.end_date,
        exercises=_build_exercises(data.exercises),
    )
    db.add(plan)
    await db.commit()

    _publish(feed, ChangeEvent.INSERT, plan)
    return StandardResponse(data=WorkoutPlanResponse.model_validate(plan), message="Workout plan created")


@router.put("/{plan_id}", response_model=StandardResponse[WorkoutPlanResponse])
async def update_workout_plan(
    plan_id: uuid.UUID,
    data: WorkoutPlanUpdate,
    actor: Annotated[Actor, Depends(dependencies.get_current_trainer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    """Update plan fields; a supplied exercise list replaces the current one."""
    plan = await _get_workout_plan_or_404(db, plan_id, actor)
    update_data = data.model_dump(exclude_unset=True, exclude={"exercises"})
    for field, value in update_data.items():
        if field in {"name", "start_date"} and value is None:
            continue
        setattr(plan, field, value)
    if plan.end_date and plan.end_date < plan.start_date:
        raise HTTPException(status_code=400, detail="end_date cannot be before start_date")

    if data.exercises is not None:
        plan.exercises.clear()
        await db.flush()
        plan.exercises.extend(_build_exercises(data.exercises))
    await db.commit()

    _publish(feed, ChangeEvent.UPDATE, plan)
    return StandardResponse(data=WorkoutPlanResponse.model_validate(plan), message="Workout plan updated")


@router.delete("/{plan_id}", response_model=StandardResponse)
async def delete_workout_plan(
    plan_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_trainer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    plan = await _get_workout_plan_or_404(db, plan_id, actor)
    await db.delete(plan)
    await db.commit()

    _publish(feed, ChangeEvent.DELETE, plan)
    return StandardResponse(message="Workout plan deleted")
