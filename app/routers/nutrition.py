import re
import uuid
from datetime import date
from typing import Annotated, Iterable, List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth import dependencies
from app.auth.dependencies import Actor
from app.core.responses import StandardResponse
from app.database import get_db
from app.models.enums import ChangeEvent
from app.models.fitness import Food, Meal, NutritionPlan
from app.services.ownership import get_client_in_reach_or_404
from app.services.realtime import ChangeFeed, get_change_feed

router = APIRouter()

MEAL_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class Macros(BaseModel):
    protein: float = Field(default=0, ge=0)
    carbs: float = Field(default=0, ge=0)
    fats: float = Field(default=0, ge=0)


class NutritionTotals(Macros):
    calories: float = 0


class FoodData(BaseModel):
    name: str = Field(min_length=1)
    quantity: float = Field(default=1, gt=0)
    unit: str = "g"
    calories: float = Field(default=0, ge=0)
    protein: float = Field(default=0, ge=0)
    carbs: float = Field(default=0, ge=0)
    fats: float = Field(default=0, ge=0)


class FoodResponse(FoodData):
    id: uuid.UUID


class MealData(BaseModel):
    name: str = Field(min_length=1)
    time: str | None = None
    foods: List[FoodData] = Field(default_factory=list)

    @field_validator("time")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not MEAL_TIME_PATTERN.match(normalized):
            raise ValueError("time must be HH:MM")
        return normalized


class MealResponse(BaseModel):
    id: uuid.UUID
    name: str
    time: str | None = None
    foods: List[FoodResponse]
    totals: NutritionTotals


class NutritionPlanCreate(BaseModel):
    client_id: uuid.UUID
    name: str = Field(min_length=1)
    description: str | None = None
    start_date: date
    end_date: date | None = None
    daily_calories: int = Field(default=0, ge=0)
    macros: Macros = Field(default_factory=Macros)
    meals: List[MealData] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_dates(self) -> "NutritionPlanCreate":
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class NutritionPlanUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    daily_calories: int | None = Field(default=None, ge=0)
    macros: Macros | None = None
    meals: List[MealData] | None = None


class NutritionPlanResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    trainer_id: uuid.UUID
    name: str
    description: str | None = None
    start_date: date
    end_date: date | None = None
    daily_calories: int
    macros: Macros
    meals: List[MealResponse]
    totals: NutritionTotals


def sum_foods(foods: Iterable[Food]) -> NutritionTotals:
    totals = NutritionTotals()
    for food in foods:
        totals.calories += food.calories
        totals.protein += food.protein
        totals.carbs += food.carbs
        totals.fats += food.fats
    return totals


def _meal_response(meal: Meal) -> MealResponse:
    return MealResponse(
        id=meal.id,
        name=meal.name,
        time=meal.time,
        foods=[FoodResponse.model_validate(food, from_attributes=True) for food in meal.foods],
        totals=sum_foods(meal.foods),
    )


def _plan_response(plan: NutritionPlan) -> NutritionPlanResponse:
    return NutritionPlanResponse(
        id=plan.id,
        client_id=plan.client_id,
        trainer_id=plan.trainer_id,
        name=plan.name,
        description=plan.description,
        start_date=plan.start_date,
        end_date=plan.end_date,
        daily_calories=plan.daily_calories,
        macros=Macros(protein=plan.protein_grams, carbs=plan.carbs_grams, fats=plan.fats_grams),
        meals=[_meal_response(meal) for meal in plan.meals],
        totals=sum_foods(food for meal in plan.meals for food in meal.foods),
    )


def _build_meals(meals: List[MealData]) -> list[Meal]:
    return [
        Meal(
            name=meal.name,
            time=meal.time,
            order_index=meal_index,
            foods=[Food(**food.model_dump(), order_index=food_index) for food_index, food in enumerate(meal.foods)],
        )
        for meal_index, meal in enumerate(meals)
    ]


def _apply_macros(plan: NutritionPlan, macros: Macros) -> None:
    plan.protein_grams = macros.protein
    plan.carbs_grams = macros.carbs
    plan.fats_grams = macros.fats


async def _get_nutrition_plan_or_404(db: AsyncSession, plan_id: uuid.UUID, actor: Actor) -> NutritionPlan:
    stmt = (
        select(NutritionPlan)
        .where(NutritionPlan.id == plan_id)
        .options(selectinload(NutritionPlan.meals).selectinload(Meal.foods))
    )
    plan = (await db.execute(stmt)).scalar_one_or_none()
    if plan is None:
        raise HTTPException(status_code=404, detail="Nutrition plan not found")
    owner_id = plan.trainer_id if actor.is_trainer else plan.client_id
    if owner_id != actor.id:
        raise HTTPException(status_code=404, detail="Nutrition plan not found")
    return plan


def _publish(feed: ChangeFeed, event: ChangeEvent, plan: NutritionPlan) -> None:
    feed.publish("nutrition_plans", event, plan.id, trainer_id=plan.trainer_id, client_id=plan.client_id)


@router.get("", response_model=StandardResponse[List[NutritionPlanResponse]])
async def list_nutrition_plans(
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    client_id: uuid.UUID | None = Query(None),
):
    stmt = select(NutritionPlan).options(selectinload(NutritionPlan.meals).selectinload(Meal.foods))
    if actor.is_trainer:
        stmt = stmt.where(NutritionPlan.trainer_id == actor.id)
        if client_id:
            stmt = stmt.where(NutritionPlan.client_id == client_id)
    else:
        stmt = stmt.where(NutritionPlan.client_id == actor.id)
    stmt = stmt.order_by(NutritionPlan.start_date.desc(), NutritionPlan.created_at.desc())

    plans = (await db.execute(stmt)).scalars().all()
    return StandardResponse(data=[_plan_response(p) for p in plans])


@router.get("/{plan_id}", response_model=StandardResponse[NutritionPlanResponse])
async def read_nutrition_plan(
    plan_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    plan = await _get_nutrition_plan_or_404(db, plan_id, actor)
    return StandardResponse(data=_plan_response(plan))


@router.post("", response_model=StandardResponse[NutritionPlanResponse])
async def create_nutrition_plan(
    data: NutritionPlanCreate,
    actor: Annotated[Actor, Depends(dependencies.get_current_trainer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    client = await get_client_in_reach_or_404(db, actor, data.client_id)
    plan = NutritionPlan(
        client_id=client.id,
        trainer_id=actor.id,
        name=data.name,
        description=data.description,
        start_date=data.start_date,
        end_date=data.end_date,
        daily_calories=data.daily_calories,
        meals=_build_meals(data.meals),
    )
    _apply_macros(plan, data.macros)
    db.add(plan)
    await db.commit()

    _publish(feed, ChangeEvent.INSERT, plan)
    return StandardResponse(data=_plan_response(plan), message="Nutrition plan created")


@router.put("/{plan_id}", response_model=StandardResponse[NutritionPlanResponse])
async def update_nutrition_plan(
    plan_id: uuid.UUID,
    data: NutritionPlanUpdate,
    actor: Annotated[Actor, Depends(dependencies.get_current_trainer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    """Update plan fields; a supplied meal list replaces every meal and food."""
    plan = await _get_nutrition_plan_or_404(db, plan_id, actor)
    update_data = data.model_dump(exclude_unset=True, exclude={"meals", "macros"})
    for field, value in update_data.items():
        if field in {"name", "start_date", "daily_calories"} and value is None:
            continue
        setattr(plan, field, value)
    if plan.end_date and plan.end_date < plan.start_date:
        raise HTTPException(status_code=400, detail="end_date cannot be before start_date")
    if data.macros is not None:
        _apply_macros(plan, data.macros)

    if data.meals is not None:
        plan.meals.clear()
        await db.flush()
        plan.meals.extend(_build_meals(data.meals))
    await db.commit()

    _publish(feed, ChangeEvent.UPDATE, plan)
    return StandardResponse(data=_plan_response(plan), message="Nutrition plan updated")


@router.delete("/{plan_id}", response_model=StandardResponse)
async def delete_nutrition_plan(
    plan_id: uuid.UUID,
    actor: Annotated[Actor, Depends(dependencies.get_current_trainer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    plan = await _get_nutrition_plan_or_404(db, plan_id, actor)
    await db.delete(plan)
    await db.commit()

    _publish(feed, ChangeEvent.DELETE, plan)
    return StandardResponse(message="Nutrition plan deleted")
