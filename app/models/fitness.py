import uuid
from datetime import date, datetime, timezone
from sqlalchemy import String, Integer, ForeignKey, Text, Float, Date, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.database import Base


class WorkoutPlan(Base):
    __tablename__ = "workout_plans"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    trainer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("trainers.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    client = relationship("Client", back_populates="workout_plans")
    exercises = relationship(
        "Exercise",
        back_populates="plan",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Exercise.order_index",
    )


class Exercise(Base):
    __tablename__ = "exercises"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    workout_plan_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("workout_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    sets: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    reps: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    weight: Mapped[float | None] = mapped_column(Float, nullable=True) # kg
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True) # minutes
    rest_time: Mapped[int] = mapped_column(Integer, default=60, nullable=False) # seconds
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    plan = relationship("WorkoutPlan", back_populates="exercises")


class NutritionPlan(Base):
    __tablename__ = "nutrition_plans"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    trainer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("trainers.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    daily_calories: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    protein_grams: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    carbs_grams: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    fats_grams: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    client = relationship("Client", back_populates="nutrition_plans")
    meals = relationship(
        "Meal",
        back_populates="plan",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Meal.order_index",
    )


class Meal(Base):
    __tablename__ = "meals"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    nutrition_plan_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("nutrition_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    time: Mapped[str | None] = mapped_column(String, nullable=True) # "07:30"
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    plan = relationship("NutritionPlan", back_populates="meals")
    foods = relationship(
        "Food",
        back_populates="meal",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Food.order_index",
    )


class Food(Base):
    __tablename__ = "foods"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    meal_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("meals.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, default=1, nullable=False)
    unit: Mapped[str] = mapped_column(String, default="g", nullable=False)
    calories: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    protein: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    carbs: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    fats: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    meal = relationship("Meal", back_populates="foods")
