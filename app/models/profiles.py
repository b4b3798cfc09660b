import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Integer, ForeignKey, Text, Float, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.database import Base


class Trainer(Base):
    __tablename__ = "trainers"

    id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    clients = relationship("Client", back_populates="trainer")


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    trainer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("trainers.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[float | None] = mapped_column(Float, nullable=True) # cm
    weight: Mapped[float | None] = mapped_column(Float, nullable=True) # kg
    goals: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    join_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    profile_image: Mapped[str | None] = mapped_column(String, nullable=True)

    trainer = relationship("Trainer", back_populates="clients")
    workout_plans = relationship("WorkoutPlan", back_populates="client", cascade="all, delete-orphan", passive_deletes=True)
    nutrition_plans = relationship("NutritionPlan", back_populates="client", cascade="all, delete-orphan", passive_deletes=True)
    progress_records = relationship("ProgressRecord", back_populates="client", cascade="all, delete-orphan", passive_deletes=True)
    messages = relationship("Message", back_populates="client", cascade="all, delete-orphan", passive_deletes=True)
