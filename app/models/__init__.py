from app.models.audit import AuditLog
from app.models.auth import RefreshToken
from app.models.fitness import Exercise, Food, Meal, NutritionPlan, WorkoutPlan
from app.models.messaging import Message
from app.models.profiles import Client, Trainer
from app.models.progress import ProgressPhoto, ProgressRecord
from app.models.user import User


__all__ = [
    "AuditLog",
    "Client",
    "Exercise",
    "Food",
    "Meal",
    "Message",
    "NutritionPlan",
    "ProgressPhoto",
    "ProgressRecord",
    "RefreshToken",
    "Trainer",
    "User",
    "WorkoutPlan",
]
