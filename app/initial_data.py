import asyncio
import logging
from datetime import date, timedelta

from sqlalchemy import select

from app.auth.security import get_password_hash
from app.database import AsyncSessionLocal
from app.models.enums import SenderType, UserType
from app.models.fitness import Exercise, Food, Meal, NutritionPlan, WorkoutPlan
from app.models.messaging import Message
from app.models.profiles import Client, Trainer
from app.models.progress import ProgressRecord
from app.models.user import User
from app.services.account_service import AccountService, NewClientProfile, avatar_url_for
from app.services.role_resolver import role_resolver

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_PASSWORD = "TrainPass123!"

TRAINER = {
    "email": "coach.mike@trainerhub.dev",
    "full_name": "Coach Mike",
}

CLIENTS = [
    {
        "email": "alice@client.dev",
        "full_name": "Alice Johnson",
        "age": 29,
        "height": 168.0,
        "weight": 64.5,
        "goals": "Run a half marathon and build core strength",
        "phone": "+1 555 0101",
    },
    {
        "email": "bob@client.dev",
        "full_name": "Bob Smith",
        "age": 41,
        "height": 182.0,
        "weight": 96.0,
        "goals": "Lose 10 kg and improve mobility",
    },
]

WORKOUT = [
    {"name": "Back Squat", "sets": 4, "reps": 8, "weight": 60.0, "rest_time": 120},
    {"name": "Romanian Deadlift", "sets": 3, "reps": 10, "weight": 50.0, "rest_time": 90},
    {"name": "Plank", "sets": 3, "reps": 0, "duration": 1, "rest_time": 45},
]

MEALS = [
    {
        "name": "Breakfast",
        "time": "07:30",
        "foods": [
            {"name": "Oats", "quantity": 80, "unit": "g", "calories": 300, "protein": 10, "carbs": 54, "fats": 6},
            {"name": "Greek yogurt", "quantity": 150, "unit": "g", "calories": 146, "protein": 15, "carbs": 6, "fats": 7},
        ],
    },
    {
        "name": "Lunch",
        "time": "12:30",
        "foods": [
            {"name": "Chicken breast", "quantity": 150, "unit": "g", "calories": 248, "protein": 46, "carbs": 0, "fats": 5},
            {"name": "Rice", "quantity": 180, "unit": "g", "calories": 234, "protein": 5, "carbs": 51, "fats": 1},
        ],
    },
]


async def _ensure_trainer(session) -> User:
    user = (await session.execute(select(User).where(User.email == TRAINER["email"]))).scalar_one_or_none()
    if user is None:
        user = User(
            email=TRAINER["email"],
            full_name=TRAINER["full_name"],
            hashed_password=get_password_hash(DEMO_PASSWORD),
            user_type=UserType.TRAINER,
            is_active=True,
        )
        session.add(user)
        await session.flush()
        logger.info("Created trainer user: %s", user.email)

    trainer = (await session.execute(select(Trainer).where(Trainer.id == user.id))).scalar_one_or_none()
    if trainer is None:
        session.add(
            Trainer(
                id=user.id,
                full_name=user.full_name,
                email=user.email,
                avatar_url=avatar_url_for(user.full_name),
            )
        )
    await session.commit()
    return user


async def _seed_client_activity(session, trainer: User, client: Client) -> None:
    existing = await session.execute(select(WorkoutPlan.id).where(WorkoutPlan.client_id == client.id))
    if existing.first() is not None:
        logger.info("Client %s already has activity", client.email)
        return

    today = date.today()
    session.add(
        WorkoutPlan(
            client_id=client.id,
            trainer_id=trainer.id,
            name="Foundation Strength",
            description="Full body, three sessions per week",
            start_date=today,
            end_date=today + timedelta(weeks=6),
            exercises=[Exercise(**exercise, order_index=index) for index, exercise in enumerate(WORKOUT)],
        )
    )
    session.add(
        NutritionPlan(
            client_id=client.id,
            trainer_id=trainer.id,
            name="Lean Gain",
            start_date=today,
            daily_calories=2200,
            protein_grams=150,
            carbs_grams=230,
            fats_grams=70,
            meals=[
                Meal(
                    name=meal["name"],
                    time=meal["time"],
                    order_index=meal_index,
                    foods=[Food(**food, order_index=food_index) for food_index, food in enumerate(meal["foods"])],
                )
                for meal_index, meal in enumerate(MEALS)
            ],
        )
    )
    for weeks_ago, delta in ((4, 2.0), (2, 1.0), (0, 0.0)):
        session.add(
            ProgressRecord(
                client_id=client.id,
                date=today - timedelta(weeks=weeks_ago),
                weight=(client.weight or 70.0) + delta,
                measurements={"waist": 80.0 + delta},
            )
        )
    session.add_all(
        [
            Message(
                client_id=client.id,
                sender_id=trainer.id,
                sender_type=SenderType.TRAINER,
                content=f"Welcome aboard, {client.name}! Your first plan is ready.",
                read=True,
            ),
            Message(
                client_id=client.id,
                sender_id=client.id,
                sender_type=SenderType.CLIENT,
                content="Thanks, excited to get started!",
            ),
        ]
    )
    await session.commit()
    logger.info("Seeded plans, progress and messages for %s", client.email)


async def seed_data():
    async with AsyncSessionLocal() as session:
        trainer = await _ensure_trainer(session)
        resolution = await role_resolver.resolve_user(trainer)

        for client_data in CLIENTS:
            user = (await session.execute(select(User).where(User.email == client_data["email"]))).scalar_one_or_none()
            if user is None:
                await AccountService.create_client_account(
                    session,
                    trainer,
                    trainer.id,
                    NewClientProfile(password=DEMO_PASSWORD, **client_data),
                    resolution,
                )
                logger.info("Created client: %s", client_data["email"])
            else:
                logger.info("Client already exists: %s", client_data["email"])

            client = (await session.execute(select(Client).where(Client.email == client_data["email"]))).scalar_one()
            await _seed_client_activity(session, trainer, client)

    await role_resolver.drain()

    logger.info("Seeding complete.")

if __name__ == "__main__":
    asyncio.run(seed_data())
