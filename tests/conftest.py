import os
import tempfile

_TEST_DIR = tempfile.mkdtemp(prefix="trainer-hub-tests-")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'test.db')}")
os.environ.setdefault("MEDIA_ROOT", os.path.join(_TEST_DIR, "media"))

import pytest
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.auth.security import get_password_hash
from app.config import settings
from app.core.rate_limit import reset_rate_limiter_state
from app.database import Base, get_db
from app.main import app
from app.models.enums import UserType
from app.models.profiles import Client, Trainer
from app.models.user import User
from app.services.realtime import ChangeFeed, get_change_feed
from app.services.role_resolver import RoleResolver, get_role_resolver

PASSWORD = "password123"


@pytest.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(settings.SQLALCHEMY_DATABASE_URI, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def resolver(session_factory) -> AsyncGenerator[RoleResolver, None]:
    role_resolver = RoleResolver(session_factory, tie_break=UserType.CLIENT)
    yield role_resolver
    await role_resolver.drain()


@pytest.fixture(scope="function")
def feed() -> ChangeFeed:
    return ChangeFeed(queue_size=10)


@pytest.fixture(scope="function")
async def client(db_session, resolver, feed) -> AsyncGenerator[AsyncClient, None]:
    await reset_rate_limiter_state()

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_role_resolver] = lambda: resolver
    app.dependency_overrides[get_change_feed] = lambda: feed
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    await resolver.drain()
    app.dependency_overrides.clear()
    await reset_rate_limiter_state()


async def create_user(
    db: AsyncSession,
    email: str,
    *,
    user_type: UserType | None = None,
    full_name: str = "Test User",
    password: str = PASSWORD,
) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        user_type=user_type,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


async def create_trainer(db: AsyncSession, email: str = "trainer@example.com", full_name: str = "Coach Test") -> User:
    user = await create_user(db, email, user_type=UserType.TRAINER, full_name=full_name)
    db.add(Trainer(id=user.id, full_name=full_name, email=email))
    await db.commit()
    return user


async def create_client(
    db: AsyncSession,
    trainer: User,
    email: str = "client@example.com",
    full_name: str = "Client Test",
    **fields,
) -> User:
    user = await create_user(db, email, user_type=UserType.CLIENT, full_name=full_name)
    db.add(Client(id=user.id, trainer_id=trainer.id, name=full_name, email=email, **fields))
    await db.commit()
    return user


async def auth_headers(client: AsyncClient, email: str, password: str = PASSWORD) -> dict[str, str]:
    response = await client.post(
        f"{settings.API_V1_STR}/auth/login",
        json={"email": email, "password": password},
    )
    assert response.status_code == 200, response.text
    token = response.json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}


async def reload(db: AsyncSession, model, row_id):
    result = await db.execute(select(model).where(model.id == row_id).execution_options(populate_existing=True))
    return result.scalar_one_or_none()


@pytest.fixture
async def trainer_user(db_session) -> User:
    return await create_trainer(db_session)


@pytest.fixture
async def client_user(db_session, trainer_user) -> User:
    return await create_client(db_session, trainer_user, age=30, height=175.0, weight=80.0, goals="Get stronger")


@pytest.fixture
async def trainer_headers(client, trainer_user) -> dict[str, str]:
    return await auth_headers(client, trainer_user.email)


@pytest.fixture
async def client_headers(client, client_user) -> dict[str, str]:
    return await auth_headers(client, client_user.email)


async def add_trainer_record(db: AsyncSession, principal: User) -> Trainer:
    trainer = Trainer(id=principal.id, full_name=principal.full_name or "Trainer", email=principal.email)
    db.add(trainer)
    await db.commit()
    return trainer


async def add_client_record(db: AsyncSession, principal: User, trainer: User) -> Client:
    record = Client(id=principal.id, trainer_id=trainer.id, name=principal.full_name or "Client", email=principal.email)
    db.add(record)
    await db.commit()
    return record
