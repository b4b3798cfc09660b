import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.audit import AuditLog
from app.models.enums import ChangeEvent
from app.models.fitness import WorkoutPlan
from app.models.profiles import Client
from app.models.user import User
from conftest import add_client_record, auth_headers, create_client, create_trainer, reload

CLIENTS = f"{settings.API_V1_STR}/clients"


@pytest.mark.asyncio
async def test_trainer_lists_own_clients_by_name(client: AsyncClient, db_session: AsyncSession, trainer_user: User, trainer_headers: dict):
    await create_client(db_session, trainer_user, "zoe@example.com", "Zoe")
    await create_client(db_session, trainer_user, "adam@example.com", "Adam")
    other = await create_trainer(db_session, "other@example.com")
    await create_client(db_session, other, "stranger@example.com", "Stranger")

    response = await client.get(CLIENTS, headers=trainer_headers)
    assert response.status_code == 200
    assert [c["name"] for c in response.json()["data"]] == ["Adam", "Zoe"]


@pytest.mark.asyncio
async def test_trainer_cannot_read_other_trainers_client(client: AsyncClient, db_session: AsyncSession, trainer_headers: dict):
    other = await create_trainer(db_session, "other@example.com")
    stranger = await create_client(db_session, other, "stranger@example.com", "Stranger")

    response = await client.get(f"{CLIENTS}/{stranger.id}", headers=trainer_headers)
    assert response.status_code == 404

    update = await client.put(f"{CLIENTS}/{stranger.id}", json={"goals": "x"}, headers=trainer_headers)
    assert update.status_code == 404


@pytest.mark.asyncio
async def test_client_reads_own_profile_and_trainer(client: AsyncClient, client_user: User, trainer_user: User, client_headers: dict):
    me = await client.get(f"{CLIENTS}/me", headers=client_headers)
    assert me.status_code == 200
    assert me.json()["data"]["id"] == str(client_user.id)
    assert me.json()["data"]["goals"] == "Get stronger"

    trainer = await client.get(f"{CLIENTS}/me/trainer", headers=client_headers)
    assert trainer.status_code == 200
    assert trainer.json()["data"]["id"] == str(trainer_user.id)


@pytest.mark.asyncio
async def test_client_cannot_read_another_client(client: AsyncClient, db_session: AsyncSession, trainer_user: User, client_headers: dict):
    sibling = await create_client(db_session, trainer_user, "sibling@example.com", "Sibling")
    response = await client.get(f"{CLIENTS}/{sibling.id}", headers=client_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_client(client: AsyncClient, client_user: User, trainer_headers: dict, feed):
    subscription = feed.subscribe("clients", {"client_id": client_user.id})

    response = await client.put(
        f"{CLIENTS}/{client_user.id}",
        json={"weight": 78.5, "phone": " +44 20 7946 0958 ", "notes": "Knee injury in 2022"},
        headers=trainer_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["weight"] == 78.5
    assert data["phone"] == "+44 20 7946 0958"
    assert data["age"] == 30

    notification = await subscription.get()
    assert notification.event == ChangeEvent.UPDATE


@pytest.mark.asyncio
async def test_update_client_validation(client: AsyncClient, client_user: User, trainer_headers: dict):
    response = await client.put(f"{CLIENTS}/{client_user.id}", json={"phone": "call me"}, headers=trainer_headers)
    assert response.status_code == 422

    response = await client.put(f"{CLIENTS}/{client_user.id}", json={"age": 0}, headers=trainer_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_client_cascades(client: AsyncClient, db_session: AsyncSession, client_user: User, trainer_headers: dict, feed):
    subscription = feed.subscribe("clients", {"trainer_id": (await reload(db_session, Client, client_user.id)).trainer_id})
    plan = await client.post(
        f"{settings.API_V1_STR}/workout-plans",
        json={"client_id": str(client_user.id), "name": "Base", "start_date": "2026-01-05"},
        headers=trainer_headers,
    )
    assert plan.status_code == 200

    response = await client.delete(f"{CLIENTS}/{client_user.id}", headers=trainer_headers)
    assert response.status_code == 200

    assert await reload(db_session, Client, client_user.id) is None
    assert (await db_session.execute(select(WorkoutPlan))).scalars().all() == []
    assert await reload(db_session, User, client_user.id) is None
    audit = (await db_session.execute(select(AuditLog).where(AuditLog.action == "DELETE_CLIENT"))).scalar_one()
    assert audit.target_id == str(client_user.id)

    notification = await subscription.get()
    assert notification.event == ChangeEvent.DELETE
    assert notification.row_id == str(client_user.id)


@pytest.mark.asyncio
async def test_client_cannot_delete(client: AsyncClient, client_user: User, client_headers: dict):
    response = await client.delete(f"{CLIENTS}/{client_user.id}", headers=client_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_trainer_profile(client: AsyncClient, db_session: AsyncSession, trainer_user: User, trainer_headers: dict):
    response = await client.get(f"{settings.API_V1_STR}/trainers/me", headers=trainer_headers)
    assert response.status_code == 200
    assert response.json()["data"]["full_name"] == "Coach Test"

    update = await client.put(
        f"{settings.API_V1_STR}/trainers/me",
        json={"full_name": "Coach Renamed", "avatar_url": "https://example.com/a.png"},
        headers=trainer_headers,
    )
    assert update.status_code == 200
    assert update.json()["data"]["full_name"] == "Coach Renamed"
    assert (await reload(db_session, User, trainer_user.id)).full_name == "Coach Renamed"


@pytest.mark.asyncio
async def test_new_client_can_log_in_and_see_profile(client: AsyncClient, db_session: AsyncSession, trainer_user: User):
    created = await create_client(db_session, trainer_user, "login.client@example.com", "Login Client")
    headers = await auth_headers(client, created.email)
    response = await client.get(f"{CLIENTS}/me", headers=headers)
    assert response.json()["data"]["name"] == "Login Client"


@pytest.mark.asyncio
async def test_deleted_client_email_can_be_registered_again(client: AsyncClient, client_user: User, trainer_user: User, trainer_headers: dict):
    response = await client.delete(f"{CLIENTS}/{client_user.id}", headers=trainer_headers)
    assert response.status_code == 200

    recreated = await client.post(
        f"{settings.API_V1_STR}/functions/create-client-account",
        json={
            "email": client_user.email,
            "password": "clientpass123",
            "full_name": "Client Again",
            "trainer_id": str(trainer_user.id),
        },
        headers=trainer_headers,
    )
    assert recreated.status_code == 200
    assert recreated.json()["client_id"] != str(client_user.id)


@pytest.mark.asyncio
async def test_delete_client_keeps_login_of_dual_role_principal(
    client: AsyncClient, db_session: AsyncSession, trainer_user: User, trainer_headers: dict
):
    dual = await create_trainer(db_session, "dual.delete@example.com", "Dual Delete")
    await add_client_record(db_session, dual, trainer_user)

    response = await client.delete(f"{CLIENTS}/{dual.id}", headers=trainer_headers)
    assert response.status_code == 200
    assert await reload(db_session, Client, dual.id) is None
    assert (await reload(db_session, User, dual.id)).is_active is True
