import json
import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.audit import AuditLog
from app.models.enums import ChangeEvent, UserType
from app.models.profiles import Client, Trainer
from app.models.user import User
from app.services.account_service import avatar_url_for
from conftest import (
    PASSWORD,
    add_client_record,
    add_trainer_record,
    auth_headers,
    create_client,
    create_trainer,
    create_user,
    reload,
)

FUNCTIONS = f"{settings.API_V1_STR}/functions"


def _new_client_payload(trainer_id, email="new.client@example.com"):
    return {
        "email": email,
        "password": "clientpass123",
        "full_name": "New Client",
        "trainer_id": str(trainer_id),
        "client_data": {"age": 31, "height": 170.5, "weight": 72.0, "goals": "Lose fat", "phone": "+1 555 0100"},
    }


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_create_client_account(client: AsyncClient, db_session: AsyncSession, trainer_user: User, trainer_headers: dict, feed):
    subscription = feed.subscribe("clients", {"trainer_id": trainer_user.id})

    response = await client.post(
        f"{FUNCTIONS}/create-client-account",
        json=_new_client_payload(trainer_user.id),
        headers=trainer_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Client account created successfully"

    record = await reload(db_session, Client, uuid.UUID(body["client_id"]))
    assert record.trainer_id == trainer_user.id
    assert record.name == "New Client"
    assert record.age == 31
    assert record.profile_image == avatar_url_for("New Client")
    assert record.join_date is not None

    principal = await reload(db_session, User, record.id)
    assert principal.user_type == UserType.CLIENT
    assert principal.email == "new.client@example.com"

    audit = (await db_session.execute(select(AuditLog).where(AuditLog.action == "CREATE_CLIENT_ACCOUNT"))).scalar_one()
    assert audit.target_id == body["client_id"]

    notification = await subscription.get()
    assert notification.event == ChangeEvent.INSERT
    assert notification.row_id == body["client_id"]

    login = await client.post(
        f"{settings.API_V1_STR}/auth/login",
        json={"email": "new.client@example.com", "password": "clientpass123"},
    )
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_create_client_account_existing_email_leaves_no_partial_state(
    client: AsyncClient, db_session: AsyncSession, trainer_user: User, trainer_headers: dict
):
    await create_user(db_session, "taken@example.com")
    users_before = await _count(db_session, User)

    response = await client.post(
        f"{FUNCTIONS}/create-client-account",
        json=_new_client_payload(trainer_user.id, email="taken@example.com"),
        headers=trainer_headers,
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "already been registered" in body["message"]

    assert await _count(db_session, Client) == 0
    assert await _count(db_session, User) == users_before


@pytest.mark.asyncio
async def test_create_client_account_for_other_trainer_is_rejected(
    client: AsyncClient, db_session: AsyncSession, trainer_headers: dict
):
    other = await create_trainer(db_session, "other.coach@example.com")
    response = await client.post(
        f"{FUNCTIONS}/create-client-account",
        json=_new_client_payload(other.id),
        headers=trainer_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"].startswith("Unauthorized")
    assert await _count(db_session, Client) == 0


@pytest.mark.asyncio
async def test_client_cannot_create_clients(client: AsyncClient, db_session: AsyncSession, client_user: User, client_headers: dict):
    response = await client.post(
        f"{FUNCTIONS}/create-client-account",
        json=_new_client_payload(client_user.id),
        headers=client_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Unauthorized: Only trainers can create client accounts"
    assert await _count(db_session, Client) == 1


@pytest.mark.asyncio
async def test_create_client_account_creates_missing_trainer_record(client: AsyncClient, db_session: AsyncSession):
    caller = await create_user(db_session, "fresh.coach@example.com", full_name="Fresh Coach")
    headers = await auth_headers(client, caller.email)

    response = await client.post(
        f"{FUNCTIONS}/create-client-account",
        json=_new_client_payload(caller.id),
        headers=headers,
    )
    assert response.status_code == 200
    trainer = await reload(db_session, Trainer, caller.id)
    assert trainer is not None
    assert trainer.full_name == "Fresh Coach"
    assert (await reload(db_session, User, caller.id)).user_type == UserType.TRAINER


@pytest.mark.asyncio
async def test_create_client_account_requires_auth(client: AsyncClient, trainer_user: User):
    response = await client.post(f"{FUNCTIONS}/create-client-account", json=_new_client_payload(trainer_user.id))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_update_user_type(client: AsyncClient, db_session: AsyncSession, trainer_user: User, trainer_headers: dict):
    response = await client.post(
        f"{FUNCTIONS}/update-user-type",
        json={"user_id": str(trainer_user.id), "user_type": "client"},
        headers=trainer_headers,
    )
    assert response.status_code == 200
    assert response.json()["user_type"] == "client"

    # Only the cached tag changes; the role records are untouched.
    assert (await reload(db_session, User, trainer_user.id)).user_type == UserType.CLIENT
    assert await reload(db_session, Trainer, trainer_user.id) is not None


@pytest.mark.asyncio
async def test_update_user_type_for_someone_else_fails(
    client: AsyncClient, client_user: User, trainer_headers: dict
):
    response = await client.post(
        f"{FUNCTIONS}/update-user-type",
        json={"user_id": str(client_user.id), "user_type": "trainer"},
        headers=trainer_headers,
    )
    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_fix_user_data_dual_role_with_cached_trainer_deletes_client_row(
    client: AsyncClient, db_session: AsyncSession, trainer_user: User
):
    dual = await create_trainer(db_session, "dual.fix@example.com", "Dual Fix")
    await add_client_record(db_session, dual, trainer_user)
    headers = await auth_headers(client, dual.email)

    response = await client.post(f"{FUNCTIONS}/fix-user-data", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["user_type"] == "trainer"
    assert body["fixed_data"] == {"removed": "client", "kept": "trainer"}

    assert await reload(db_session, Client, dual.id) is None
    assert await reload(db_session, Trainer, dual.id) is not None
    assert (await reload(db_session, User, dual.id)).user_type == UserType.TRAINER
    audit = (await db_session.execute(select(AuditLog).where(AuditLog.action == "FIX_USER_DATA"))).scalar_one()
    assert json.loads(audit.details) == {"removed": "client", "kept": "trainer"}


@pytest.mark.asyncio
async def test_fix_user_data_without_cache_uses_tie_break(
    client: AsyncClient, db_session: AsyncSession, trainer_user: User
):
    dual = await create_user(db_session, "dual.untagged@example.com")
    await add_trainer_record(db_session, dual)
    await add_client_record(db_session, dual, trainer_user)
    headers = await auth_headers(client, dual.email)

    response = await client.post(f"{FUNCTIONS}/fix-user-data", headers=headers)
    assert response.status_code == 200
    assert response.json()["fixed_data"] == {"removed": "trainer", "kept": "client"}

    assert await reload(db_session, Trainer, dual.id) is None
    assert await reload(db_session, Client, dual.id) is not None
    assert (await reload(db_session, User, dual.id)).user_type == UserType.CLIENT


@pytest.mark.asyncio
async def test_fix_user_data_keeps_trainer_that_owns_clients(
    client: AsyncClient, db_session: AsyncSession, trainer_user: User
):
    dual = await create_trainer(db_session, "dual.owner@example.com", "Dual Owner")
    await create_client(db_session, dual, "owned.client@example.com", "Owned")
    await add_client_record(db_session, dual, trainer_user)
    dual.user_type = UserType.CLIENT
    await db_session.commit()
    headers = await auth_headers(client, dual.email)

    response = await client.post(f"{FUNCTIONS}/fix-user-data", headers=headers)
    assert response.status_code == 200
    assert response.json()["fixed_data"] == {"removed": "client", "kept": "trainer"}
    assert await reload(db_session, Trainer, dual.id) is not None
    assert await reload(db_session, Client, dual.id) is None


@pytest.mark.asyncio
async def test_fix_user_data_single_record_syncs_cache(
    client: AsyncClient, db_session: AsyncSession, trainer_user: User
):
    principal = await create_user(db_session, "mislabelled@example.com", user_type=UserType.TRAINER)
    await add_client_record(db_session, principal, trainer_user)
    headers = await auth_headers(client, principal.email)

    response = await client.post(f"{FUNCTIONS}/fix-user-data", headers=headers)
    assert response.status_code == 200
    assert response.json()["fixed_data"] == {"user_type": "client"}
    assert (await reload(db_session, User, principal.id)).user_type == UserType.CLIENT
    assert await reload(db_session, Client, principal.id) is not None


@pytest.mark.asyncio
async def test_fix_user_data_without_records_fails(client: AsyncClient, db_session: AsyncSession):
    principal = await create_user(db_session, "ghost@example.com")
    headers = await auth_headers(client, principal.email, PASSWORD)

    response = await client.post(f"{FUNCTIONS}/fix-user-data", headers=headers)
    assert response.status_code == 400
    body = response.json()
    assert body == {
        "success": False,
        "message": "User not found in either clients or trainers table",
        "request_id": response.headers["x-request-id"],
    }


@pytest.mark.asyncio
async def test_cached_client_tag_without_records_cannot_create_clients(client: AsyncClient, db_session: AsyncSession):
    tagged = await create_user(db_session, "tagged.client@example.com", user_type=UserType.CLIENT)
    headers = await auth_headers(client, tagged.email)

    response = await client.post(
        f"{FUNCTIONS}/create-client-account",
        json=_new_client_payload(tagged.id),
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Unauthorized: Only trainers can create client accounts"
    assert await reload(db_session, Trainer, tagged.id) is None
    assert await _count(db_session, Client) == 0


@pytest.mark.asyncio
async def test_dual_role_trainer_can_create_clients(client: AsyncClient, db_session: AsyncSession, trainer_user: User):
    dual = await create_trainer(db_session, "dual.coach@example.com", "Dual Coach")
    await add_client_record(db_session, dual, trainer_user)
    headers = await auth_headers(client, dual.email)

    response = await client.post(
        f"{FUNCTIONS}/create-client-account",
        json=_new_client_payload(dual.id),
        headers=headers,
    )
    assert response.status_code == 200, response.text
    created = await reload(db_session, Client, uuid.UUID(response.json()["client_id"]))
    assert created.trainer_id == dual.id


@pytest.mark.asyncio
async def test_client_tagged_owner_of_clients_resolves_as_trainer(
    client: AsyncClient, db_session: AsyncSession, trainer_user: User
):
    owner = await create_trainer(db_session, "tagged.owner@example.com", "Tagged Owner")
    await create_client(db_session, owner, "existing.client@example.com", "Existing Client")
    await add_client_record(db_session, owner, trainer_user)
    owner.user_type = UserType.CLIENT
    await db_session.commit()
    headers = await auth_headers(client, owner.email)

    response = await client.post(
        f"{FUNCTIONS}/create-client-account",
        json=_new_client_payload(owner.id),
        headers=headers,
    )
    assert response.status_code == 200, response.text
    owned = await db_session.execute(select(Client.id).where(Client.trainer_id == owner.id))
    assert len(owned.scalars().all()) == 2
