import asyncio
import logging
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from starlette.websockets import WebSocketDisconnect

from app.config import settings
from app.core.rate_limit import reset_rate_limiter_state
from app.database import get_db
from app.main import app
from app.models.enums import ChangeEvent, UserType
from app.routers.realtime import _forward, _stop_forwarder
from app.services.realtime import ChangeFeed, get_change_feed
from app.services.role_resolver import RoleResolver, get_role_resolver
from conftest import PASSWORD


def test_subscription_filters_by_table_and_scope():
    feed = ChangeFeed(queue_size=5)
    trainer_id, client_id = uuid.uuid4(), uuid.uuid4()
    mine = feed.subscribe("messages", {"trainer_id": trainer_id})
    theirs = feed.subscribe("messages", {"trainer_id": uuid.uuid4()})
    plans = feed.subscribe("workout_plans", {"trainer_id": trainer_id})

    delivered = feed.publish("messages", ChangeEvent.INSERT, uuid.uuid4(), trainer_id=trainer_id, client_id=client_id)
    assert delivered == 1
    assert mine.pending() == 1
    assert theirs.pending() == 0
    assert plans.pending() == 0


def test_unknown_table_is_rejected():
    with pytest.raises(ValueError):
        ChangeFeed().subscribe("users")


def test_closed_subscription_receives_nothing():
    feed = ChangeFeed()
    subscription = feed.subscribe("clients")
    assert feed.subscriber_count == 1
    subscription.close()
    assert feed.subscriber_count == 0
    assert feed.publish("clients", ChangeEvent.UPDATE, uuid.uuid4()) == 0


@pytest.mark.asyncio
async def test_overflow_drops_oldest_and_flags_resync():
    feed = ChangeFeed(queue_size=2)
    subscription = feed.subscribe("progress_records")
    ids = [uuid.uuid4() for _ in range(3)]
    for row_id in ids:
        feed.publish("progress_records", ChangeEvent.INSERT, row_id)

    first = await subscription.get()
    assert first.row_id == str(ids[1])
    assert first.resync is True

    second = await subscription.get()
    assert second.row_id == str(ids[2])
    assert second.resync is False


def test_payload_names_row_without_body():
    feed = ChangeFeed()
    subscription = feed.subscribe("clients")
    row_id = uuid.uuid4()
    feed.publish("clients", ChangeEvent.DELETE, row_id, trainer_id=None)

    payload = subscription._queue.get_nowait().to_payload()
    assert payload["event"] == "postgres_changes"
    assert payload["type"] == "DELETE"
    assert payload["id"] == str(row_id)
    assert payload["scope"] == {}


@pytest.mark.asyncio
async def test_stop_forwarder_cancels_idle_task():
    subscription = ChangeFeed().subscribe("messages")
    forwarder = asyncio.create_task(_forward(None, subscription))
    await asyncio.sleep(0)

    await _stop_forwarder(forwarder)
    assert forwarder.cancelled()


@pytest.mark.asyncio
async def test_stop_forwarder_collects_send_failure(caplog):
    async def failing_send():
        raise RuntimeError("Cannot call \"send\" once a close message has been sent.")

    forwarder = asyncio.create_task(failing_send())
    await asyncio.sleep(0)

    with caplog.at_level(logging.WARNING, logger="app.routers.realtime"):
        await _stop_forwarder(forwarder)

    assert forwarder.done()
    assert any(record.getMessage() == "Realtime forwarder failed" for record in caplog.records)

@pytest.fixture
def ws_client(db_engine, trainer_user, client_user):
    """A TestClient whose database sessions are opened on its own event loop."""
    engine = create_async_engine(settings.SQLALCHEMY_DATABASE_URI, poolclass=NullPool)
    sessions = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    resolver = RoleResolver(sessions, tie_break=UserType.CLIENT)
    feed = ChangeFeed(queue_size=10)

    async def override_get_db():
        async with sessions() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_role_resolver] = lambda: resolver
    app.dependency_overrides[get_change_feed] = lambda: feed
    with TestClient(app) as test_client:
        test_client.portal.call(reset_rate_limiter_state)
        yield test_client
        test_client.portal.call(resolver.drain)
        test_client.portal.call(engine.dispose)
    app.dependency_overrides.clear()


def _token(test_client: TestClient, email: str) -> str:
    response = test_client.post(f"{settings.API_V1_STR}/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()["data"]["access_token"]


def _ws_url(token: str, table: str, **params) -> str:
    query = "&".join(f"{key}={value}" for key, value in {"token": token, "table": table, **params}.items())
    return f"{settings.API_V1_STR}/realtime/ws?{query}"


def test_websocket_rejects_bad_token(ws_client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect(_ws_url("not-a-token", "messages")):
            pass
    assert exc_info.value.code == 1008


def test_websocket_rejects_unknown_table(ws_client, trainer_user):
    token = _token(ws_client, trainer_user.email)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect(_ws_url(token, "users")):
            pass
    assert exc_info.value.code == 1008


def test_websocket_rejects_client_out_of_reach(ws_client, client_user):
    token = _token(ws_client, client_user.email)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect(_ws_url(token, "messages", client_id=uuid.uuid4())):
            pass
    assert exc_info.value.code == 1008


def test_websocket_streams_changes(ws_client, trainer_user, client_user):
    trainer_token = _token(ws_client, trainer_user.email)
    client_token = _token(ws_client, client_user.email)

    with ws_client.websocket_connect(_ws_url(trainer_token, "messages")) as websocket:
        ack = websocket.receive_json()
        assert ack == {"event": "subscribed", "table": "messages", "filters": {"trainer_id": str(trainer_user.id)}}

        websocket.send_json({"action": "ping"})
        assert websocket.receive_json() == {"event": "pong"}

        sent = ws_client.post(
            f"{settings.API_V1_STR}/messages/{client_user.id}",
            json={"content": "Running late"},
            headers={"Authorization": f"Bearer {client_token}"},
        )
        assert sent.status_code == 200

        event = websocket.receive_json()
        assert event["event"] == "postgres_changes"
        assert event["type"] == "INSERT"
        assert event["id"] == sent.json()["data"]["id"]
        assert event["resync"] is False


def test_client_subscription_is_scoped_to_self(ws_client, client_user):
    token = _token(ws_client, client_user.email)
    with ws_client.websocket_connect(_ws_url(token, "workout_plans", client_id=client_user.id)) as websocket:
        ack = websocket.receive_json()
        assert ack["filters"] == {"client_id": str(client_user.id)}
