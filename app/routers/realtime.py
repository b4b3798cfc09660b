import asyncio
import contextlib
import json
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import Actor, user_from_access_token
from app.database import get_db
from app.services.ownership import get_client_in_reach_or_404
from app.services.realtime import SUBSCRIBABLE_TABLES, ChangeFeed, Subscription, get_change_feed
from app.services.role_resolver import RoleResolver, get_role_resolver

logger = logging.getLogger(__name__)

router = APIRouter()

POLICY_VIOLATION = 1008


async def _get_ws_actor(token: str, db: AsyncSession, resolver: RoleResolver) -> Actor:
    user = await user_from_access_token(token, db)
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Inactive user")
    resolution = await resolver.resolve_user(user)
    if resolution.requires_sign_out:
        raise HTTPException(status_code=401, detail="No trainer or client profile is linked to this account")
    return Actor(user=user, resolution=resolution)


async def _subscription_filters(db: AsyncSession, actor: Actor, client_id: str | None) -> dict[str, uuid.UUID]:
    """Scope a subscription to what the caller may read.

    Without a client filter a trainer follows every one of their clients and a
    client follows their own rows.
    """
    if client_id is None:
        if actor.is_trainer:
            return {"trainer_id": actor.id}
        return {"client_id": actor.id}

    try:
        wanted = uuid.UUID(client_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid client_id")
    client = await get_client_in_reach_or_404(db, actor, wanted)
    return {"client_id": client.id}


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        notification = await subscription.get()
        await websocket.send_json(notification.to_payload())


async def _stop_forwarder(forwarder: asyncio.Task) -> None:
    forwarder.cancel()
    try:
        with contextlib.suppress(asyncio.CancelledError):
            await forwarder
    except Exception:
        logger.warning("Realtime forwarder failed", exc_info=True)


@router.websocket("/ws")
async def realtime_websocket(
    websocket: WebSocket,
    db: Annotated[AsyncSession, Depends(get_db)],
    resolver: Annotated[RoleResolver, Depends(get_role_resolver)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
):
    """Stream change notifications for one table.

    Query parameters: ``token`` (access token), ``table`` and an optional
    ``client_id`` filter. Clients may send ``{"action": "ping"}`` at any time.
    """
    token = websocket.query_params.get("token")
    table = websocket.query_params.get("table")
    if not token or table not in SUBSCRIBABLE_TABLES:
        await websocket.close(code=POLICY_VIOLATION)
        return

    try:
        actor = await _get_ws_actor(token, db, resolver)
        filters = await _subscription_filters(db, actor, websocket.query_params.get("client_id"))
    except HTTPException as exc:
        logger.info("Rejected realtime subscription to %s: %s", table, exc.detail)
        await websocket.close(code=POLICY_VIOLATION)
        return
    # The handshake session is not needed while streaming.
    await db.close()

    await websocket.accept()
    subscription = feed.subscribe(table, filters)
    await websocket.send_json({"event": "subscribed", "table": table, "filters": subscription.filters})
    forwarder = asyncio.create_task(_forward(websocket, subscription))
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                continue

            if isinstance(data, dict) and data.get("action") == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        logger.debug("Realtime subscriber %s disconnected", actor.id)
    finally:
        await _stop_forwarder(forwarder)
        subscription.close()
