"""
Live courier map over WebSocket.

Couriers connect to send location pings and availability changes; owners and
supervisors send ``subscribe_as_manager`` and then receive a snapshot followed
by position / removal events for the couriers in their scope.
Authentication uses the regular access token as the ``token`` query parameter.
"""
import asyncio
import json
import logging
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from typing import Callable, ContextManager, Optional
from sqlalchemy.orm import Session
from halan.database import get_session_scope
from halan.exceptions import AppError
from halan.models.user import Role
from halan.schemas.live import (
    AvailabilityChangedEvent, CourierWentOfflineEvent, LiveError, LocationPingEvent,
    SubscribeAsManagerEvent, parse_inbound,
)
from halan.api.deps import actor_from_token
from halan.services.assignment_service import set_availability
from halan.services.fleet_hub import FleetLocationHub, Subscription, get_fleet_hub
from halan.services.scope_service import ActorContext, get_courier, scope_or_none

logger = logging.getLogger(__name__)

router = APIRouter()

SessionScope = Callable[[], ContextManager[Session]]


async def _pump(websocket: WebSocket, subscription: Subscription) -> None:
    """Forward queued hub events to the socket until it closes"""
    try:
        while True:
            event = await subscription.queue.get()
            await websocket.send_json(event)
    except (WebSocketDisconnect, RuntimeError):
        return


async def _send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json(LiveError(message=message).model_dump(mode="json"))


async def _refresh_scopes(open_session: SessionScope, hub: FleetLocationHub) -> None:
    with open_session() as db:
        await hub.refresh_scopes(lambda subscriber: scope_or_none(db, subscriber))


async def _handle_availability(websocket: WebSocket, event: AvailabilityChangedEvent, actor: ActorContext,
                               open_session: SessionScope, hub: FleetLocationHub) -> None:
    courier_id = event.courier_id or actor.id
    try:
        with open_session() as db:
            set_availability(db, actor, courier_id, event.is_available)
    except AppError as exc:
        await _send_error(websocket, exc.message)
        return
    await hub.availability_changed(courier_id, event.is_available)
    await _refresh_scopes(open_session, hub)


@router.websocket("/ws")
async def live_channel(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    open_session: SessionScope = Depends(get_session_scope),
    hub: FleetLocationHub = Depends(get_fleet_hub)
):
    # No session outlives a single database touch
    actor = actor_from_token(token)
    if actor is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    is_courier = actor.role == Role.COURIER
    if is_courier:
        try:
            with open_session() as db:
                is_available = get_courier(db, actor.id).is_available
        except AppError as exc:
            await _send_error(websocket, exc.message)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        await hub.courier_connected(actor.id, is_available)

    subscription = None
    pump = None
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                event = parse_inbound(json.loads(raw))
            except ValueError:
                # Malformed or unknown events are dropped
                logger.debug(f"Dropping malformed live event from {actor.id}")
                continue

            if isinstance(event, LocationPingEvent):
                if is_courier:
                    await hub.ingest_ping(event.model_copy(update={"courier_id": actor.id}))
            elif isinstance(event, AvailabilityChangedEvent):
                await _handle_availability(websocket, event, actor, open_session, hub)
            elif isinstance(event, CourierWentOfflineEvent):
                if is_courier:
                    await hub.courier_went_offline(actor.id)
            elif isinstance(event, SubscribeAsManagerEvent):
                if not actor.is_manager:
                    await _send_error(websocket, "Only owners and supervisors can watch the live map")
                    continue
                if subscription is None:
                    with open_session() as db:
                        scope = scope_or_none(db, actor)
                    subscription = await hub.subscribe(actor, scope)
                    snapshot = await hub.snapshot(subscription.scope)
                    await websocket.send_json(snapshot.model_dump(mode="json"))
                    pump = asyncio.create_task(_pump(websocket, subscription))
    except WebSocketDisconnect:
        pass
    finally:
        if pump is not None:
            pump.cancel()
        if subscription is not None:
            await hub.unsubscribe(subscription)
        if is_courier:
            await hub.courier_disconnected(actor.id)
