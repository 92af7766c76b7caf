"""Live channel: one WebSocket session per connected viewer."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.schemas import LiveEvent
from services.broadcast import BroadcastHub, Subscription, build_default_hub

logger = logging.getLogger(__name__)

router = APIRouter()


def get_hub() -> BroadcastHub:
    return build_default_hub()


@router.websocket("/ws")
async def live_readings(
    websocket: WebSocket,
    hub: BroadcastHub = Depends(get_hub),
) -> None:
    """Stream every reading ingested after the handshake as ``new_reading`` events.

    The subscription is registered before the handshake completes, so a viewer
    that seeds itself from ``/api/readings/recent`` once the socket is open
    cannot fall into a gap between history and the live stream.
    """
    subscription = hub.subscribe()
    try:
        await websocket.accept()
        await _run_session(websocket, subscription)
    finally:
        hub.unsubscribe(subscription)


async def _run_session(websocket: WebSocket, subscription: Subscription) -> None:
    sender = asyncio.create_task(_forward_readings(websocket, subscription))
    try:
        # Viewers have nothing to say; inbound frames only tell us they are alive.
        while not sender.done():
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
    finally:
        sender.cancel()
        outcome = (await asyncio.gather(sender, return_exceptions=True))[0]
        if isinstance(outcome, Exception) and not isinstance(outcome, WebSocketDisconnect):
            logger.warning(
                "Live session ended with an error",
                extra={"subscriber_id": subscription.id, "reason": repr(outcome)},
            )


async def _forward_readings(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        reading = await subscription.get()
        event = LiveEvent(data=reading)
        await websocket.send_json(event.model_dump(mode="json", by_alias=True))
