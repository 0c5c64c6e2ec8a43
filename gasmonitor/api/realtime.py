"""Realtime channel for dashboards and other observers.

Server -> client messages are ``{"event": <name>, "data": {...}}`` where name
is one of ``deviceUpdate``, ``newData``, ``settingsUpdate`` or ``alert``.
A client may send ``{"type": "subscribe", "deviceId": <id or null>}`` to
narrow its feed to one device or widen it again; the server answers with a
``subscribed`` message once the filter is in effect.
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from gasmonitor.core.fanout import Subscription

logger = logging.getLogger(__name__)

router = APIRouter()


async def _send_events(websocket: WebSocket, subscription: Subscription):
    try:
        async for event in subscription:
            await websocket.send_json(event.to_wire())
    except (WebSocketDisconnect, RuntimeError) as e:
        # The socket closed under us; the receive loop ends the connection.
        logger.info(f"Stopped sending to realtime client: {e!r}")


async def _receive_commands(websocket: WebSocket, subscription: Subscription):
    while True:
        try:
            message = json.loads(await websocket.receive_text())
        except ValueError:
            logger.warning("Ignoring malformed realtime message")
            continue
        if not isinstance(message, dict):
            continue
        if message.get("type") == "subscribe":
            subscription.focus(message.get("deviceId"))
            await websocket.send_json(
                {"event": "subscribed", "data": {"deviceId": subscription.device_id}}
            )


@router.websocket("/ws")
async def realtime(websocket: WebSocket, deviceId: Optional[str] = None):
    service = websocket.app.state.ingest_service
    await websocket.accept()
    logger.info("New client connected")

    subscription = service.channel.subscribe(device_id=deviceId)
    # Late subscribers get current devices; history must be pulled separately.
    await websocket.send_json(service.registry.changed_event().to_wire())

    sender = asyncio.create_task(_send_events(websocket, subscription))
    try:
        await _receive_commands(websocket, subscription)
    except WebSocketDisconnect:
        pass
    finally:
        # No awaits here: the handler may be tearing down under cancellation.
        subscription.close()
        sender.cancel()
        logger.info("Client disconnected")
