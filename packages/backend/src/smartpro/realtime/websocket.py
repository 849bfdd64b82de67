"""WebSocket endpoint — live dashboard updates for one user.

Learn: Each dashboard tab connects to /ws/dashboard/{user_id}. The handler:
1. Optionally replays the user's recovery buffer (?replay=true) so a tab
   that reconnects sees what it missed, oldest first
2. Subscribes to the four dashboard channels
3. Forwards the pub/sub messages whose userId is this user; the channels
   are shared by every user, so everything else is dropped
4. Answers {"type": "ping"} with {"type": "pong"}

Without Redis there is nothing to forward: the socket closes with 1013
(try again later) and the frontend falls back to polling /dashboard/metrics.
"""

import asyncio
import json
from typing import Optional

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from smartpro.schemas.dashboard import Channel

logger = structlog.get_logger()
router = APIRouter()


def event_owner(raw: str) -> Optional[str]:
    """The userId a published dashboard message belongs to, if any."""
    try:
        message = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return None
    if not isinstance(message, dict):
        return None
    return message.get("userId")


@router.websocket("/ws/dashboard/{user_id}")
async def dashboard_websocket(websocket: WebSocket, user_id: str):
    """WebSocket endpoint for real-time dashboard events.

    Learn: Two concurrent tasks run:
    1. Redis listener — reads from pub/sub, sends to WebSocket
    2. Client listener — reads from WebSocket (ping/pong)

    When either side disconnects, both tasks are cancelled cleanly.
    """
    ctx = websocket.app.state.context
    if not ctx.kv.configured:
        await websocket.close(code=1013, reason="Live updates unavailable")
        return

    await websocket.accept()

    if websocket.query_params.get("replay") == "true":
        missed = await ctx.bus.get_recent_events(user_id)
        for event in reversed(missed):
            await websocket.send_text(event.model_dump_json())

    pubsub = ctx.kv.pubsub()
    channels = [c.value for c in Channel]
    await pubsub.subscribe(*channels)
    logger.info("ws.subscribed", user_id=user_id, channels=channels)

    async def redis_listener():
        """Forward Redis messages to the WebSocket client."""
        try:
            async for message in pubsub.listen():
                if message["type"] == "message" and event_owner(message["data"]) == user_id:
                    await websocket.send_text(message["data"])
        except asyncio.CancelledError:
            pass

    async def client_listener():
        """Handle incoming WebSocket messages."""
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    msg = json.loads(data)
                    if msg.get("type") == "ping":
                        await websocket.send_text(json.dumps({"type": "pong"}))
                except json.JSONDecodeError:
                    pass
        except (WebSocketDisconnect, asyncio.CancelledError):
            pass

    # Run both listeners concurrently
    redis_task = asyncio.create_task(redis_listener())
    client_task = asyncio.create_task(client_listener())

    try:
        # Wait for either to finish (usually client disconnect)
        done, pending = await asyncio.wait(
            [redis_task, client_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
    finally:
        await pubsub.unsubscribe(*channels)
        await pubsub.aclose()
        logger.info("ws.closed", user_id=user_id)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
