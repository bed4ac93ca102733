"""WebSocket endpoint for per-disaster realtime updates.

Client → server:
    {"action": "join_disaster", "disaster_id": "42"}
    {"action": "leave_disaster", "disaster_id": "42"}

Server → client:
    {"event": "joined" | "left", "topic": "disaster_42"}
    {"event": "disaster_updated" | "social_media_updated" | ..., "topic": ..., "data": ...}
    {"event": "error", "message": ...}
"""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from services.broadcaster import Broadcaster, Session, disaster_topic

logger = logging.getLogger(__name__)

router = APIRouter()


def _handle_message(broadcaster: Broadcaster, session: Session, raw: str) -> None:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        session.offer({"event": "error", "message": "Messages must be JSON objects"})
        return
    if not isinstance(message, dict):
        session.offer({"event": "error", "message": "Messages must be JSON objects"})
        return

    action = message.get("action")
    disaster_id = message.get("disaster_id")
    if action not in ("join_disaster", "leave_disaster"):
        session.offer({"event": "error", "message": f"Unknown action: {action}"})
        return
    if disaster_id in (None, ""):
        session.offer({"event": "error", "message": "disaster_id is required"})
        return

    topic = disaster_topic(disaster_id)
    if action == "join_disaster":
        broadcaster.subscribe(session, topic)
        session.offer({"event": "joined", "topic": topic})
    else:
        broadcaster.unsubscribe(session, topic)
        session.offer({"event": "left", "topic": topic})


@router.websocket("/ws")
async def updates_socket(ws: WebSocket):
    broadcaster: Broadcaster = ws.app.state.services.broadcaster
    await ws.accept()
    session = broadcaster.connect(ws.send_json)
    try:
        while True:
            raw = await ws.receive_text()
            _handle_message(broadcaster, session, raw)
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(session)
