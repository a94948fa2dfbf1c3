# concerndesk/api/routes/realtime.py
"""
WebSocket-транспорт для RealtimeBus.

    /ws?token=<jwt>

Кадри в обидва боки: {"event": "...", "data": ...}
Клієнт: join-concern, leave-concern, typing, stop-typing.
Сервер: joined, left, error, new-message, status-update,
        user-typing, user-stop-typing, notification.

На з'єднання дві задачі: reader (цей хендлер) і writer, що вичитує
чергу підписника. Відповіді reader-а теж ідуть через чергу, тож у
сокет пише лише writer.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from concerndesk.api.deps import user_from_token
from concerndesk.services.policy import AuthIdentity, can_access
from concerndesk.services.realtime import RealtimeBus, Subscriber, concern_room

router = APIRouter()
log = logging.getLogger(__name__)


def _frame(event: str, data: Any) -> dict:
    return {"event": event, "data": data}


def _concern_id(value: Any) -> Optional[int]:
    if isinstance(value, dict):
        # веб-клієнт шле camelCase: {concernId, userName}
        value = value.get("concern_id", value.get("concernId"))
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def _writer(websocket: WebSocket, sub: Subscriber) -> None:
    while True:
        frame = await sub.next()
        if frame is None:
            return
        try:
            await websocket.send_json(jsonable_encoder(frame))
        except (WebSocketDisconnect, RuntimeError):
            # клієнт пішов; reader побачить disconnect сам
            log.debug("ws_send_failed", extra={"subscriber": sub.id})
            return


async def _can_join(websocket: WebSocket, identity: AuthIdentity, concern_id: int) -> Optional[str]:
    """None = можна, інакше текст помилки."""
    state = websocket.app.state
    async with state.db.session() as db:
        concern = await state.store.get(db, concern_id)
    if concern is None:
        return "Concern not found"
    if not can_access(identity, concern):
        return "Not authorized to access this concern"
    return None


async def _handle(
    websocket: WebSocket,
    bus: RealtimeBus,
    sub: Subscriber,
    identity: AuthIdentity,
    frame: Any,
) -> None:
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        sub.offer(_frame("error", {"message": "Frame must be {\"event\": ..., \"data\": ...}"}))
        return

    event = frame["event"]
    data = frame.get("data")
    concern_id = _concern_id(data)

    if event in {"join-concern", "leave-concern", "typing", "stop-typing"} and concern_id is None:
        sub.offer(_frame("error", {"event": event, "message": "concern_id is required"}))
        return

    if event == "join-concern":
        if websocket.app.state.settings.ws_authorize_joins:
            problem = await _can_join(websocket, identity, concern_id)
            if problem:
                sub.offer(_frame("error", {"event": event, "concern_id": concern_id, "message": problem}))
                return
        room = concern_room(concern_id)
        bus.join(sub, room)
        log.info("ws_joined", extra={"subscriber": sub.id, "room": room})
        sub.offer(_frame("joined", {"room": room, "concern_id": concern_id}))

    elif event == "leave-concern":
        room = concern_room(concern_id)
        bus.leave(sub, room)
        log.info("ws_left", extra={"subscriber": sub.id, "room": room})
        sub.offer(_frame("left", {"room": room, "concern_id": concern_id}))

    elif event == "typing":
        user_name = (data.get("user_name") or data.get("userName")) if isinstance(data, dict) else None
        bus.publish(
            concern_room(concern_id),
            "user-typing",
            {"concern_id": concern_id, "user_id": identity.id, "user_name": user_name or identity.name},
            exclude=sub,
        )

    elif event == "stop-typing":
        bus.publish(
            concern_room(concern_id),
            "user-stop-typing",
            {"concern_id": concern_id, "user_id": identity.id},
            exclude=sub,
        )

    else:
        sub.offer(_frame("error", {"event": event, "message": f"Unknown event '{event}'"}))


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = Query(None)) -> None:
    state = websocket.app.state
    async with state.db.session() as db:
        user = await user_from_token(db, token, state.settings)
    if user is None:
        log.info("ws_rejected")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    identity = AuthIdentity.from_user(user)
    bus: RealtimeBus = state.bus
    await websocket.accept()
    sub = bus.subscribe(identity.id)
    writer = asyncio.create_task(_writer(websocket, sub), name=f"ws-writer:{sub.id}")

    try:
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            try:
                frame = json.loads(raw)
            except ValueError:
                sub.offer(_frame("error", {"message": "Invalid JSON"}))
                continue
            await _handle(websocket, bus, sub, identity, frame)
    finally:
        bus.unsubscribe(sub)
        await asyncio.gather(writer, return_exceptions=True)
        log.info("ws_disconnected", extra={"subscriber": sub.id, "user_id": identity.id})
