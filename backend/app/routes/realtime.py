import json
import logging
from typing import Any, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from app import models
from app.auth import user_from_token
from app.database import SessionLocal
from app.services import workflow
from app.services.realtime import RealtimeHub, chat_topic, get_hub, user_topic

logger = logging.getLogger("realtime")

router = APIRouter()

POLICY_VIOLATION = 1008


class SocketConnection:
    """Adapts a FastAPI WebSocket to the hub's Connection interface."""

    def __init__(self, websocket: WebSocket, user_id: str, role: str):
        self.websocket = websocket
        self.user_id = user_id
        self.role = role

    async def send_event(self, event: str, data: Any) -> None:
        await self.websocket.send_json({"event": event, "data": data})


def _authenticate(token: Optional[str]) -> Optional[Tuple[str, str]]:
    db = SessionLocal()
    try:
        user = user_from_token(db, token)
        if not user.approved and user.role != models.UserRole.ADMIN:
            return None
        return user.id, user.role.value
    except HTTPException:
        return None
    finally:
        db.close()


def _can_join(user_id: str, chat_id: str) -> bool:
    db = SessionLocal()
    try:
        user = db.get(models.User, user_id)
        chat = db.get(models.Chat, chat_id)
        if user is None or chat is None or chat.booking is None:
            return False
        return workflow.can_access_booking(chat.booking, user)
    finally:
        db.close()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    hub: RealtimeHub = Depends(get_hub),
):
    identity = await run_in_threadpool(_authenticate, token)
    if identity is None:
        await websocket.close(code=POLICY_VIOLATION)
        return

    await websocket.accept()
    conn = SocketConnection(websocket, *identity)
    await hub.subscribe(user_topic(conn.user_id), conn)
    logger.info("[Realtime] User %s connected", conn.user_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except ValueError:
                msg = None
            if not isinstance(msg, dict):
                await conn.send_event("error", {"message": "Invalid message"})
                continue

            action = msg.get("action")
            chat_id = msg.get("chat_id") or msg.get("chatId")
            if action not in ("join_chat", "leave_chat") or not chat_id:
                await conn.send_event("error", {"message": "Unknown action"})
                continue

            if action == "join_chat":
                if await run_in_threadpool(_can_join, conn.user_id, chat_id):
                    await hub.subscribe(chat_topic(chat_id), conn)
                    await conn.send_event("joined_chat", {"chat_id": chat_id})
                else:
                    await conn.send_event("error", {"message": "Access denied", "chat_id": chat_id})
            else:
                await hub.unsubscribe(chat_topic(chat_id), conn)
                await conn.send_event("left_chat", {"chat_id": chat_id})
    except WebSocketDisconnect:
        logger.info("[Realtime] User %s disconnected", conn.user_id)
    finally:
        await hub.disconnect(conn)
