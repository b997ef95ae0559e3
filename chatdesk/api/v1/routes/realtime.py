import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

from chatdesk.api.deps import build_conversation_service, parse_uuid, resolve_user_from_token
from chatdesk.core.config import get_settings
from chatdesk.core.db import get_session_factory
from chatdesk.domain.enums import ConversationStatus, MessageType
from chatdesk.infra.db.models import User
from chatdesk.infra.realtime import InMemoryRealtimeHub
from chatdesk.infra.realtime.channels import AGENTS_CHANNEL, conversation_channel, user_channel
from chatdesk.infra.realtime.events import RealtimeEvent, SystemEvent

logger = logging.getLogger(__name__)

router = APIRouter()


async def _announce_presence(hub: InMemoryRealtimeHub, user: User, is_online: bool) -> None:
    await hub.publish(
        [AGENTS_CHANNEL],
        RealtimeEvent.USER_STATUS_CHANGED,
        {"user_id": str(user.id), "name": user.name, "is_online": is_online},
    )


@router.websocket("/ws")
async def realtime_ws(websocket: WebSocket) -> None:
    hub: InMemoryRealtimeHub | None = getattr(websocket.app.state, "realtime_hub", None)
    if hub is None:
        await websocket.close(code=1011, reason="Realtime hub not initialized")
        return

    try:
        session_factory = get_session_factory()
    except RuntimeError:
        await websocket.close(code=1011, reason="Database session is not initialized")
        return

    access_token = websocket.query_params.get("access_token", "").strip()
    if not access_token:
        await websocket.close(code=1008, reason="access_token query parameter is required")
        return

    async with session_factory() as session:
        user = await resolve_user_from_token(session, access_token, get_settings())
    if user is None:
        await websocket.close(code=1008, reason="Invalid or expired session")
        return

    initial_channels = [AGENTS_CHANNEL, user_channel(user.id)]
    await hub.connect(websocket)
    for channel in initial_channels:
        await hub.subscribe(websocket, channel)

    await hub.send_direct(
        websocket,
        SystemEvent.CONNECTED,
        {"user_id": str(user.id), "role": user.role.value, "channels": initial_channels},
    )
    await _announce_presence(hub, user, is_online=True)
    logger.info("User %s connected to realtime", user.id)

    try:
        while True:
            raw_message = await websocket.receive_text()
            if raw_message.strip().lower() == "ping":
                await hub.send_direct(websocket, SystemEvent.PONG, {})
                continue

            try:
                message = json.loads(raw_message)
            except json.JSONDecodeError:
                await hub.send_direct(
                    websocket, SystemEvent.ERROR, {"detail": "Expected JSON payload"}
                )
                continue
            if not isinstance(message, dict):
                await hub.send_direct(
                    websocket, SystemEvent.ERROR, {"detail": "Expected JSON object"}
                )
                continue

            await _dispatch(websocket, hub, session_factory, user, message)
    except WebSocketDisconnect:
        return
    finally:
        await hub.disconnect(websocket)
        if hub.subscriber_count(user_channel(user.id)) == 0:
            await _announce_presence(hub, user, is_online=False)
        logger.info("User %s disconnected from realtime", user.id)


async def _dispatch(
    websocket: WebSocket,
    hub: InMemoryRealtimeHub,
    session_factory,
    user: User,
    message: dict[str, Any],
) -> None:
    action = message.get("action")

    if action == "ping":
        await hub.send_direct(websocket, SystemEvent.PONG, {})
        return

    if action == "set-online-status":
        await _announce_presence(hub, user, is_online=bool(message.get("is_online", True)))
        return

    chat_id = parse_uuid(message.get("chat_id"))
    if action not in {
        "join-chat",
        "leave-chat",
        "typing",
        "send-message",
        "update-chat-status",
        "assign-chat",
    }:
        await hub.send_direct(websocket, SystemEvent.ERROR, {"detail": "Unsupported action"})
        return
    if chat_id is None:
        await hub.send_direct(websocket, SystemEvent.ERROR, {"detail": "Invalid chat_id"})
        return

    channel = conversation_channel(chat_id)
    if action == "join-chat":
        await hub.subscribe(websocket, channel)
        await hub.send_direct(websocket, SystemEvent.JOINED, {"channel": channel})
        return
    if action == "leave-chat":
        await hub.unsubscribe(websocket, channel)
        await hub.send_direct(websocket, SystemEvent.LEFT, {"channel": channel})
        return
    if action == "typing":
        await hub.publish(
            [channel],
            RealtimeEvent.USER_TYPING,
            {
                "chat_id": str(chat_id),
                "user_id": str(user.id),
                "name": user.name,
                "is_typing": bool(message.get("is_typing", False)),
            },
            exclude=websocket,
        )
        return

    # Mutating actions go through the conversation service.
    async with session_factory() as session:
        service = build_conversation_service(websocket.app, session)
        try:
            if action == "send-message":
                await service.send_agent_message(
                    chat_id,
                    user,
                    str(message.get("content") or ""),
                    MessageType(message.get("type") or MessageType.TEXT.value),
                )
            elif action == "update-chat-status":
                await service.update_status(chat_id, ConversationStatus(message.get("status")))
            else:
                await service.assign(chat_id, parse_uuid(message.get("assigned_agent_id")))
        except (LookupError, ValueError) as exc:
            await session.rollback()
            await hub.send_direct(websocket, SystemEvent.ERROR, {"detail": str(exc)})
