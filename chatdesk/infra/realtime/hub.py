import asyncio
import logging
from collections import defaultdict
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from chatdesk.infra.realtime.events import RealtimeEvent, SystemEvent

logger = logging.getLogger(__name__)


def build_envelope(
    event: RealtimeEvent | SystemEvent,
    payload: Mapping[str, Any],
    channel: str | None = None,
) -> dict[str, Any]:
    return {
        "event": event.value,
        "channel": channel,
        "payload": dict(payload),
        "sent_at": datetime.now(UTC).isoformat(),
    }


class InMemoryRealtimeHub:
    """In-process channel hub for websocket fanout.

    Delivery is at-most-once: a socket that fails a send is dropped from
    every channel it joined and the event is not retried.
    """

    def __init__(self) -> None:
        self._channel_subscribers: dict[str, set[WebSocket]] = defaultdict(set)
        self._socket_channels: dict[WebSocket, set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()

    def subscriber_count(self, channel: str) -> int:
        subscribers = self._channel_subscribers.get(channel)
        if subscribers is None:
            return 0
        return len(subscribers)

    def connection_count(self) -> int:
        return len(self._socket_channels)

    def channels_for(self, websocket: WebSocket) -> set[str]:
        return set(self._socket_channels.get(websocket, set()))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._forget_socket(websocket)

    async def subscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            self._channel_subscribers[channel].add(websocket)
            self._socket_channels[websocket].add(channel)

    async def unsubscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            subscribers = self._channel_subscribers.get(channel)
            if subscribers is not None:
                subscribers.discard(websocket)
                if not subscribers:
                    self._channel_subscribers.pop(channel, None)

            channels = self._socket_channels.get(websocket)
            if channels is not None:
                channels.discard(channel)
                if not channels:
                    self._socket_channels.pop(websocket, None)

    async def send_direct(
        self,
        websocket: WebSocket,
        event: RealtimeEvent | SystemEvent,
        payload: Mapping[str, Any],
    ) -> bool:
        try:
            await websocket.send_json(build_envelope(event, payload))
        except (RuntimeError, WebSocketDisconnect):
            await self.disconnect(websocket)
            return False
        return True

    async def publish(
        self,
        channels: Sequence[str],
        event: RealtimeEvent,
        payload: Mapping[str, Any],
        exclude: WebSocket | None = None,
    ) -> None:
        unique_channels = [channel for channel in dict.fromkeys(channels) if channel]
        if not unique_channels:
            return

        async with self._lock:
            recipients_by_channel = {
                channel: set(self._channel_subscribers.get(channel, set()))
                for channel in unique_channels
            }

        stale: set[WebSocket] = set()
        for channel, recipients in recipients_by_channel.items():
            recipients.discard(exclude)
            if not recipients:
                continue

            envelope = build_envelope(event, payload, channel=channel)
            for websocket in recipients:
                if websocket in stale:
                    continue
                try:
                    await websocket.send_json(envelope)
                except (RuntimeError, WebSocketDisconnect):
                    stale.add(websocket)

        if stale:
            logger.debug("Dropping %d stale websocket(s) after %s", len(stale), event.value)
            async with self._lock:
                for websocket in stale:
                    self._forget_socket(websocket)

    def _forget_socket(self, websocket: WebSocket) -> None:
        channels = self._socket_channels.pop(websocket, set())
        for channel in channels:
            subscribers = self._channel_subscribers.get(channel)
            if subscribers is None:
                continue
            subscribers.discard(websocket)
            if not subscribers:
                self._channel_subscribers.pop(channel, None)
