"""Realtime event transport (WebSocket) adapters."""

from chatdesk.infra.realtime.hub import InMemoryRealtimeHub

__all__ = ["InMemoryRealtimeHub"]
