import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from chatdesk.infra.realtime.events import RealtimeEvent

logger = logging.getLogger(__name__)


class RealtimePublisher(Protocol):
    """Anything that fans a dashboard event out to channel subscribers."""

    async def publish(
        self,
        channels: Sequence[str],
        event: RealtimeEvent,
        payload: Mapping[str, Any],
    ) -> None: ...


class NoopRealtimePublisher:
    """Stand-in used outside the web process, e.g. by CLI scripts."""

    async def publish(
        self,
        channels: Sequence[str],
        event: RealtimeEvent,
        payload: Mapping[str, Any],
    ) -> None:
        logger.debug(
            "No realtime hub attached; dropped %s for %s (%d field(s))",
            event.value,
            ", ".join(channels) or "-",
            len(payload),
        )
