"""Optional usage heartbeat posted to a Telegram chat.

Reporting never affects request handling: every failure is logged at
debug level and dropped.
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import urlparse

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatdesk.core.config import Settings
from chatdesk.infra.db.repositories import (
    ConversationRepository,
    MessageRepository,
    PlatformCredentialRepository,
    UserRepository,
)
from chatdesk.integrations.messengers import TELEGRAM_API_BASE

logger = logging.getLogger(__name__)

APP_NAME = "chatdesk"
APP_VERSION = "0.1.0"


@dataclass(slots=True)
class UsageStats:
    conversations: int
    messages_24h: int
    users: int
    platform_credentials: int


def instance_id(database_url: str, public_base_url: str) -> str:
    seed = f"{database_url}|{public_base_url}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:12]


def format_uptime(seconds: float) -> str:
    total = int(seconds)
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


class TelemetryReporter:
    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        session_factory: async_sessionmaker[AsyncSession] | None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.session_factory = session_factory
        self._started_at = time.monotonic()

    @property
    def enabled(self) -> bool:
        return bool(
            self.settings.telemetry_enabled
            and self.settings.telemetry_bot_token
            and self.settings.telemetry_chat_id
        )

    def start(self) -> asyncio.Task | None:
        if not self.settings.telemetry_enabled:
            logger.info("Telemetry disabled")
            return None
        if not self.enabled:
            logger.info("Telemetry skipped: bot token or chat id is not set")
            return None
        logger.info(
            "Telemetry enabled, reporting every %ss", self.settings.telemetry_interval_seconds
        )
        return asyncio.create_task(self.run(), name="telemetry-heartbeat")

    async def run(self) -> None:
        await asyncio.sleep(self.settings.telemetry_startup_delay_seconds)
        await self.send_report("started")
        while True:
            await asyncio.sleep(self.settings.telemetry_interval_seconds)
            await self.send_report("heartbeat")

    async def send_report(self, kind: str) -> bool:
        if not self.enabled:
            return False
        try:
            stats = await self.collect_stats()
            text = self.build_message(kind, stats)
            response = await self.client.post(
                f"{TELEGRAM_API_BASE}/bot{self.settings.telemetry_bot_token}/sendMessage",
                json={
                    "chat_id": self.settings.telemetry_chat_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "disable_notification": True,
                },
                timeout=10.0,
            )
            response.raise_for_status()
        except Exception as exc:
            logger.debug("Telemetry %s failed (non-critical): %s", kind, exc)
            return False
        logger.debug("Telemetry %s sent", kind)
        return True

    async def collect_stats(self) -> UsageStats | None:
        if self.session_factory is None:
            return None
        since = datetime.now(UTC) - timedelta(hours=24)
        async with self.session_factory() as session:
            return UsageStats(
                conversations=await ConversationRepository(session).count(),
                messages_24h=await MessageRepository(session).count_since(since),
                users=await UserRepository(session).count(),
                platform_credentials=await PlatformCredentialRepository(session).count(),
            )

    def build_message(self, kind: str, stats: UsageStats | None) -> str:
        domain = urlparse(self.settings.public_base_url).hostname or "unknown"
        title = "Started" if kind == "started" else "Heartbeat"
        lines = [
            f"<b>{APP_NAME} {title}</b>",
            f"Instance: <code>{instance_id(self.settings.database_url, self.settings.public_base_url)}</code>",
            f"Domain: <code>{domain}</code>",
            f"Version: <b>{APP_VERSION}</b>",
            f"Uptime: {format_uptime(time.monotonic() - self._started_at)}",
        ]
        if stats is None:
            lines.append("Stats: unavailable")
        else:
            lines.extend(
                [
                    f"Conversations: {stats.conversations}",
                    f"Messages (24h): {stats.messages_24h}",
                    f"Users: {stats.users}",
                    f"Platform credentials: {stats.platform_credentials}",
                ]
            )
        lines.append(datetime.now(UTC).strftime("%Y-%m-%d %H:%M UTC"))
        return "\n".join(lines)
