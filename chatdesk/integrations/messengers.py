"""Outbound clients for the messaging platforms.

All calls go through one shared ``httpx.AsyncClient``. Delivery is best
effort: ``PlatformMessenger`` logs failures and reports ``False`` instead
of raising.
"""

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from chatdesk.domain.enums import Platform

logger = logging.getLogger(__name__)

LINE_API_BASE = "https://api.line.me/v2"
GRAPH_API_BASE = "https://graph.facebook.com/v18.0"
TELEGRAM_API_BASE = "https://api.telegram.org"

# Telegram rejects longer messages outright.
TELEGRAM_MAX_TEXT = 4096


class LineClient:
    def __init__(self, client: httpx.AsyncClient, timeout: float = 10.0) -> None:
        self.client = client
        self.timeout = timeout

    async def push(self, access_token: str, to: str, text: str) -> httpx.Response:
        return await self.client.post(
            f"{LINE_API_BASE}/bot/message/push",
            headers=self._headers(access_token),
            json={"to": to, "messages": [{"type": "text", "text": text}]},
            timeout=self.timeout,
        )

    async def reply(self, access_token: str, reply_token: str, text: str) -> httpx.Response:
        return await self.client.post(
            f"{LINE_API_BASE}/bot/message/reply",
            headers=self._headers(access_token),
            json={"replyToken": reply_token, "messages": [{"type": "text", "text": text}]},
            timeout=self.timeout,
        )

    async def bot_info(self, access_token: str) -> httpx.Response:
        return await self.client.get(
            f"{LINE_API_BASE}/bot/info",
            headers=self._headers(access_token),
            timeout=self.timeout,
        )

    @staticmethod
    def _headers(access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }


class GraphClient:
    """Send API shared by Facebook Messenger and Instagram messaging."""

    def __init__(self, client: httpx.AsyncClient, timeout: float = 10.0) -> None:
        self.client = client
        self.timeout = timeout

    async def send_text(self, access_token: str, recipient_id: str, text: str) -> httpx.Response:
        return await self.client.post(
            f"{GRAPH_API_BASE}/me/messages",
            params={"access_token": access_token},
            json={
                "recipient": {"id": recipient_id},
                "messaging_type": "RESPONSE",
                "message": {"text": text},
            },
            timeout=self.timeout,
        )

    async def me(self, access_token: str) -> httpx.Response:
        return await self.client.get(
            f"{GRAPH_API_BASE}/me",
            params={"access_token": access_token, "fields": "id,name"},
            timeout=self.timeout,
        )


class TelegramClient:
    def __init__(self, client: httpx.AsyncClient, timeout: float = 10.0) -> None:
        self.client = client
        self.timeout = timeout

    async def send_message(self, bot_token: str, chat_id: str, text: str) -> httpx.Response:
        return await self.client.post(
            f"{TELEGRAM_API_BASE}/bot{bot_token}/sendMessage",
            json={"chat_id": chat_id, "text": text[:TELEGRAM_MAX_TEXT]},
            timeout=self.timeout,
        )

    async def get_me(self, bot_token: str) -> httpx.Response:
        return await self.client.get(
            f"{TELEGRAM_API_BASE}/bot{bot_token}/getMe",
            timeout=self.timeout,
        )


class PlatformMessenger:
    def __init__(self, client: httpx.AsyncClient, timeout: float = 10.0) -> None:
        self.line = LineClient(client, timeout)
        self.graph = GraphClient(client, timeout)
        self.telegram = TelegramClient(client, timeout)

    async def deliver(
        self,
        platform: Platform,
        recipient_id: str,
        text: str,
        credentials: Mapping[str, Any],
        reply_token: str | None = None,
    ) -> bool:
        if platform == Platform.WEB:
            # The widget reads replies over the realtime channel.
            return True

        try:
            response = await self._send(platform, recipient_id, text, credentials, reply_token)
        except httpx.HTTPError as exc:
            logger.warning("Delivery to %s recipient %s failed: %s", platform.value, recipient_id, exc)
            return False

        if response is None:
            logger.info(
                "No %s credentials available; reply to %s stays in the dashboard only",
                platform.value,
                recipient_id,
            )
            return False
        if response.status_code >= 300:
            logger.warning(
                "Delivery to %s recipient %s returned HTTP %s: %s",
                platform.value,
                recipient_id,
                response.status_code,
                response.text[:200],
            )
            return False
        return True

    async def _send(
        self,
        platform: Platform,
        recipient_id: str,
        text: str,
        credentials: Mapping[str, Any],
        reply_token: str | None,
    ) -> httpx.Response | None:
        if platform == Platform.LINE:
            token = credentials.get("channel_access_token")
            if not token:
                return None
            if reply_token:
                response = await self.line.reply(token, reply_token, text)
                # Reply tokens expire quickly; fall back to a push message.
                if response.status_code < 300:
                    return response
            return await self.line.push(token, recipient_id, text)

        if platform == Platform.FACEBOOK:
            token = credentials.get("page_access_token")
            if not token:
                return None
            return await self.graph.send_text(token, recipient_id, text)

        if platform == Platform.INSTAGRAM:
            token = credentials.get("access_token")
            if not token:
                return None
            return await self.graph.send_text(token, recipient_id, text)

        if platform == Platform.TELEGRAM:
            token = credentials.get("bot_token")
            if not token:
                return None
            return await self.telegram.send_message(token, recipient_id, text)

        return None

    async def test_connection(
        self, platform: Platform, credentials: Mapping[str, Any]
    ) -> tuple[bool, str]:
        try:
            if platform == Platform.LINE:
                token = credentials.get("channel_access_token")
                if not token:
                    return False, "Channel access token is not configured"
                response = await self.line.bot_info(token)
                if response.status_code == 200:
                    name = response.json().get("displayName", "LINE bot")
                    return True, f"Connected to {name}"
            elif platform == Platform.TELEGRAM:
                token = credentials.get("bot_token")
                if not token:
                    return False, "Bot token is not configured"
                response = await self.telegram.get_me(token)
                if response.status_code == 200 and response.json().get("ok"):
                    username = response.json().get("result", {}).get("username", "bot")
                    return True, f"Connected to @{username}"
            elif platform in (Platform.FACEBOOK, Platform.INSTAGRAM):
                key = "page_access_token" if platform == Platform.FACEBOOK else "access_token"
                token = credentials.get(key)
                if not token:
                    return False, "Access token is not configured"
                response = await self.graph.me(token)
                if response.status_code == 200:
                    name = response.json().get("name", platform.value)
                    return True, f"Connected to {name}"
            else:
                return False, f"{platform.value} does not support connection tests"
        except httpx.HTTPError as exc:
            logger.warning("Connection test for %s failed: %s", platform.value, exc)
            return False, f"Connection failed: {exc}"
        except ValueError:
            return False, "Platform returned an unreadable response"

        if response.status_code == 401:
            return False, "Access token was rejected"
        if response.status_code == 403:
            return False, "Access token lacks permission"
        return False, f"Connection failed with HTTP {response.status_code}"
