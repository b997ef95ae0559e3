import json

import httpx
import pytest

from chatdesk.core.config import Settings
from chatdesk.services.telemetry import (
    TelemetryReporter,
    UsageStats,
    format_uptime,
    instance_id,
)


def _settings(**overrides) -> Settings:
    values = {
        "telemetry_enabled": True,
        "telemetry_bot_token": "123:abc",
        "telemetry_chat_id": "-100",
        "public_base_url": "https://support.example.com",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_format_uptime() -> None:
    assert format_uptime(59) == "0m"
    assert format_uptime(3 * 3600 + 25 * 60) == "3h 25m"
    assert format_uptime(2 * 86400 + 5 * 3600) == "2d 5h"


def test_instance_id_is_stable_and_short() -> None:
    first = instance_id("postgresql://db/chat", "https://a.example.com")

    assert first == instance_id("postgresql://db/chat", "https://a.example.com")
    assert first != instance_id("postgresql://db/chat", "https://b.example.com")
    assert len(first) == 12


@pytest.mark.asyncio
async def test_disabled_reporter_never_starts_or_sends() -> None:
    async with httpx.AsyncClient() as client:
        reporter = TelemetryReporter(_settings(telemetry_enabled=False), client, None)

        assert reporter.start() is None
        assert await reporter.send_report("started") is False


@pytest.mark.asyncio
async def test_missing_chat_id_skips_reporting() -> None:
    async with httpx.AsyncClient() as client:
        reporter = TelemetryReporter(_settings(telemetry_chat_id=None), client, None)

        assert not reporter.enabled
        assert reporter.start() is None


@pytest.mark.asyncio
async def test_report_posts_to_telegram() -> None:
    sent: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/bot123:abc/sendMessage"
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        reporter = TelemetryReporter(_settings(), client, None)
        assert await reporter.send_report("started") is True

    assert sent[0]["chat_id"] == "-100"
    assert "chatdesk Started" in sent[0]["text"]
    assert "support.example.com" in sent[0]["text"]
    assert "Stats: unavailable" in sent[0]["text"]


@pytest.mark.asyncio
async def test_report_failure_is_swallowed() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    async with httpx.AsyncClient(transport=transport) as client:
        reporter = TelemetryReporter(_settings(), client, None)
        assert await reporter.send_report("heartbeat") is False


def test_message_lists_usage_stats() -> None:
    reporter = TelemetryReporter(_settings(), client=None, session_factory=None)

    text = reporter.build_message(
        "heartbeat",
        UsageStats(conversations=12, messages_24h=40, users=3, platform_credentials=2),
    )

    assert "Heartbeat" in text
    assert "Conversations: 12" in text
    assert "Messages (24h): 40" in text
