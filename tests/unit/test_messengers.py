import json

import httpx
import pytest

from chatdesk.domain.enums import Platform
from chatdesk.integrations.messengers import TELEGRAM_MAX_TEXT, PlatformMessenger


class Recorder:
    def __init__(self, responses: dict[str, httpx.Response] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.responses = responses or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.get(request.url.path, httpx.Response(200, json={"ok": True}))

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.mark.asyncio
async def test_line_reply_falls_back_to_push_when_token_expired() -> None:
    recorder = Recorder({"/v2/bot/message/reply": httpx.Response(400, json={})})
    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
        messenger = PlatformMessenger(client)
        delivered = await messenger.deliver(
            Platform.LINE, "U1", "Hi", {"channel_access_token": "tok"}, reply_token="r1"
        )

    assert delivered
    assert recorder.paths == ["/v2/bot/message/reply", "/v2/bot/message/push"]
    assert json.loads(recorder.requests[1].content)["to"] == "U1"
    assert recorder.requests[1].headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_telegram_text_is_truncated() -> None:
    recorder = Recorder()
    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
        messenger = PlatformMessenger(client)
        delivered = await messenger.deliver(
            Platform.TELEGRAM, "99", "x" * (TELEGRAM_MAX_TEXT + 10), {"bot_token": "1:a"}
        )

    assert delivered
    body = json.loads(recorder.requests[0].content)
    assert body["chat_id"] == "99"
    assert len(body["text"]) == TELEGRAM_MAX_TEXT


@pytest.mark.asyncio
async def test_instagram_uses_graph_send_api() -> None:
    recorder = Recorder()
    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
        messenger = PlatformMessenger(client)
        await messenger.deliver(Platform.INSTAGRAM, "IGSID", "Hello", {"access_token": "ig"})

    request = recorder.requests[0]
    assert request.url.path == "/v18.0/me/messages"
    assert request.url.params["access_token"] == "ig"
    assert json.loads(request.content)["recipient"] == {"id": "IGSID"}


@pytest.mark.asyncio
async def test_missing_credentials_and_errors_report_not_delivered() -> None:
    def broken(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(broken)) as client:
        messenger = PlatformMessenger(client)
        assert not await messenger.deliver(Platform.FACEBOOK, "PSID", "Hi", {})
        assert not await messenger.deliver(
            Platform.FACEBOOK, "PSID", "Hi", {"page_access_token": "p"}
        )
        assert await messenger.deliver(Platform.WEB, "visitor", "Hi", {})


@pytest.mark.asyncio
async def test_connection_test_results() -> None:
    recorder = Recorder(
        {
            "/v2/bot/info": httpx.Response(200, json={"displayName": "Shop Bot"}),
            "/bot1:a/getMe": httpx.Response(401, json={"ok": False}),
        }
    )
    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
        messenger = PlatformMessenger(client)
        line = await messenger.test_connection(Platform.LINE, {"channel_access_token": "t"})
        telegram = await messenger.test_connection(Platform.TELEGRAM, {"bot_token": "1:a"})
        missing = await messenger.test_connection(Platform.FACEBOOK, {})

    assert line == (True, "Connected to Shop Bot")
    assert telegram == (False, "Access token was rejected")
    assert missing == (False, "Access token is not configured")
