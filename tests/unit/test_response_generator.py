import json

import httpx
import pytest

from chatdesk.domain.enums import InstructionCategory, MessageSender, Platform
from chatdesk.integrations.completion import HttpCompletionBackend
from chatdesk.services.history_cache import HistoryEntry
from chatdesk.services.response_generator import (
    DEFAULT_INSTRUCTION,
    GenerationContext,
    GeneratorOptions,
    ResponseGenerator,
)

CONTEXT = GenerationContext(customer_name="Dana", platform=Platform.LINE)


class BrokenInstructions:
    async def list_active_for_platform(self, platform):
        raise RuntimeError("database unavailable")


class ExplodingBackend:
    async def complete(self, messages, max_tokens, temperature, presence_penalty, frequency_penalty):
        raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_prompt_includes_platform_instructions(backend, instructions) -> None:
    await instructions.create(
        name="Tone",
        description="",
        content="Always greet with sawasdee.",
        category=InstructionCategory.GREETING,
        platforms=["line"],
    )
    await instructions.create(
        name="Web only",
        description="",
        content="Mention the web shop.",
        category=InstructionCategory.SALES,
        platforms=["web"],
    )
    generator = ResponseGenerator(backend)

    reply = await generator.generate(
        CONTEXT, [HistoryEntry(MessageSender.CUSTOMER, "hi")], instructions
    )

    assert reply == "Happy to help!"
    system_prompt = backend.calls[0][0]["content"]
    assert "Dana" in system_prompt
    assert "Always greet with sawasdee." in system_prompt
    assert "Mention the web shop." not in system_prompt
    assert backend.calls[0][1] == {"role": "user", "content": "hi"}


@pytest.mark.asyncio
async def test_instruction_failure_falls_back_to_default(backend) -> None:
    generator = ResponseGenerator(backend)

    await generator.generate(CONTEXT, [], BrokenInstructions())

    assert backend.calls[0][0]["content"].endswith(DEFAULT_INSTRUCTION)


@pytest.mark.asyncio
async def test_backend_failure_returns_none(instructions) -> None:
    generator = ResponseGenerator(ExplodingBackend())

    assert await generator.generate(CONTEXT, [], instructions) is None


@pytest.mark.asyncio
async def test_reply_is_trimmed_and_capped(backend, instructions) -> None:
    backend.reply = "  " + "x" * 50 + "  "
    generator = ResponseGenerator(backend, GeneratorOptions(max_reply_chars=10))

    assert await generator.generate(CONTEXT, [], instructions) == "x" * 10


def test_history_window_maps_roles() -> None:
    generator = ResponseGenerator(backend=None, options=GeneratorOptions(history_window=2))
    history = [
        HistoryEntry(MessageSender.CUSTOMER, "first"),
        HistoryEntry(MessageSender.AGENT, "second"),
        HistoryEntry(MessageSender.AI, "third"),
    ]

    messages = generator.build_messages(CONTEXT, history, [])

    assert messages[1:] == [
        {"role": "assistant", "content": "second"},
        {"role": "assistant", "content": "third"},
    ]


@pytest.mark.asyncio
async def test_http_backend_posts_chat_completion() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "Sure!"}}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        backend = HttpCompletionBackend(
            client, base_url="https://llm.test/v1/", api_key="key-1", model="gpt-test"
        )
        reply = await backend.complete(
            [{"role": "user", "content": "hi"}],
            max_tokens=50,
            temperature=0.2,
            presence_penalty=0.0,
            frequency_penalty=0.0,
        )

    assert reply == "Sure!"
    assert captured["url"] == "https://llm.test/v1/chat/completions"
    assert captured["auth"] == "Bearer key-1"
    assert captured["body"]["model"] == "gpt-test"
    assert captured["body"]["max_tokens"] == 50


@pytest.mark.asyncio
async def test_http_backend_returns_none_on_error_status() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(429, text="slow down"))
    async with httpx.AsyncClient(transport=transport) as client:
        backend = HttpCompletionBackend(client, "https://llm.test/v1", "key-1", "gpt-test")
        reply = await backend.complete([], 10, 0.5, 0.0, 0.0)

    assert reply is None


@pytest.mark.asyncio
async def test_http_backend_without_key_skips_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        backend = HttpCompletionBackend(client, "https://llm.test/v1", None, "gpt-test")
        assert not backend.is_configured
        assert await backend.complete([], 10, 0.5, 0.0, 0.0) is None
