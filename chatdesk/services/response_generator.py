import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from chatdesk.domain.enums import MessageSender, Platform
from chatdesk.infra.db.models import Instruction
from chatdesk.services.history_cache import HistoryEntry

logger = logging.getLogger(__name__)

BASE_PROMPT = (
    "You are a friendly and helpful customer support assistant. "
    "You are chatting with {customer_name} on {platform}.\n\n"
    "Reply guidelines:\n"
    "- Reply in the customer's language.\n"
    "- Be polite, accurate and concise.\n"
    "- Ask a clarifying question when the request is unclear.\n"
    "- Never disclose personal or sensitive information.\n\n"
    "Instructions specific to {platform}:"
)
DEFAULT_INSTRUCTION = "Reply politely and helpfully."


class CompletionBackend(Protocol):
    async def complete(
        self,
        messages: Sequence[dict[str, str]],
        max_tokens: int,
        temperature: float,
        presence_penalty: float,
        frequency_penalty: float,
    ) -> str | None: ...


class InstructionSource(Protocol):
    async def list_active_for_platform(self, platform: Platform) -> list[Instruction]: ...


@dataclass(frozen=True, slots=True)
class GeneratorOptions:
    history_window: int = 10
    max_tokens: int = 500
    temperature: float = 0.7
    presence_penalty: float = 0.1
    frequency_penalty: float = 0.1
    max_reply_chars: int = 2000


@dataclass(frozen=True, slots=True)
class GenerationContext:
    customer_name: str
    platform: Platform


class ResponseGenerator:
    """Builds the auto-reply prompt and asks the completion backend for text.

    ``generate`` returns ``None`` whenever no reply should be appended; it
    never raises to the caller.
    """

    def __init__(self, backend: CompletionBackend, options: GeneratorOptions | None = None) -> None:
        self.backend = backend
        self.options = options or GeneratorOptions()

    async def generate(
        self,
        context: GenerationContext,
        history: Sequence[HistoryEntry],
        instructions: InstructionSource,
    ) -> str | None:
        try:
            instruction_texts = await self._load_instructions(context.platform, instructions)
            messages = self.build_messages(context, history, instruction_texts)
            reply = await self.backend.complete(
                messages,
                max_tokens=self.options.max_tokens,
                temperature=self.options.temperature,
                presence_penalty=self.options.presence_penalty,
                frequency_penalty=self.options.frequency_penalty,
            )
        except Exception:
            logger.exception("Response generation failed for %s", context.platform.value)
            return None

        if not reply:
            return None
        cleaned = reply.strip()
        if not cleaned:
            return None
        return cleaned[: self.options.max_reply_chars]

    def build_messages(
        self,
        context: GenerationContext,
        history: Sequence[HistoryEntry],
        instruction_texts: Sequence[str],
    ) -> list[dict[str, str]]:
        messages = [
            {"role": "system", "content": self.build_system_prompt(context, instruction_texts)}
        ]
        window = list(history)[-self.options.history_window :] if self.options.history_window else []
        for entry in window:
            role = "user" if entry.sender == MessageSender.CUSTOMER else "assistant"
            messages.append({"role": role, "content": entry.content})
        return messages

    @staticmethod
    def build_system_prompt(context: GenerationContext, instruction_texts: Sequence[str]) -> str:
        base = BASE_PROMPT.format(
            customer_name=context.customer_name,
            platform=context.platform.value,
        )
        body = "\n\n".join(instruction_texts) if instruction_texts else DEFAULT_INSTRUCTION
        return f"{base}\n\n{body}"

    @staticmethod
    async def _load_instructions(
        platform: Platform, instructions: InstructionSource
    ) -> list[str]:
        try:
            rows = await instructions.list_active_for_platform(platform)
        except Exception:
            logger.exception("Could not load instructions for %s", platform.value)
            return []
        return [row.content for row in rows if row.content]
