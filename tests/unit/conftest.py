import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

import pytest

from chatdesk.domain.enums import (
    ConversationPriority,
    ConversationStatus,
    InstructionCategory,
    MessageSender,
    MessageType,
    Platform,
    UserRole,
)
from chatdesk.infra.db.repositories import (
    ConversationFilters,
    DuplicateOpenConversationError,
    open_key_for,
)
from chatdesk.infra.realtime.events import RealtimeEvent


class DummySession:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def refresh(self, _: object) -> None:
        return None


@dataclass(slots=True)
class FakeUser:
    id: UUID
    name: str
    email: str
    role: UserRole = UserRole.AGENT
    is_active: bool = True
    password_hash: str = ""
    avatar_url: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class FakeConversation:
    id: UUID
    customer_id: str
    customer_name: str
    platform: Platform
    platform_id: str
    platform_credential_id: UUID | None = None
    open_key: str | None = None
    status: ConversationStatus = ConversationStatus.ACTIVE
    priority: ConversationPriority = ConversationPriority.MEDIUM
    assigned_agent_id: UUID | None = None
    tags: list[str] = field(default_factory=list)
    ai_responses: int = 0
    human_responses: int = 0
    last_message_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class FakeMessage:
    id: UUID
    conversation_id: UUID
    sender: MessageSender
    content: str
    type: MessageType = MessageType.TEXT
    sender_id: str | None = None
    sender_name: str | None = None
    external_id: str | None = None
    metadata_json: dict | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class FakeInstruction:
    id: UUID
    name: str
    description: str
    content: str
    category: InstructionCategory
    platforms: list[str]
    priority: int = 1
    tags: list[str] = field(default_factory=list)
    is_active: bool = True
    created_by: UUID | None = None
    updated_by: UUID | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class FakeConversationRepository:
    def __init__(self) -> None:
        self.conversations: dict[UUID, FakeConversation] = {}

    async def get_by_id(self, conversation_id: UUID) -> FakeConversation | None:
        return self.conversations.get(conversation_id)

    async def get_open_for_customer(
        self, customer_id: str, platform: Platform
    ) -> FakeConversation | None:
        key = open_key_for(platform, customer_id)
        found = next(
            (item for item in self.conversations.values() if item.open_key == key), None
        )
        # Yield so concurrent ingests can interleave between lookup and create.
        await asyncio.sleep(0)
        return found

    async def create(
        self,
        *,
        customer_id: str,
        customer_name: str,
        platform: Platform,
        platform_id: str,
        platform_credential_id: UUID | None = None,
    ) -> FakeConversation:
        key = open_key_for(platform, customer_id)
        if any(item.open_key == key for item in self.conversations.values()):
            raise DuplicateOpenConversationError(key)
        conversation = FakeConversation(
            id=uuid4(),
            customer_id=customer_id,
            customer_name=customer_name,
            platform=platform,
            platform_id=platform_id,
            platform_credential_id=platform_credential_id,
            open_key=key,
        )
        self.conversations[conversation.id] = conversation
        return conversation

    async def record_message(
        self, conversation: FakeConversation, sender: MessageSender, timestamp: datetime
    ) -> None:
        conversation.last_message_at = max(conversation.last_message_at, timestamp)
        if sender == MessageSender.AI:
            conversation.ai_responses += 1
        elif sender == MessageSender.AGENT:
            conversation.human_responses += 1

    async def set_status(self, conversation: FakeConversation, status: ConversationStatus) -> None:
        conversation.status = status
        if status == ConversationStatus.CLOSED:
            conversation.open_key = None

    async def set_priority(
        self, conversation: FakeConversation, priority: ConversationPriority
    ) -> None:
        conversation.priority = priority

    async def assign_agent(self, conversation: FakeConversation, agent_id: UUID | None) -> None:
        conversation.assigned_agent_id = agent_id

    async def set_tags(self, conversation: FakeConversation, tags: list[str]) -> None:
        conversation.tags = list(tags)

    async def list_page(
        self, filters: ConversationFilters, offset: int = 0, limit: int = 20
    ) -> tuple[list[FakeConversation], int]:
        items = [item for item in self.conversations.values() if self._matches(item, filters)]
        items.sort(key=lambda item: item.last_message_at, reverse=True)
        return items[offset : offset + limit], len(items)

    async def count(self, filters: ConversationFilters | None = None) -> int:
        filters = filters or ConversationFilters()
        return sum(1 for item in self.conversations.values() if self._matches(item, filters))

    async def count_by_status(self) -> dict[ConversationStatus, int]:
        counts = {status: 0 for status in ConversationStatus}
        for item in self.conversations.values():
            counts[item.status] += 1
        return counts

    async def count_created_since(self, since: datetime) -> int:
        return sum(1 for item in self.conversations.values() if item.created_at >= since)

    async def response_totals(self) -> tuple[int, int]:
        return (
            sum(item.ai_responses for item in self.conversations.values()),
            sum(item.human_responses for item in self.conversations.values()),
        )

    @staticmethod
    def _matches(item: FakeConversation, filters: ConversationFilters) -> bool:
        if filters.platform is not None and item.platform != filters.platform:
            return False
        if filters.status is not None and item.status != filters.status:
            return False
        if filters.priority is not None and item.priority != filters.priority:
            return False
        if filters.unassigned_only and item.assigned_agent_id is not None:
            return False
        if (
            filters.platform_credential_id is not None
            and item.platform_credential_id != filters.platform_credential_id
        ):
            return False
        if filters.created_since is not None and item.created_at < filters.created_since:
            return False
        return True


class FakeMessageRepository:
    def __init__(self) -> None:
        self.messages: list[FakeMessage] = []

    async def append(
        self,
        conversation_id: UUID,
        sender: MessageSender,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        sender_id: str | None = None,
        sender_name: str | None = None,
        external_id: str | None = None,
        metadata_json: dict | None = None,
    ) -> FakeMessage:
        message = FakeMessage(
            id=uuid4(),
            conversation_id=conversation_id,
            sender=sender,
            content=content,
            type=message_type,
            sender_id=sender_id,
            sender_name=sender_name,
            external_id=external_id,
            metadata_json=metadata_json,
        )
        self.messages.append(message)
        return message

    async def list_by_conversation(self, conversation_id: UUID) -> list[FakeMessage]:
        return [item for item in self.messages if item.conversation_id == conversation_id]

    async def list_recent(self, conversation_id: UUID, limit: int) -> list[FakeMessage]:
        return (await self.list_by_conversation(conversation_id))[-limit:]


class FakeUserRepository:
    def __init__(self) -> None:
        self.users: dict[UUID, FakeUser] = {}

    def add(self, name: str, role: UserRole = UserRole.AGENT, **fields: Any) -> FakeUser:
        user = FakeUser(
            id=uuid4(), name=name, email=f"{name.lower()}@example.com", role=role, **fields
        )
        self.users[user.id] = user
        return user

    async def get_by_id(self, user_id: UUID) -> FakeUser | None:
        return self.users.get(user_id)

    async def get_by_email(self, email: str) -> FakeUser | None:
        return next((item for item in self.users.values() if item.email == email), None)

    async def list_all(self) -> list[FakeUser]:
        return list(self.users.values())

    async def create(self, **fields: Any) -> FakeUser:
        user = FakeUser(id=uuid4(), **fields)
        self.users[user.id] = user
        return user

    async def update(self, user: FakeUser, **fields: Any) -> FakeUser:
        for name, value in fields.items():
            setattr(user, name, value)
        return user


class FakeInstructionRepository:
    def __init__(self) -> None:
        self.instructions: dict[UUID, FakeInstruction] = {}

    async def get_by_id(self, instruction_id: UUID) -> FakeInstruction | None:
        return self.instructions.get(instruction_id)

    async def create(self, **fields: Any) -> FakeInstruction:
        instruction = FakeInstruction(id=uuid4(), **fields)
        self.instructions[instruction.id] = instruction
        return instruction

    async def update(self, instruction: FakeInstruction, **fields: Any) -> FakeInstruction:
        for name, value in fields.items():
            setattr(instruction, name, value)
        return instruction

    async def delete(self, instruction: FakeInstruction) -> None:
        self.instructions.pop(instruction.id, None)

    async def find(
        self,
        platform: Platform | None = None,
        category: InstructionCategory | None = None,
        is_active: bool | None = None,
    ) -> list[FakeInstruction]:
        items = [
            item
            for item in self.instructions.values()
            if (platform is None or platform.value in item.platforms)
            and (category is None or item.category == category)
            and (is_active is None or item.is_active == is_active)
        ]
        return sorted(items, key=lambda item: (-item.priority, -item.created_at.timestamp()))

    async def list_active_for_platform(
        self, platform: Platform, category: InstructionCategory | None = None
    ) -> list[FakeInstruction]:
        return await self.find(platform=platform, category=category, is_active=True)

    async def set_active_many(
        self, instruction_ids: list[UUID], is_active: bool, updated_by: UUID | None
    ) -> int:
        modified = 0
        for instruction_id in instruction_ids:
            instruction = self.instructions.get(instruction_id)
            if instruction is None:
                continue
            instruction.is_active = is_active
            instruction.updated_by = updated_by
            modified += 1
        return modified


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list[tuple[list[str], RealtimeEvent, dict[str, Any]]] = []

    async def publish(
        self,
        channels: Sequence[str],
        event: RealtimeEvent,
        payload: Mapping[str, Any],
    ) -> None:
        self.events.append((list(channels), event, dict(payload)))

    def channels_for(self, event: RealtimeEvent) -> list[list[str]]:
        return [channels for channels, name, _ in self.events if name == event]


class FakeCompletionBackend:
    def __init__(self, reply: str | None = "Happy to help!") -> None:
        self.reply = reply
        self.calls: list[list[dict[str, str]]] = []

    async def complete(
        self,
        messages: Sequence[dict[str, str]],
        max_tokens: int,
        temperature: float,
        presence_penalty: float,
        frequency_penalty: float,
    ) -> str | None:
        self.calls.append(list(messages))
        return self.reply


@pytest.fixture
def session() -> DummySession:
    return DummySession()


@pytest.fixture
def conversations() -> FakeConversationRepository:
    return FakeConversationRepository()


@pytest.fixture
def messages() -> FakeMessageRepository:
    return FakeMessageRepository()


@pytest.fixture
def users() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def instructions() -> FakeInstructionRepository:
    return FakeInstructionRepository()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def backend() -> FakeCompletionBackend:
    return FakeCompletionBackend()
