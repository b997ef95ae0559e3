import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.domain.enums import (
    ConversationPriority,
    ConversationStatus,
    MessageSender,
    MessageType,
    Platform,
)
from chatdesk.domain.exceptions import InvalidConversationTransition
from chatdesk.domain.inbound import InboundMessage
from chatdesk.domain.state_machine import ConversationLifecycle
from chatdesk.infra.db.models import Conversation, Message, User
from chatdesk.infra.db.repositories import (
    ConversationFilters,
    ConversationRepository,
    DuplicateOpenConversationError,
    InstructionRepository,
    MessageRepository,
    UserRepository,
)
from chatdesk.infra.realtime.channels import (
    AGENTS_CHANNEL,
    conversation_channel,
    user_channel,
)
from chatdesk.infra.realtime.events import RealtimeEvent
from chatdesk.infra.realtime.publisher import NoopRealtimePublisher, RealtimePublisher
from chatdesk.integrations.messengers import PlatformMessenger
from chatdesk.services.credentials import CredentialResolver
from chatdesk.services.errors import (
    ConversationClosedError,
    ConversationNotFoundError,
    ConversationStatusError,
    EmptyMessageError,
    InactiveUserError,
    UserNotFoundError,
)
from chatdesk.services.history_cache import HistoryCache, HistoryEntry
from chatdesk.services.response_generator import GenerationContext, ResponseGenerator

logger = logging.getLogger(__name__)

AI_SENDER_NAME = "AI Assistant"


@dataclass(slots=True)
class IngestResult:
    conversation: Conversation
    customer_message: Message
    ai_message: Message | None
    created: bool
    delivered: bool | None = None


@dataclass(slots=True)
class ConversationPage:
    items: list[Conversation]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


@dataclass(slots=True)
class ConversationDetail:
    conversation: Conversation
    messages: list[Message]


@dataclass(slots=True)
class AgentMessageResult:
    conversation: Conversation
    message: Message
    delivered: bool


@dataclass(slots=True)
class ConversationStats:
    total: int
    by_status: dict[ConversationStatus, int]
    new_today: int
    ai_responses: int
    human_responses: int


class ConversationService:
    def __init__(
        self,
        session: AsyncSession,
        conversations: ConversationRepository | None = None,
        messages: MessageRepository | None = None,
        users: UserRepository | None = None,
        instructions: InstructionRepository | None = None,
        realtime: RealtimePublisher | None = None,
        generator: ResponseGenerator | None = None,
        history: HistoryCache | None = None,
        messenger: PlatformMessenger | None = None,
        credentials: CredentialResolver | None = None,
        auto_reply: bool = True,
        history_window: int = 10,
    ) -> None:
        self.session = session
        self.conversations = conversations or ConversationRepository(session)
        self.messages = messages or MessageRepository(session)
        self.users = users or UserRepository(session)
        self.instructions = instructions or InstructionRepository(session)
        self.realtime = realtime or NoopRealtimePublisher()
        self.generator = generator
        self.history = history
        self.messenger = messenger
        self.credentials = credentials
        self.auto_reply = auto_reply
        self.history_window = history_window

    async def ingest_inbound(self, inbound: InboundMessage) -> IngestResult:
        content = inbound.content.strip()
        if not content:
            raise EmptyMessageError()

        conversation, created = await self._open_conversation_for(inbound)

        customer_message = await self.messages.append(
            conversation_id=conversation.id,
            sender=MessageSender.CUSTOMER,
            content=content,
            message_type=inbound.message_type,
            sender_id=inbound.customer_id,
            sender_name=inbound.display_name,
            external_id=inbound.external_id,
            metadata_json={**inbound.metadata, "platform_sent_at": inbound.timestamp.isoformat()},
        )
        await self.conversations.record_message(
            conversation, MessageSender.CUSTOMER, customer_message.created_at
        )
        await self.session.commit()
        await self.session.refresh(conversation)

        self._remember(customer_message)
        await self._emit_message(conversation, customer_message, created=created)

        result = IngestResult(
            conversation=conversation,
            customer_message=customer_message,
            ai_message=None,
            created=created,
        )
        if not self.auto_reply or self.generator is None:
            return result

        reply = await self.generator.generate(
            GenerationContext(customer_name=conversation.customer_name, platform=conversation.platform),
            await self._history_for(conversation),
            self.instructions,
        )
        if reply is None:
            return result

        ai_message = await self.messages.append(
            conversation_id=conversation.id,
            sender=MessageSender.AI,
            content=reply,
            message_type=MessageType.TEXT,
            sender_name=AI_SENDER_NAME,
        )
        await self.conversations.record_message(
            conversation, MessageSender.AI, ai_message.created_at
        )
        await self.session.commit()
        await self.session.refresh(conversation)

        self._remember(ai_message)
        await self._emit_message(conversation, ai_message)

        result.ai_message = ai_message
        result.delivered = await self._deliver(conversation, reply, reply_token=inbound.reply_token)
        return result

    async def create_conversation(
        self,
        customer_id: str,
        customer_name: str | None,
        platform: Platform,
        message: str,
        platform_id: str | None = None,
        message_type: MessageType = MessageType.TEXT,
    ) -> IngestResult:
        return await self.ingest_inbound(
            InboundMessage(
                platform=platform,
                customer_id=customer_id,
                customer_name=customer_name,
                content=message,
                message_type=message_type,
                platform_id=platform_id,
            )
        )

    async def list_conversations(
        self,
        filters: ConversationFilters,
        page: int = 1,
        limit: int = 20,
    ) -> ConversationPage:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        items, total = await self.conversations.list_page(
            filters, offset=(page - 1) * limit, limit=limit
        )
        return ConversationPage(items=items, total=total, page=page, limit=limit)

    async def get_conversation(self, conversation_id: UUID) -> ConversationDetail:
        conversation = await self._get_conversation_or_raise(conversation_id)
        conversation_messages = await self.messages.list_by_conversation(conversation.id)
        return ConversationDetail(conversation=conversation, messages=conversation_messages)

    async def send_agent_message(
        self,
        conversation_id: UUID,
        agent: User,
        content: str,
        message_type: MessageType = MessageType.TEXT,
    ) -> AgentMessageResult:
        conversation = await self._get_conversation_or_raise(conversation_id)
        if ConversationLifecycle.is_read_only(conversation.status):
            raise ConversationClosedError(conversation.id)

        cleaned_content = content.strip()
        if not cleaned_content:
            raise EmptyMessageError()

        message = await self.messages.append(
            conversation_id=conversation.id,
            sender=MessageSender.AGENT,
            content=cleaned_content,
            message_type=message_type,
            sender_id=str(agent.id),
            sender_name=agent.name,
        )
        await self.conversations.record_message(
            conversation, MessageSender.AGENT, message.created_at
        )
        await self.session.commit()
        await self.session.refresh(conversation)

        self._remember(message)
        await self._emit_message(conversation, message)

        delivered = await self._deliver(conversation, cleaned_content)
        return AgentMessageResult(conversation=conversation, message=message, delivered=delivered)

    async def update_status(
        self, conversation_id: UUID, status: ConversationStatus
    ) -> Conversation:
        conversation = await self._get_conversation_or_raise(conversation_id)
        previous = conversation.status
        try:
            target = ConversationLifecycle.transition(previous, status)
        except InvalidConversationTransition as exc:
            raise ConversationStatusError(conversation.id, previous, status) from exc

        await self.conversations.set_status(conversation, target)
        await self.session.commit()
        await self.session.refresh(conversation)

        if target == ConversationStatus.CLOSED and self.history is not None:
            self.history.clear(str(conversation.id))

        await self._safe_publish(
            [conversation_channel(conversation.id)],
            RealtimeEvent.CHAT_STATUS_UPDATED,
            {
                "chat_id": str(conversation.id),
                "status": conversation.status.value,
                "previous_status": previous.value,
            },
        )
        await self._emit_chat_updated(conversation, [AGENTS_CHANNEL])
        return conversation

    async def update_priority(
        self, conversation_id: UUID, priority: ConversationPriority
    ) -> Conversation:
        conversation = await self._get_conversation_or_raise(conversation_id)
        await self.conversations.set_priority(conversation, priority)
        await self.session.commit()
        await self.session.refresh(conversation)

        await self._emit_chat_updated(
            conversation, [conversation_channel(conversation.id), AGENTS_CHANNEL]
        )
        return conversation

    async def assign(self, conversation_id: UUID, agent_id: UUID | None) -> Conversation:
        conversation = await self._get_conversation_or_raise(conversation_id)

        agent: User | None = None
        if agent_id is not None:
            agent = await self.users.get_by_id(agent_id)
            if agent is None:
                raise UserNotFoundError(agent_id)
            if not agent.is_active:
                raise InactiveUserError(agent_id)

        await self.conversations.assign_agent(conversation, agent_id)
        await self.session.commit()
        await self.session.refresh(conversation)

        payload = {
            "chat_id": str(conversation.id),
            "assigned_agent": self._agent_payload(agent) if agent is not None else None,
        }
        await self._safe_publish(
            [conversation_channel(conversation.id)], RealtimeEvent.CHAT_ASSIGNED, payload
        )
        await self._emit_chat_updated(conversation, [AGENTS_CHANNEL])
        if agent is not None:
            await self._safe_publish(
                [user_channel(agent.id)],
                RealtimeEvent.CHAT_ASSIGNED_TO_YOU,
                {"chat": self._conversation_payload(conversation)},
            )
        return conversation

    async def update_tags(self, conversation_id: UUID, tags: list[str]) -> Conversation:
        conversation = await self._get_conversation_or_raise(conversation_id)
        cleaned = [tag for tag in dict.fromkeys(tag.strip() for tag in tags) if tag]
        await self.conversations.set_tags(conversation, cleaned)
        await self.session.commit()
        await self.session.refresh(conversation)

        await self._emit_chat_updated(
            conversation, [conversation_channel(conversation.id), AGENTS_CHANNEL]
        )
        return conversation

    async def stats(self) -> ConversationStats:
        by_status = await self.conversations.count_by_status()
        today = datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
        new_today = await self.conversations.count_created_since(today)
        ai_total, human_total = await self.conversations.response_totals()
        return ConversationStats(
            total=sum(by_status.values()),
            by_status=by_status,
            new_today=new_today,
            ai_responses=ai_total,
            human_responses=human_total,
        )

    async def _open_conversation_for(self, inbound: InboundMessage) -> tuple[Conversation, bool]:
        conversation = await self.conversations.get_open_for_customer(
            inbound.customer_id, inbound.platform
        )
        if conversation is None:
            try:
                conversation = await self.conversations.create(
                    customer_id=inbound.customer_id,
                    customer_name=inbound.display_name,
                    platform=inbound.platform,
                    platform_id=self._platform_id_for(inbound),
                    platform_credential_id=inbound.credential_id,
                )
            except DuplicateOpenConversationError:
                # A concurrent ingest won the race; continue in its conversation.
                conversation = await self.conversations.get_open_for_customer(
                    inbound.customer_id, inbound.platform
                )
                if conversation is None:
                    raise
                logger.debug("Joined concurrently created conversation %s", conversation.id)
            else:
                return conversation, True

        reopened = ConversationLifecycle.on_customer_message(conversation.status)
        if reopened != conversation.status:
            await self.conversations.set_status(conversation, reopened)
        return conversation, False

    @staticmethod
    def _platform_id_for(inbound: InboundMessage) -> str:
        if inbound.platform_id:
            return inbound.platform_id
        if inbound.credential_id is not None:
            return str(inbound.credential_id)
        return inbound.platform.value

    async def _get_conversation_or_raise(self, conversation_id: UUID) -> Conversation:
        conversation = await self.conversations.get_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def _history_for(self, conversation: Conversation) -> list[HistoryEntry]:
        key = str(conversation.id)
        if self.history is not None:
            cached = self.history.get(key)
            if cached is not None:
                return cached[-self.history_window :]

        recent = await self.messages.list_recent(conversation.id, self.history_window)
        entries = [HistoryEntry(sender=item.sender, content=item.content) for item in recent]
        if self.history is not None:
            self.history.prime(key, entries)
        return entries

    def _remember(self, message: Message) -> None:
        if self.history is None:
            return
        self.history.append(
            str(message.conversation_id),
            HistoryEntry(sender=message.sender, content=message.content),
        )

    async def _deliver(
        self,
        conversation: Conversation,
        text: str,
        reply_token: str | None = None,
    ) -> bool:
        if self.messenger is None:
            return False
        try:
            credentials: dict[str, Any] = {}
            if self.credentials is not None:
                credentials = await self.credentials.for_conversation(
                    conversation.platform, conversation.platform_credential_id
                )
            return await self.messenger.deliver(
                conversation.platform,
                conversation.customer_id,
                text,
                credentials,
                reply_token=reply_token,
            )
        except Exception:
            logger.exception("Delivering reply for conversation %s failed", conversation.id)
            return False

    async def _emit_message(
        self,
        conversation: Conversation,
        message: Message,
        created: bool = False,
    ) -> None:
        await self._safe_publish(
            [conversation_channel(conversation.id)],
            RealtimeEvent.NEW_MESSAGE,
            {
                "chat_id": str(conversation.id),
                "message": self._message_payload(message),
            },
        )
        if created:
            await self._safe_publish(
                [AGENTS_CHANNEL],
                RealtimeEvent.NEW_CHAT,
                {"chat": self._conversation_payload(conversation)},
            )
        else:
            await self._emit_chat_updated(conversation, [AGENTS_CHANNEL])

    async def _emit_chat_updated(self, conversation: Conversation, channels: list[str]) -> None:
        await self._safe_publish(
            channels,
            RealtimeEvent.CHAT_UPDATED,
            {"chat": self._conversation_payload(conversation)},
        )

    async def _safe_publish(
        self,
        channels: list[str],
        event: RealtimeEvent,
        payload: dict[str, Any],
    ) -> None:
        try:
            await self.realtime.publish(channels, event, payload)
        except Exception:
            logger.warning("Realtime publish of %s failed", event.value, exc_info=True)

    @staticmethod
    def _conversation_payload(conversation: Conversation) -> dict[str, Any]:
        return {
            "id": str(conversation.id),
            "customer_id": conversation.customer_id,
            "customer_name": conversation.customer_name,
            "platform": conversation.platform.value,
            "platform_id": conversation.platform_id,
            "status": conversation.status.value,
            "priority": conversation.priority.value,
            "assigned_agent_id": (
                str(conversation.assigned_agent_id)
                if conversation.assigned_agent_id is not None
                else None
            ),
            "tags": list(conversation.tags or []),
            "ai_responses": conversation.ai_responses,
            "human_responses": conversation.human_responses,
            "last_message_at": conversation.last_message_at.isoformat(),
        }

    @staticmethod
    def _message_payload(message: Message) -> dict[str, Any]:
        return {
            "id": str(message.id),
            "chat_id": str(message.conversation_id),
            "sender": message.sender.value,
            "sender_id": message.sender_id,
            "sender_name": message.sender_name,
            "type": message.type.value,
            "content": message.content,
            "created_at": message.created_at.isoformat(),
        }

    @staticmethod
    def _agent_payload(agent: User) -> dict[str, Any]:
        return {
            "id": str(agent.id),
            "name": agent.name,
            "email": agent.email,
            "avatar_url": agent.avatar_url,
        }
