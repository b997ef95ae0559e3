from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.domain.enums import (
    ConversationPriority,
    ConversationStatus,
    InstructionCategory,
    MessageSender,
    MessageType,
    Platform,
)
from chatdesk.infra.db.models import (
    Conversation,
    ConversationThread,
    Instruction,
    Message,
    Order,
    PlatformCredential,
    User,
)


class DuplicateOpenConversationError(Exception):
    """Another open conversation already holds the (customer, platform) slot."""

    def __init__(self, open_key: str) -> None:
        super().__init__(f"An open conversation already exists for '{open_key}'")
        self.open_key = open_key


def open_key_for(platform: Platform, customer_id: str) -> str:
    return f"{platform.value}:{customer_id}"


@dataclass(slots=True)
class ConversationFilters:
    platform: Platform | None = None
    status: ConversationStatus | None = None
    priority: ConversationPriority | None = None
    assigned_agent_id: UUID | None = None
    unassigned_only: bool = False
    platform_credential_id: UUID | None = None
    search: str | None = None
    created_since: datetime | None = None


@dataclass(slots=True)
class MessageGroupStats:
    customer_id: str
    platform: Platform
    platform_credential_id: UUID | None
    total_messages: int
    user_messages: int
    assistant_messages: int
    first_message_at: datetime | None
    last_message_at: datetime | None


class ConversationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        return await self.session.get(Conversation, conversation_id)

    async def get_open_for_customer(
        self, customer_id: str, platform: Platform
    ) -> Conversation | None:
        stmt: Select[tuple[Conversation]] = (
            select(Conversation)
            .where(Conversation.open_key == open_key_for(platform, customer_id))
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        customer_id: str,
        customer_name: str,
        platform: Platform,
        platform_id: str,
        platform_credential_id: UUID | None = None,
    ) -> Conversation:
        open_key = open_key_for(platform, customer_id)
        conversation = Conversation(
            customer_id=customer_id,
            customer_name=customer_name,
            platform=platform,
            platform_id=platform_id,
            platform_credential_id=platform_credential_id,
            open_key=open_key,
            status=ConversationStatus.ACTIVE,
            priority=ConversationPriority.MEDIUM,
            tags=[],
            ai_responses=0,
            human_responses=0,
            last_message_at=datetime.now(UTC),
        )
        try:
            async with self.session.begin_nested():
                self.session.add(conversation)
                await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateOpenConversationError(open_key) from exc
        await self.session.refresh(conversation)
        return conversation

    async def list_page(
        self,
        filters: ConversationFilters,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Conversation], int]:
        conditions = self._conditions(filters)

        count_stmt = select(func.count(Conversation.id)).where(*conditions)
        total = int((await self.session.execute(count_stmt)).scalar_one() or 0)

        stmt: Select[tuple[Conversation]] = (
            select(Conversation)
            .where(*conditions)
            .order_by(Conversation.last_message_at.desc(), Conversation.id.asc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def record_message(
        self,
        conversation: Conversation,
        sender: MessageSender,
        timestamp: datetime,
    ) -> None:
        """Bump counters and last activity with a single atomic UPDATE."""
        values: dict[str, Any] = {
            "last_message_at": case(
                (Conversation.last_message_at < timestamp, timestamp),
                else_=Conversation.last_message_at,
            ),
            "updated_at": func.now(),
        }
        if sender == MessageSender.AI:
            values["ai_responses"] = Conversation.ai_responses + 1
        elif sender == MessageSender.AGENT:
            values["human_responses"] = Conversation.human_responses + 1

        await self.session.execute(
            update(Conversation)
            .where(Conversation.id == conversation.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def set_status(
        self, conversation: Conversation, status: ConversationStatus
    ) -> None:
        conversation.status = status
        if status == ConversationStatus.CLOSED:
            conversation.open_key = None
        await self.session.flush()

    async def set_priority(
        self, conversation: Conversation, priority: ConversationPriority
    ) -> None:
        conversation.priority = priority
        await self.session.flush()

    async def assign_agent(
        self, conversation: Conversation, agent_id: UUID | None
    ) -> None:
        conversation.assigned_agent_id = agent_id
        await self.session.flush()

    async def set_tags(self, conversation: Conversation, tags: list[str]) -> None:
        conversation.tags = list(tags)
        await self.session.flush()

    async def count_by_status(self) -> dict[ConversationStatus, int]:
        stmt = select(Conversation.status, func.count(Conversation.id)).group_by(
            Conversation.status
        )
        result = await self.session.execute(stmt)
        counts = {status: 0 for status in ConversationStatus}
        for status, count in result.all():
            counts[ConversationStatus(status)] = int(count)
        return counts

    async def count_created_since(self, since: datetime) -> int:
        stmt = select(func.count(Conversation.id)).where(Conversation.created_at >= since)
        return int((await self.session.execute(stmt)).scalar_one() or 0)

    async def response_totals(self) -> tuple[int, int]:
        stmt = select(
            func.coalesce(func.sum(Conversation.ai_responses), 0),
            func.coalesce(func.sum(Conversation.human_responses), 0),
        )
        ai_total, human_total = (await self.session.execute(stmt)).one()
        return int(ai_total), int(human_total)

    async def count(self, filters: ConversationFilters | None = None) -> int:
        conditions = self._conditions(filters or ConversationFilters())
        stmt = select(func.count(Conversation.id)).where(*conditions)
        return int((await self.session.execute(stmt)).scalar_one() or 0)

    @staticmethod
    def _conditions(filters: ConversationFilters) -> list:
        conditions: list = []
        if filters.platform is not None:
            conditions.append(Conversation.platform == filters.platform)
        if filters.status is not None:
            conditions.append(Conversation.status == filters.status)
        if filters.priority is not None:
            conditions.append(Conversation.priority == filters.priority)
        if filters.unassigned_only:
            conditions.append(Conversation.assigned_agent_id.is_(None))
        elif filters.assigned_agent_id is not None:
            conditions.append(Conversation.assigned_agent_id == filters.assigned_agent_id)
        if filters.platform_credential_id is not None:
            conditions.append(
                Conversation.platform_credential_id == filters.platform_credential_id
            )
        if filters.created_since is not None:
            conditions.append(Conversation.created_at >= filters.created_since)
        if filters.search and filters.search.strip():
            pattern = f"%{filters.search.strip().lower()}%"
            matching_messages = (
                select(Message.conversation_id)
                .where(func.lower(Message.content).like(pattern))
                .scalar_subquery()
            )
            conditions.append(
                or_(
                    func.lower(Conversation.customer_name).like(pattern),
                    Conversation.id.in_(matching_messages),
                )
            )
        return conditions


class MessageRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

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
    ) -> Message:
        message = Message(
            conversation_id=conversation_id,
            sender=sender,
            sender_id=sender_id,
            sender_name=sender_name,
            type=message_type,
            content=content,
            external_id=external_id,
            metadata_json=metadata_json,
            created_at=datetime.now(UTC),
        )
        self.session.add(message)
        await self.session.flush()
        return message

    async def list_by_conversation(self, conversation_id: UUID) -> list[Message]:
        stmt: Select[tuple[Message]] = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_recent(self, conversation_id: UUID, limit: int) -> list[Message]:
        stmt: Select[tuple[Message]] = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(reversed(result.scalars().all()))

    async def count_since(self, since: datetime) -> int:
        stmt = select(func.count(Message.id)).where(Message.created_at >= since)
        return int((await self.session.execute(stmt)).scalar_one() or 0)

    async def group_stats(self) -> list[MessageGroupStats]:
        assistant_senders = (MessageSender.AI, MessageSender.AGENT)
        stmt = (
            select(
                Conversation.customer_id,
                Conversation.platform,
                Conversation.platform_credential_id,
                func.count(Message.id),
                func.sum(case((Message.sender == MessageSender.CUSTOMER, 1), else_=0)),
                func.sum(case((Message.sender.in_(assistant_senders), 1), else_=0)),
                func.min(Message.created_at),
                func.max(Message.created_at),
            )
            .join(Conversation, Conversation.id == Message.conversation_id)
            .group_by(
                Conversation.customer_id,
                Conversation.platform,
                Conversation.platform_credential_id,
            )
        )
        result = await self.session.execute(stmt)
        return [
            MessageGroupStats(
                customer_id=row[0],
                platform=Platform(row[1]),
                platform_credential_id=row[2],
                total_messages=int(row[3] or 0),
                user_messages=int(row[4] or 0),
                assistant_messages=int(row[5] or 0),
                first_message_at=row[6],
                last_message_at=row[7],
            )
            for row in result.all()
        ]


class InstructionRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, instruction_id: UUID) -> Instruction | None:
        return await self.session.get(Instruction, instruction_id)

    async def create(self, **fields: Any) -> Instruction:
        instruction = Instruction(**fields)
        self.session.add(instruction)
        await self.session.flush()
        await self.session.refresh(instruction)
        return instruction

    async def update(self, instruction: Instruction, **fields: Any) -> Instruction:
        for name, value in fields.items():
            setattr(instruction, name, value)
        await self.session.flush()
        await self.session.refresh(instruction)
        return instruction

    async def delete(self, instruction: Instruction) -> None:
        await self.session.delete(instruction)
        await self.session.flush()

    async def find(
        self,
        platform: Platform | None = None,
        category: InstructionCategory | None = None,
        is_active: bool | None = None,
    ) -> list[Instruction]:
        conditions: list = []
        if category is not None:
            conditions.append(Instruction.category == category)
        if is_active is not None:
            conditions.append(Instruction.is_active.is_(is_active))

        stmt: Select[tuple[Instruction]] = (
            select(Instruction)
            .where(*conditions)
            .order_by(Instruction.priority.desc(), Instruction.created_at.desc())
        )
        result = await self.session.execute(stmt)
        instructions = list(result.scalars().all())
        # Platforms live in a JSON array and are filtered in Python.
        if platform is not None:
            instructions = [
                instruction
                for instruction in instructions
                if platform.value in (instruction.platforms or [])
            ]
        return instructions

    async def list_active_for_platform(
        self,
        platform: Platform,
        category: InstructionCategory | None = None,
    ) -> list[Instruction]:
        return await self.find(platform=platform, category=category, is_active=True)

    async def set_active_many(
        self, instruction_ids: list[UUID], is_active: bool, updated_by: UUID | None
    ) -> int:
        result = await self.session.execute(
            update(Instruction)
            .where(Instruction.id.in_(instruction_ids))
            .values(is_active=is_active, updated_by=updated_by, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)


class PlatformCredentialRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, credential_id: UUID) -> PlatformCredential | None:
        return await self.session.get(PlatformCredential, credential_id)

    async def list_all(self, platform: Platform | None = None) -> list[PlatformCredential]:
        stmt: Select[tuple[PlatformCredential]] = select(PlatformCredential)
        if platform is not None:
            stmt = stmt.where(PlatformCredential.platform == platform)
        stmt = stmt.order_by(PlatformCredential.created_at.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_active(self, platform: Platform) -> list[PlatformCredential]:
        stmt: Select[tuple[PlatformCredential]] = (
            select(PlatformCredential)
            .where(
                PlatformCredential.platform == platform,
                PlatformCredential.is_active.is_(True),
            )
            .order_by(PlatformCredential.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **fields: Any) -> PlatformCredential:
        credential = PlatformCredential(**fields)
        self.session.add(credential)
        await self.session.flush()
        await self.session.refresh(credential)
        return credential

    async def update(self, credential: PlatformCredential, **fields: Any) -> PlatformCredential:
        for name, value in fields.items():
            setattr(credential, name, value)
        await self.session.flush()
        await self.session.refresh(credential)
        return credential

    async def delete(self, credential: PlatformCredential) -> None:
        await self.session.delete(credential)
        await self.session.flush()

    async def count(self) -> int:
        stmt = select(func.count(PlatformCredential.id))
        return int((await self.session.execute(stmt)).scalar_one() or 0)


class UserRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        return await self.session.get(User, user_id)

    async def get_by_email(self, email: str) -> User | None:
        stmt: Select[tuple[User]] = select(User).where(User.email == email).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self) -> list[User]:
        stmt: Select[tuple[User]] = select(User).order_by(User.created_at.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **fields: Any) -> User:
        user = User(**fields)
        self.session.add(user)
        await self.session.flush()
        await self.session.refresh(user)
        return user

    async def update(self, user: User, **fields: Any) -> User:
        for name, value in fields.items():
            setattr(user, name, value)
        await self.session.flush()
        await self.session.refresh(user)
        return user

    async def count(self) -> int:
        stmt = select(func.count(User.id))
        return int((await self.session.execute(stmt)).scalar_one() or 0)


class OrderRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_for_customer(
        self,
        customer_id: str,
        platform: Platform | None = None,
        platform_credential_id: UUID | None = None,
    ) -> list[Order]:
        stmt: Select[tuple[Order]] = select(Order).where(Order.customer_id == customer_id)
        if platform is not None:
            stmt = stmt.where(Order.platform == platform)
        if platform_credential_id is not None:
            stmt = stmt.where(Order.platform_credential_id == platform_credential_id)
        # Oldest first: the last row seen carries the latest status.
        stmt = stmt.order_by(Order.extracted_at.asc(), Order.id.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class ThreadRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_key(self, thread_key: str) -> ConversationThread | None:
        stmt: Select[tuple[ConversationThread]] = (
            select(ConversationThread).where(ConversationThread.thread_key == thread_key).limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, thread_key: str, **fields: Any) -> ConversationThread:
        thread = await self.get_by_key(thread_key)
        if thread is None:
            thread = ConversationThread(thread_key=thread_key, **{"tags": [], **fields})
            self.session.add(thread)
        else:
            for name, value in fields.items():
                setattr(thread, name, value)
        await self.session.flush()
        return thread

    async def count(self, **conditions: Any) -> int:
        stmt = select(func.count(ConversationThread.id)).filter_by(**conditions)
        return int((await self.session.execute(stmt)).scalar_one() or 0)
