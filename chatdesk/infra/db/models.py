from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from chatdesk.domain.enums import (
    ConversationPriority,
    ConversationStatus,
    InstructionCategory,
    MessageSender,
    MessageType,
    Platform,
    ThreadOutcome,
    UserRole,
)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


def _enum(enum_cls, name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole, "user_role"), nullable=False, default=UserRole.AGENT
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PlatformCredential(Base, TimestampMixin):
    __tablename__ = "platform_credentials"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    owner_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    platform: Mapped[Platform] = mapped_column(_enum(Platform, "platform"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    credentials: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    webhook_url: Mapped[str | None] = mapped_column(String(500), nullable=True)


class Conversation(Base, TimestampMixin):
    __tablename__ = "conversations"
    __table_args__ = (
        Index("ix_conversations_customer_platform", "customer_id", "platform"),
        Index("ix_conversations_status_agent", "status", "assigned_agent_id"),
        Index("ix_conversations_priority_status", "priority", "status"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    customer_id: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    platform: Mapped[Platform] = mapped_column(_enum(Platform, "platform"), nullable=False)
    platform_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    platform_credential_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("platform_credentials.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # "<platform>:<customer_id>" while the conversation is open, NULL once closed.
    open_key: Mapped[str | None] = mapped_column(String(260), nullable=True, unique=True)
    status: Mapped[ConversationStatus] = mapped_column(
        _enum(ConversationStatus, "conversation_status"),
        nullable=False,
        default=ConversationStatus.ACTIVE,
    )
    priority: Mapped[ConversationPriority] = mapped_column(
        _enum(ConversationPriority, "conversation_priority"),
        nullable=False,
        default=ConversationPriority.MEDIUM,
    )
    assigned_agent_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    ai_responses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    human_responses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_message_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )

    assigned_agent: Mapped[User | None] = relationship(lazy="raise")
    messages: Mapped[list["Message"]] = relationship(
        back_populates="conversation", lazy="raise", order_by="Message.created_at"
    )


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    conversation_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), index=True
    )
    sender: Mapped[MessageSender] = mapped_column(_enum(MessageSender, "message_sender"), nullable=False)
    sender_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    sender_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    type: Mapped[MessageType] = mapped_column(
        _enum(MessageType, "message_type"), nullable=False, default=MessageType.TEXT
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    conversation: Mapped[Conversation] = relationship(back_populates="messages", lazy="raise")


class Instruction(Base, TimestampMixin):
    __tablename__ = "instructions"
    __table_args__ = (Index("ix_instructions_active_category", "is_active", "category"),)

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[InstructionCategory] = mapped_column(
        _enum(InstructionCategory, "instruction_category"),
        nullable=False,
        default=InstructionCategory.GENERAL,
    )
    platforms: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_by: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    updated_by: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )


class Order(Base, TimestampMixin):
    __tablename__ = "orders"
    __table_args__ = (Index("ix_orders_customer_platform", "customer_id", "platform"),)

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    customer_id: Mapped[str] = mapped_column(String(200), nullable=False)
    platform: Mapped[Platform] = mapped_column(_enum(Platform, "platform"), nullable=False)
    platform_credential_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("platform_credentials.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(40), nullable=False, default="pending")
    items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    extracted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class ConversationThread(Base, TimestampMixin):
    __tablename__ = "conversation_threads"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    thread_key: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    customer_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    platform: Mapped[Platform] = mapped_column(_enum(Platform, "platform"), nullable=False)
    platform_credential_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    bot_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    total_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    user_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assistant_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    has_order: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    ordered_products: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    order_status: Mapped[str] = mapped_column(String(40), nullable=False, default="unknown")
    total_order_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    outcome: Mapped[ThreadOutcome] = mapped_column(
        _enum(ThreadOutcome, "thread_outcome"), nullable=False, default=ThreadOutcome.UNKNOWN
    )
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
