from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from chatdesk.domain.enums import (
    ConversationPriority,
    ConversationStatus,
    MessageType,
    Platform,
)
from chatdesk.schemas.message import MessageResponse


class CreateConversationRequest(BaseModel):
    customer_id: str = Field(min_length=1, max_length=200)
    customer_name: str | None = Field(default=None, max_length=200)
    platform: Platform
    platform_id: str | None = Field(default=None, max_length=200)
    message: str = Field(min_length=1, max_length=4000)
    message_type: MessageType = MessageType.TEXT


class UpdateStatusRequest(BaseModel):
    status: ConversationStatus


class UpdatePriorityRequest(BaseModel):
    priority: ConversationPriority


class AssignConversationRequest(BaseModel):
    assigned_agent_id: UUID | None = None


class UpdateTagsRequest(BaseModel):
    tags: list[str] = Field(default_factory=list, max_length=50)


class ConversationResponse(BaseModel):
    id: UUID
    customer_id: str
    customer_name: str
    platform: Platform
    platform_id: str
    platform_credential_id: UUID | None
    status: ConversationStatus
    priority: ConversationPriority
    assigned_agent_id: UUID | None
    tags: list[str]
    ai_responses: int
    human_responses: int
    last_message_at: datetime
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationDetailResponse(BaseModel):
    conversation: ConversationResponse
    messages: list[MessageResponse]


class IngestResponse(BaseModel):
    conversation: ConversationResponse
    customer_message: MessageResponse
    ai_message: MessageResponse | None
    created: bool


class AgentMessageResponse(BaseModel):
    conversation: ConversationResponse
    message: MessageResponse
    delivered: bool


class ConversationStatsResponse(BaseModel):
    total_chats: int
    active_chats: int
    pending_chats: int
    resolved_chats: int
    closed_chats: int
    new_chats_today: int
    total_ai_responses: int
    total_human_responses: int
