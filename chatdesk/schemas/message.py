from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from chatdesk.domain.enums import MessageSender, MessageType


class SendMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=4000)
    type: MessageType = MessageType.TEXT


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    sender: MessageSender
    sender_id: str | None
    sender_name: str | None
    type: MessageType
    content: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
