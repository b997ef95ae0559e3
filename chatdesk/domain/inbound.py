from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from chatdesk.domain.enums import MessageType, Platform


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """A customer message after platform-specific parsing."""

    platform: Platform
    customer_id: str
    content: str
    message_type: MessageType = MessageType.TEXT
    customer_name: str | None = None
    platform_id: str | None = None
    external_id: str | None = None
    reply_token: str | None = None
    credential_id: UUID | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        if self.customer_name and self.customer_name.strip():
            return self.customer_name.strip()
        return f"{self.platform.value.capitalize()} user {self.customer_id[-6:]}"

    def with_credential(self, credential_id: UUID | None) -> "InboundMessage":
        return replace(self, credential_id=credential_id)
