from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from chatdesk.domain.enums import Platform
from chatdesk.services.credentials import mask_credentials


class PlatformCredentialCreateRequest(BaseModel):
    platform: Platform
    name: str = Field(min_length=1, max_length=120)
    credentials: dict[str, str]
    webhook_url: str | None = Field(default=None, max_length=500)
    is_active: bool = True


class PlatformCredentialUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    credentials: dict[str, str] | None = None
    webhook_url: str | None = Field(default=None, max_length=500)
    is_active: bool | None = None


class PlatformCredentialResponse(BaseModel):
    id: UUID
    owner_id: UUID | None
    platform: Platform
    name: str
    is_active: bool
    is_valid: bool = False
    credentials: dict[str, Any]
    webhook_url: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("credentials")
    def _mask(self, value: dict[str, Any]) -> dict[str, Any]:
        return mask_credentials(value)


class PlatformCatalogEntryResponse(BaseModel):
    id: Platform
    name: str
    icon: str
    color: str
    is_active: bool
    has_config: bool
    config: PlatformCredentialResponse | None

    model_config = ConfigDict(from_attributes=True)


class ConnectionTestResponse(BaseModel):
    platform: Platform
    name: str
    ok: bool
    message: str
    tested_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CredentialStatsResponse(BaseModel):
    total_chats: int
    active_chats: int
    pending_chats: int
    resolved_chats: int
    closed_chats: int
    period: str

    model_config = ConfigDict(from_attributes=True)
