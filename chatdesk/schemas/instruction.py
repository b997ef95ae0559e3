from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from chatdesk.domain.enums import InstructionCategory, Platform


class InstructionCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=500)
    content: str = Field(min_length=1)
    category: InstructionCategory = InstructionCategory.GENERAL
    platforms: list[Platform] = Field(min_length=1)
    priority: int = Field(default=1, ge=1, le=10)
    tags: list[str] = Field(default_factory=list)
    is_active: bool = True


class InstructionUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, min_length=1, max_length=500)
    content: str | None = Field(default=None, min_length=1)
    category: InstructionCategory | None = None
    platforms: list[Platform] | None = Field(default=None, min_length=1)
    priority: int | None = Field(default=None, ge=1, le=10)
    tags: list[str] | None = None
    is_active: bool | None = None


class BulkStatusRequest(BaseModel):
    ids: list[UUID] = Field(min_length=1)
    is_active: bool


class BulkStatusResponse(BaseModel):
    modified_count: int


class InstructionResponse(BaseModel):
    id: UUID
    name: str
    description: str
    content: str
    category: InstructionCategory
    platforms: list[Platform]
    is_active: bool
    priority: int
    tags: list[str]
    created_by: UUID | None
    updated_by: UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InstructionSearchResult(BaseModel):
    instruction: InstructionResponse
    score: float
    snippet: str
    char_range: tuple[int, int] | None = None
