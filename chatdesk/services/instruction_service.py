import re
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.domain.enums import InstructionCategory, Platform
from chatdesk.infra.db.models import Instruction
from chatdesk.infra.db.repositories import InstructionRepository
from chatdesk.services.errors import InstructionNotFoundError, InstructionValidationError

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
MIN_PRIORITY = 1
MAX_PRIORITY = 10
SEARCH_CHUNK_SIZE = 500
SEARCH_CHUNK_OVERLAP = 50
SEARCH_MAX_RESULTS = 20
SNIPPET_LENGTH = 200

_WORD_SPLIT = re.compile(r"[\s|,;:]+")


@dataclass(slots=True)
class InstructionPage:
    items: list[Instruction]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


@dataclass(slots=True)
class InstructionSearchHit:
    instruction: Instruction
    score: float
    snippet: str
    char_range: tuple[int, int] | None = None


def _keyword_score(text: str, phrase: str, keywords: list[str]) -> float:
    """Score one passage between 0 and 1.

    A verbatim phrase match is worth 10, each keyword found in the passage 3,
    and each passage word that overlaps a keyword 1. The sum is normalised by
    the best score a passage could get without partial word overlaps.
    """
    score = 10 if phrase in text else 0
    words = [word for word in _WORD_SPLIT.split(text) if word]
    for keyword in keywords:
        if keyword in text:
            score += 3
        score += sum(1 for word in words if keyword in word or word in keyword)
    return min(score / (10 + len(keywords) * 3), 1.0)


def _passages(instruction: Instruction) -> list[tuple[str, tuple[int, int] | None]]:
    fields = (instruction.name, instruction.description, " ".join(instruction.tags))
    summary = " | ".join(part for part in fields if part)
    passages: list[tuple[str, tuple[int, int] | None]] = [(summary, None)]
    content = instruction.content
    step = SEARCH_CHUNK_SIZE - SEARCH_CHUNK_OVERLAP
    for start in range(0, len(content), step):
        end = min(start + SEARCH_CHUNK_SIZE, len(content))
        passages.append((content[start:end], (start, end)))
    return passages


class InstructionService:
    def __init__(
        self,
        session: AsyncSession,
        instructions: InstructionRepository | None = None,
    ) -> None:
        self.session = session
        self.instructions = instructions or InstructionRepository(session)

    async def list_instructions(
        self,
        platform: Platform | None = None,
        category: InstructionCategory | None = None,
        is_active: bool | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> InstructionPage:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        matches = await self.instructions.find(
            platform=platform, category=category, is_active=is_active
        )
        start = (page - 1) * limit
        return InstructionPage(
            items=matches[start : start + limit],
            total=len(matches),
            page=page,
            limit=limit,
        )

    async def get_instruction(self, instruction_id: UUID) -> Instruction:
        instruction = await self.instructions.get_by_id(instruction_id)
        if instruction is None:
            raise InstructionNotFoundError(instruction_id)
        return instruction

    async def list_for_platform(
        self,
        platform: Platform,
        category: InstructionCategory | None = None,
    ) -> list[Instruction]:
        return await self.instructions.list_active_for_platform(platform, category)

    async def search(
        self,
        query: str,
        platform: Platform | None = None,
        include_inactive: bool = False,
        limit: int = 5,
    ) -> list[InstructionSearchHit]:
        """Keyword search over instruction text, best passage per instruction."""
        phrase = query.strip().lower()
        if not phrase:
            raise InstructionValidationError("Search query is required.")
        keywords = phrase.split()
        limit = min(max(limit, 1), SEARCH_MAX_RESULTS)

        candidates = await self.instructions.find(
            platform=platform, is_active=None if include_inactive else True
        )
        hits: list[InstructionSearchHit] = []
        for instruction in candidates:
            best: tuple[float, str, tuple[int, int] | None] | None = None
            for text, char_range in _passages(instruction):
                score = _keyword_score(text.lower(), phrase, keywords)
                if score > 0 and (best is None or score > best[0]):
                    best = (score, text, char_range)
            if best is None:
                continue
            score, text, char_range = best
            snippet = text[:SNIPPET_LENGTH] + ("..." if len(text) > SNIPPET_LENGTH else "")
            hits.append(
                InstructionSearchHit(
                    instruction=instruction,
                    score=round(score, 2),
                    snippet=snippet,
                    char_range=char_range,
                )
            )

        # Stable sort keeps the repository's priority order among equal scores.
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    async def create_instruction(
        self,
        *,
        author_id: UUID,
        name: str,
        description: str,
        content: str,
        category: InstructionCategory = InstructionCategory.GENERAL,
        platforms: list[Platform],
        priority: int = 1,
        tags: list[str] | None = None,
        is_active: bool = True,
    ) -> Instruction:
        fields = self._validated(
            name=name,
            description=description,
            content=content,
            category=category,
            platforms=platforms,
            priority=priority,
            tags=tags or [],
        )
        instruction = await self.instructions.create(
            **fields,
            is_active=is_active,
            created_by=author_id,
            updated_by=author_id,
        )
        await self.session.commit()
        return instruction

    async def update_instruction(
        self,
        instruction_id: UUID,
        *,
        author_id: UUID,
        **changes: Any,
    ) -> Instruction:
        instruction = await self.get_instruction(instruction_id)
        is_active = changes.pop("is_active", None)
        fields = self._validated(**{key: value for key, value in changes.items() if value is not None})
        if is_active is not None:
            fields["is_active"] = bool(is_active)

        instruction = await self.instructions.update(
            instruction, **fields, updated_by=author_id
        )
        await self.session.commit()
        return instruction

    async def delete_instruction(self, instruction_id: UUID) -> None:
        instruction = await self.get_instruction(instruction_id)
        await self.instructions.delete(instruction)
        await self.session.commit()

    async def bulk_set_active(
        self,
        instruction_ids: list[UUID],
        is_active: bool,
        author_id: UUID,
    ) -> int:
        if not instruction_ids:
            raise InstructionValidationError("Provide at least one instruction id.")
        modified = await self.instructions.set_active_many(
            list(dict.fromkeys(instruction_ids)), is_active, author_id
        )
        await self.session.commit()
        return modified

    @staticmethod
    def _validated(**fields: Any) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}

        if "name" in fields:
            name = str(fields["name"]).strip()
            if not name:
                raise InstructionValidationError("Instruction name is required.")
            if len(name) > NAME_MAX_LENGTH:
                raise InstructionValidationError(
                    f"Name cannot be more than {NAME_MAX_LENGTH} characters."
                )
            cleaned["name"] = name

        if "description" in fields:
            description = str(fields["description"]).strip()
            if not description:
                raise InstructionValidationError("Instruction description is required.")
            if len(description) > DESCRIPTION_MAX_LENGTH:
                raise InstructionValidationError(
                    f"Description cannot be more than {DESCRIPTION_MAX_LENGTH} characters."
                )
            cleaned["description"] = description

        if "content" in fields:
            content = str(fields["content"]).strip()
            if not content:
                raise InstructionValidationError("Instruction content is required.")
            cleaned["content"] = content

        if "category" in fields:
            cleaned["category"] = InstructionCategory(fields["category"])

        if "platforms" in fields:
            platforms = [Platform(item) for item in fields["platforms"]]
            if not platforms:
                raise InstructionValidationError("Select at least one platform.")
            cleaned["platforms"] = [platform.value for platform in dict.fromkeys(platforms)]

        if "priority" in fields:
            priority = int(fields["priority"])
            if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
                raise InstructionValidationError(
                    f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}."
                )
            cleaned["priority"] = priority

        if "tags" in fields:
            cleaned["tags"] = [
                tag for tag in dict.fromkeys(str(item).strip() for item in fields["tags"]) if tag
            ]

        return cleaned
