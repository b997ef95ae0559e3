from uuid import uuid4

import pytest

from chatdesk.domain.enums import InstructionCategory, Platform
from chatdesk.services.errors import InstructionNotFoundError, InstructionValidationError
from chatdesk.services.instruction_service import InstructionService

AUTHOR_ID = uuid4()


@pytest.fixture
def service(session, instructions) -> InstructionService:
    return InstructionService(session=session, instructions=instructions)


async def _create(service: InstructionService, **overrides):
    fields = {
        "author_id": AUTHOR_ID,
        "name": "Greeting",
        "description": "How to open a conversation",
        "content": "Greet the customer by name.",
        "category": InstructionCategory.GREETING,
        "platforms": [Platform.LINE, Platform.WEB],
    }
    fields.update(overrides)
    return await service.create_instruction(**fields)


@pytest.mark.asyncio
async def test_create_and_fetch_round_trip(service, session) -> None:
    created = await _create(service, name="  Greeting  ", tags=["tone", " tone", ""])

    fetched = await service.get_instruction(created.id)

    assert fetched.name == "Greeting"
    assert fetched.platforms == ["line", "web"]
    assert fetched.tags == ["tone"]
    assert fetched.created_by == AUTHOR_ID
    assert fetched.is_active
    assert session.commits == 1


@pytest.mark.asyncio
async def test_validation_rejects_bad_fields(service) -> None:
    with pytest.raises(InstructionValidationError, match="name"):
        await _create(service, name="   ")
    with pytest.raises(InstructionValidationError, match="platform"):
        await _create(service, platforms=[])
    with pytest.raises(InstructionValidationError, match="Priority"):
        await _create(service, priority=11)
    with pytest.raises(InstructionValidationError, match="100"):
        await _create(service, name="x" * 101)


@pytest.mark.asyncio
async def test_update_applies_only_given_fields(service) -> None:
    created = await _create(service)
    editor = uuid4()

    updated = await service.update_instruction(
        created.id, author_id=editor, priority=5, is_active=False, content=None
    )

    assert updated.priority == 5
    assert updated.is_active is False
    assert updated.content == "Greet the customer by name."
    assert updated.updated_by == editor


@pytest.mark.asyncio
async def test_list_filters_and_orders_by_priority(service) -> None:
    await _create(service, name="Low", priority=1)
    await _create(service, name="High", priority=9)
    await _create(service, name="Telegram", platforms=[Platform.TELEGRAM], priority=5)

    page = await service.list_instructions(platform=Platform.LINE, page=1, limit=10)
    for_telegram = await service.list_for_platform(Platform.TELEGRAM)

    assert [item.name for item in page.items] == ["High", "Low"]
    assert page.total == 2
    assert page.pages == 1
    assert [item.name for item in for_telegram] == ["Telegram"]


@pytest.mark.asyncio
async def test_inactive_instructions_are_not_used_for_platform(service) -> None:
    created = await _create(service)
    await service.bulk_set_active([created.id, created.id, uuid4()], False, AUTHOR_ID)

    assert await service.list_for_platform(Platform.LINE) == []


@pytest.mark.asyncio
async def test_bulk_status_counts_modified_rows(service) -> None:
    first = await _create(service, name="One")
    second = await _create(service, name="Two")

    modified = await service.bulk_set_active([first.id, second.id, uuid4()], False, AUTHOR_ID)

    assert modified == 2
    with pytest.raises(InstructionValidationError):
        await service.bulk_set_active([], True, AUTHOR_ID)


@pytest.mark.asyncio
async def test_delete_removes_instruction(service) -> None:
    created = await _create(service)

    await service.delete_instruction(created.id)

    with pytest.raises(InstructionNotFoundError):
        await service.get_instruction(created.id)


SHIPPING_TEXT = "We ship to Japan within 5 days. Customs fees are paid by the customer."


@pytest.mark.asyncio
async def test_search_ranks_phrase_match_first(service) -> None:
    shipping = await _create(
        service,
        name="Shipping",
        description="International delivery rules",
        content=SHIPPING_TEXT,
    )
    refunds = await _create(
        service,
        name="Refunds",
        description="Refund policy",
        content="Refunds within 14 days; ship the item back.",
    )
    await _create(
        service, name="Greeting", description="Opening lines", content="Say hello warmly."
    )

    hits = await service.search("Ship to Japan")

    assert [hit.instruction.id for hit in hits] == [shipping.id, refunds.id]
    assert hits[0].score == 1.0
    assert hits[0].snippet == SHIPPING_TEXT
    assert hits[0].char_range == (0, len(SHIPPING_TEXT))
    assert 0 < hits[1].score < 0.5
    assert [hit.instruction.id for hit in await service.search("ship to japan", limit=1)] == [
        shipping.id
    ]


@pytest.mark.asyncio
async def test_search_points_at_matching_chunk_of_long_content(service) -> None:
    content = "x " * 300 + "warranty claims need a receipt"
    await _create(service, name="Warranty", description="After-sales help", content=content)

    hits = await service.search("warranty claims need a receipt")

    assert hits[0].char_range == (450, len(content))
    assert "warranty claims need a receipt" in hits[0].snippet


@pytest.mark.asyncio
async def test_search_skips_inactive_unless_asked(service) -> None:
    hidden = await _create(service, name="Old shipping", content=SHIPPING_TEXT, is_active=False)

    assert await service.search("japan") == []
    included = await service.search("japan", include_inactive=True)
    assert [hit.instruction.id for hit in included] == [hidden.id]


@pytest.mark.asyncio
async def test_search_filters_by_platform_and_rejects_blank_query(service) -> None:
    await _create(service, name="Shipping", content=SHIPPING_TEXT, platforms=[Platform.LINE])

    assert await service.search("japan", platform=Platform.TELEGRAM) == []
    assert len(await service.search("japan", platform=Platform.LINE)) == 1
    with pytest.raises(InstructionValidationError, match="query"):
        await service.search("   ")
