from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from chatdesk.api.deps import get_current_user, get_instruction_service, require_admin
from chatdesk.domain.enums import InstructionCategory, Platform
from chatdesk.infra.db.models import User
from chatdesk.schemas.common import ApiResponse, Page, Pagination
from chatdesk.schemas.instruction import (
    BulkStatusRequest,
    BulkStatusResponse,
    InstructionCreateRequest,
    InstructionResponse,
    InstructionSearchResult,
    InstructionUpdateRequest,
)
from chatdesk.services.errors import InstructionNotFoundError
from chatdesk.services.instruction_service import InstructionService

router = APIRouter()


def _to_response(instruction) -> InstructionResponse:
    return InstructionResponse.model_validate(instruction)


def _raise_for_service_error(exc: Exception) -> None:
    if isinstance(exc, InstructionNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc


@router.get("", response_model=ApiResponse[Page[InstructionResponse]])
async def list_instructions(
    platform: Platform | None = None,
    category: InstructionCategory | None = None,
    is_active: bool | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    _: User = Depends(get_current_user),
    service: InstructionService = Depends(get_instruction_service),
) -> ApiResponse[Page[InstructionResponse]]:
    result = await service.list_instructions(
        platform=platform,
        category=category,
        is_active=is_active,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        data=Page(
            items=[_to_response(item) for item in result.items],
            pagination=Pagination(
                page=result.page,
                limit=result.limit,
                total=result.total,
                pages=result.pages,
            ),
        )
    )


@router.get("/platform/{platform}", response_model=ApiResponse[list[InstructionResponse]])
async def list_platform_instructions(
    platform: Platform,
    category: InstructionCategory | None = None,
    _: User = Depends(get_current_user),
    service: InstructionService = Depends(get_instruction_service),
) -> ApiResponse[list[InstructionResponse]]:
    items = await service.list_for_platform(platform, category)
    return ApiResponse(data=[_to_response(item) for item in items])


@router.get("/search", response_model=ApiResponse[list[InstructionSearchResult]])
async def search_instructions(
    q: str = Query(min_length=1, max_length=200),
    platform: Platform | None = None,
    include_inactive: bool = False,
    limit: int = Query(default=5, ge=1, le=20),
    _: User = Depends(get_current_user),
    service: InstructionService = Depends(get_instruction_service),
) -> ApiResponse[list[InstructionSearchResult]]:
    try:
        hits = await service.search(
            q, platform=platform, include_inactive=include_inactive, limit=limit
        )
    except ValueError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(
        data=[
            InstructionSearchResult(
                instruction=_to_response(hit.instruction),
                score=hit.score,
                snippet=hit.snippet,
                char_range=hit.char_range,
            )
            for hit in hits
        ]
    )


@router.put("/bulk/status", response_model=ApiResponse[BulkStatusResponse])
async def bulk_update_status(
    payload: BulkStatusRequest,
    user: User = Depends(require_admin),
    service: InstructionService = Depends(get_instruction_service),
) -> ApiResponse[BulkStatusResponse]:
    try:
        modified = await service.bulk_set_active(payload.ids, payload.is_active, user.id)
    except ValueError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=BulkStatusResponse(modified_count=modified))


@router.get("/{instruction_id}", response_model=ApiResponse[InstructionResponse])
async def get_instruction(
    instruction_id: UUID,
    _: User = Depends(get_current_user),
    service: InstructionService = Depends(get_instruction_service),
) -> ApiResponse[InstructionResponse]:
    try:
        instruction = await service.get_instruction(instruction_id)
    except InstructionNotFoundError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_response(instruction))


@router.post(
    "",
    response_model=ApiResponse[InstructionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_instruction(
    payload: InstructionCreateRequest,
    user: User = Depends(get_current_user),
    service: InstructionService = Depends(get_instruction_service),
) -> ApiResponse[InstructionResponse]:
    try:
        instruction = await service.create_instruction(
            author_id=user.id,
            name=payload.name,
            description=payload.description,
            content=payload.content,
            category=payload.category,
            platforms=payload.platforms,
            priority=payload.priority,
            tags=payload.tags,
            is_active=payload.is_active,
        )
    except ValueError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_response(instruction))


@router.put("/{instruction_id}", response_model=ApiResponse[InstructionResponse])
async def update_instruction(
    instruction_id: UUID,
    payload: InstructionUpdateRequest,
    user: User = Depends(get_current_user),
    service: InstructionService = Depends(get_instruction_service),
) -> ApiResponse[InstructionResponse]:
    try:
        instruction = await service.update_instruction(
            instruction_id,
            author_id=user.id,
            **payload.model_dump(exclude_unset=True),
        )
    except (InstructionNotFoundError, ValueError) as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_response(instruction))


@router.delete("/{instruction_id}", response_model=ApiResponse[dict])
async def delete_instruction(
    instruction_id: UUID,
    _: User = Depends(require_admin),
    service: InstructionService = Depends(get_instruction_service),
) -> ApiResponse[dict]:
    try:
        await service.delete_instruction(instruction_id)
    except InstructionNotFoundError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data={})
