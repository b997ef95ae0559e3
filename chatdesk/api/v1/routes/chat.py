from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from chatdesk.api.deps import get_conversation_service, get_current_user
from chatdesk.domain.enums import ConversationPriority, ConversationStatus, Platform
from chatdesk.infra.db.models import User
from chatdesk.infra.db.repositories import ConversationFilters
from chatdesk.schemas.common import ApiResponse, Page, Pagination
from chatdesk.schemas.conversation import (
    AgentMessageResponse,
    AssignConversationRequest,
    ConversationDetailResponse,
    ConversationResponse,
    ConversationStatsResponse,
    CreateConversationRequest,
    IngestResponse,
    UpdatePriorityRequest,
    UpdateStatusRequest,
    UpdateTagsRequest,
)
from chatdesk.schemas.message import MessageResponse, SendMessageRequest
from chatdesk.services.conversation_service import ConversationService, IngestResult
from chatdesk.services.errors import (
    ConversationClosedError,
    ConversationNotFoundError,
    ConversationStatusError,
    UserNotFoundError,
)

router = APIRouter()

UNASSIGNED = "unassigned"


def _to_conversation_response(conversation) -> ConversationResponse:
    return ConversationResponse.model_validate(conversation)


def _to_ingest_response(result: IngestResult) -> IngestResponse:
    return IngestResponse(
        conversation=_to_conversation_response(result.conversation),
        customer_message=MessageResponse.model_validate(result.customer_message),
        ai_message=(
            MessageResponse.model_validate(result.ai_message)
            if result.ai_message is not None
            else None
        ),
        created=result.created,
    )


def _raise_for_service_error(exc: Exception) -> None:
    if isinstance(exc, (ConversationNotFoundError, UserNotFoundError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, (ConversationClosedError, ConversationStatusError)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc


def _parse_assigned(raw: str | None) -> tuple[UUID | None, bool]:
    if raw is None or not raw.strip():
        return None, False
    if raw.strip().lower() == UNASSIGNED:
        return None, True
    try:
        return UUID(raw.strip()), False
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="assigned_agent must be a user id or 'unassigned'",
        ) from exc


@router.get("", response_model=ApiResponse[Page[ConversationResponse]])
async def list_conversations(
    platform: Platform | None = None,
    status_filter: ConversationStatus | None = Query(default=None, alias="status"),
    priority: ConversationPriority | None = None,
    assigned_agent: str | None = None,
    search: str | None = Query(default=None, max_length=200),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    _: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ApiResponse[Page[ConversationResponse]]:
    assigned_agent_id, unassigned_only = _parse_assigned(assigned_agent)
    result = await service.list_conversations(
        ConversationFilters(
            platform=platform,
            status=status_filter,
            priority=priority,
            assigned_agent_id=assigned_agent_id,
            unassigned_only=unassigned_only,
            search=search,
        ),
        page=page,
        limit=limit,
    )
    return ApiResponse(
        data=Page(
            items=[_to_conversation_response(item) for item in result.items],
            pagination=Pagination(
                page=result.page,
                limit=result.limit,
                total=result.total,
                pages=result.pages,
            ),
        )
    )


@router.get("/stats/overview", response_model=ApiResponse[ConversationStatsResponse])
async def conversation_stats(
    _: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ApiResponse[ConversationStatsResponse]:
    stats = await service.stats()
    return ApiResponse(
        data=ConversationStatsResponse(
            total_chats=stats.total,
            active_chats=stats.by_status.get(ConversationStatus.ACTIVE, 0),
            pending_chats=stats.by_status.get(ConversationStatus.PENDING, 0),
            resolved_chats=stats.by_status.get(ConversationStatus.RESOLVED, 0),
            closed_chats=stats.by_status.get(ConversationStatus.CLOSED, 0),
            new_chats_today=stats.new_today,
            total_ai_responses=stats.ai_responses,
            total_human_responses=stats.human_responses,
        )
    )


@router.post("", response_model=ApiResponse[IngestResponse])
async def create_conversation(
    payload: CreateConversationRequest,
    response: Response,
    _: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ApiResponse[IngestResponse]:
    try:
        result = await service.create_conversation(
            customer_id=payload.customer_id,
            customer_name=payload.customer_name,
            platform=payload.platform,
            message=payload.message,
            platform_id=payload.platform_id,
            message_type=payload.message_type,
        )
    except ValueError as exc:
        _raise_for_service_error(exc)
    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return ApiResponse(data=_to_ingest_response(result))


@router.get("/{conversation_id}", response_model=ApiResponse[ConversationDetailResponse])
async def get_conversation(
    conversation_id: UUID,
    _: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ApiResponse[ConversationDetailResponse]:
    try:
        detail = await service.get_conversation(conversation_id)
    except ConversationNotFoundError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(
        data=ConversationDetailResponse(
            conversation=_to_conversation_response(detail.conversation),
            messages=[MessageResponse.model_validate(item) for item in detail.messages],
        )
    )


@router.post(
    "/{conversation_id}/messages",
    response_model=ApiResponse[AgentMessageResponse],
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: UUID,
    payload: SendMessageRequest,
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ApiResponse[AgentMessageResponse]:
    try:
        result = await service.send_agent_message(
            conversation_id, user, payload.content, payload.type
        )
    except (ConversationNotFoundError, ValueError) as exc:
        _raise_for_service_error(exc)
    return ApiResponse(
        data=AgentMessageResponse(
            conversation=_to_conversation_response(result.conversation),
            message=MessageResponse.model_validate(result.message),
            delivered=result.delivered,
        )
    )


@router.put("/{conversation_id}/status", response_model=ApiResponse[ConversationResponse])
async def update_status(
    conversation_id: UUID,
    payload: UpdateStatusRequest,
    _: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ApiResponse[ConversationResponse]:
    try:
        conversation = await service.update_status(conversation_id, payload.status)
    except (ConversationNotFoundError, ValueError) as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_conversation_response(conversation))


@router.put("/{conversation_id}/priority", response_model=ApiResponse[ConversationResponse])
async def update_priority(
    conversation_id: UUID,
    payload: UpdatePriorityRequest,
    _: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ApiResponse[ConversationResponse]:
    try:
        conversation = await service.update_priority(conversation_id, payload.priority)
    except ConversationNotFoundError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_conversation_response(conversation))


@router.put("/{conversation_id}/assign", response_model=ApiResponse[ConversationResponse])
async def assign_conversation(
    conversation_id: UUID,
    payload: AssignConversationRequest,
    _: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ApiResponse[ConversationResponse]:
    try:
        conversation = await service.assign(conversation_id, payload.assigned_agent_id)
    except (ConversationNotFoundError, UserNotFoundError, ValueError) as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_conversation_response(conversation))


@router.put("/{conversation_id}/tags", response_model=ApiResponse[ConversationResponse])
async def update_tags(
    conversation_id: UUID,
    payload: UpdateTagsRequest,
    _: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ApiResponse[ConversationResponse]:
    try:
        conversation = await service.update_tags(conversation_id, payload.tags)
    except ConversationNotFoundError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_conversation_response(conversation))
