from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from chatdesk.api.deps import get_current_user, get_platform_service, require_admin
from chatdesk.domain.enums import Platform
from chatdesk.infra.db.models import PlatformCredential, User
from chatdesk.schemas.common import ApiResponse
from chatdesk.schemas.platform import (
    ConnectionTestResponse,
    CredentialStatsResponse,
    PlatformCatalogEntryResponse,
    PlatformCredentialCreateRequest,
    PlatformCredentialResponse,
    PlatformCredentialUpdateRequest,
)
from chatdesk.services.errors import (
    InvalidCredentialsConfigError,
    PlatformCredentialNotFoundError,
)
from chatdesk.services.platform_service import PlatformService

router = APIRouter()


def _to_response(credential: PlatformCredential) -> PlatformCredentialResponse:
    return PlatformCredentialResponse.model_validate(credential).model_copy(
        update={"is_valid": PlatformService.is_valid(credential)}
    )


def _raise_for_service_error(exc: Exception) -> None:
    if isinstance(exc, PlatformCredentialNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, (InvalidCredentialsConfigError, ValueError)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc


@router.get("/catalog", response_model=ApiResponse[list[PlatformCatalogEntryResponse]])
async def platform_catalog(
    _: User = Depends(get_current_user),
    service: PlatformService = Depends(get_platform_service),
) -> ApiResponse[list[PlatformCatalogEntryResponse]]:
    entries = await service.catalog()
    return ApiResponse(
        data=[
            PlatformCatalogEntryResponse(
                id=entry.id,
                name=entry.name,
                icon=entry.icon,
                color=entry.color,
                is_active=entry.is_active,
                has_config=entry.has_config,
                config=_to_response(entry.config) if entry.config is not None else None,
            )
            for entry in entries
        ]
    )


@router.get("", response_model=ApiResponse[list[PlatformCredentialResponse]])
async def list_credentials(
    platform: Platform | None = None,
    _: User = Depends(get_current_user),
    service: PlatformService = Depends(get_platform_service),
) -> ApiResponse[list[PlatformCredentialResponse]]:
    credentials = await service.list_credentials(platform)
    return ApiResponse(data=[_to_response(item) for item in credentials])


@router.post(
    "",
    response_model=ApiResponse[PlatformCredentialResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_credential(
    payload: PlatformCredentialCreateRequest,
    user: User = Depends(require_admin),
    service: PlatformService = Depends(get_platform_service),
) -> ApiResponse[PlatformCredentialResponse]:
    try:
        credential = await service.create_credential(
            owner_id=user.id,
            platform=payload.platform,
            name=payload.name,
            credentials=payload.credentials,
            webhook_url=payload.webhook_url,
            is_active=payload.is_active,
        )
    except ValueError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_response(credential))


@router.get("/{credential_id}", response_model=ApiResponse[PlatformCredentialResponse])
async def get_credential(
    credential_id: UUID,
    _: User = Depends(get_current_user),
    service: PlatformService = Depends(get_platform_service),
) -> ApiResponse[PlatformCredentialResponse]:
    try:
        credential = await service.get_credential(credential_id)
    except PlatformCredentialNotFoundError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_response(credential))


@router.put("/{credential_id}", response_model=ApiResponse[PlatformCredentialResponse])
async def update_credential(
    credential_id: UUID,
    payload: PlatformCredentialUpdateRequest,
    _: User = Depends(require_admin),
    service: PlatformService = Depends(get_platform_service),
) -> ApiResponse[PlatformCredentialResponse]:
    try:
        credential = await service.update_credential(
            credential_id,
            name=payload.name,
            credentials=payload.credentials,
            webhook_url=payload.webhook_url,
            is_active=payload.is_active,
        )
    except (PlatformCredentialNotFoundError, ValueError) as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_response(credential))


@router.delete("/{credential_id}", response_model=ApiResponse[dict])
async def delete_credential(
    credential_id: UUID,
    _: User = Depends(require_admin),
    service: PlatformService = Depends(get_platform_service),
) -> ApiResponse[dict]:
    try:
        await service.delete_credential(credential_id)
    except PlatformCredentialNotFoundError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data={})


@router.patch("/{credential_id}/toggle", response_model=ApiResponse[PlatformCredentialResponse])
async def toggle_credential(
    credential_id: UUID,
    _: User = Depends(require_admin),
    service: PlatformService = Depends(get_platform_service),
) -> ApiResponse[PlatformCredentialResponse]:
    try:
        credential = await service.toggle_credential(credential_id)
    except PlatformCredentialNotFoundError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_response(credential))


@router.post("/{credential_id}/test", response_model=ApiResponse[ConnectionTestResponse])
async def test_credential(
    credential_id: UUID,
    _: User = Depends(get_current_user),
    service: PlatformService = Depends(get_platform_service),
) -> ApiResponse[ConnectionTestResponse]:
    try:
        result = await service.test_connection(credential_id)
    except (PlatformCredentialNotFoundError, ValueError) as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=ConnectionTestResponse.model_validate(result))


@router.get("/{credential_id}/stats", response_model=ApiResponse[CredentialStatsResponse])
async def credential_stats(
    credential_id: UUID,
    period: str = Query(default="7d", max_length=8),
    _: User = Depends(get_current_user),
    service: PlatformService = Depends(get_platform_service),
) -> ApiResponse[CredentialStatsResponse]:
    try:
        stats = await service.stats(credential_id, period)
    except (PlatformCredentialNotFoundError, ValueError) as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=CredentialStatsResponse.model_validate(stats))
