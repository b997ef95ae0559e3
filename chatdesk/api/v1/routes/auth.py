from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status

from chatdesk.api.deps import get_auth_service, get_current_user, require_admin
from chatdesk.core.rate_limit import RateLimitRule, rate_limited
from chatdesk.infra.db.models import User
from chatdesk.schemas.auth import (
    AuthSessionResponse,
    LoginRequest,
    RegisterRequest,
    UpdateDetailsRequest,
    UpdatePasswordRequest,
    UserResponse,
)
from chatdesk.schemas.common import ApiMessage, ApiResponse
from chatdesk.services.auth_service import AuthService, AuthSession
from chatdesk.services.errors import AuthenticationError, EmailAlreadyRegisteredError

router = APIRouter()

LOGIN_RATE_LIMIT = RateLimitRule(limit=10, window_seconds=60)


def _to_session_response(result: AuthSession) -> AuthSessionResponse:
    return AuthSessionResponse(
        access_token=result.access_token,
        token_type=result.token_type,
        expires_at=result.expires_at,
        user=UserResponse.model_validate(result.user),
    )


def _raise_for_service_error(exc: Exception) -> None:
    if isinstance(exc, AuthenticationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)
        ) from exc
    if isinstance(exc, EmailAlreadyRegisteredError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc


@router.post(
    "/register",
    response_model=ApiResponse[AuthSessionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    payload: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[AuthSessionResponse]:
    try:
        result = await service.register(payload.name, payload.email, payload.password)
    except (EmailAlreadyRegisteredError, ValueError) as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_session_response(result))


@router.post(
    "/login",
    response_model=ApiResponse[AuthSessionResponse],
    dependencies=[Depends(rate_limited("auth-login", LOGIN_RATE_LIMIT))],
)
async def login(
    payload: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[AuthSessionResponse]:
    try:
        result = await service.login(payload.email, payload.password)
    except AuthenticationError as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_session_response(result))


@router.get("/me", response_model=ApiResponse[UserResponse])
async def me(user: User = Depends(get_current_user)) -> ApiResponse[UserResponse]:
    return ApiResponse(data=UserResponse.model_validate(user))


@router.put("/updatedetails", response_model=ApiResponse[UserResponse])
async def update_details(
    payload: UpdateDetailsRequest,
    user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[UserResponse]:
    try:
        updated = await service.update_details(
            user,
            name=payload.name,
            email=payload.email,
            avatar_url=payload.avatar_url,
        )
    except (EmailAlreadyRegisteredError, ValueError) as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=UserResponse.model_validate(updated))


@router.put("/updatepassword", response_model=ApiResponse[AuthSessionResponse])
async def update_password(
    payload: UpdatePasswordRequest,
    user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[AuthSessionResponse]:
    try:
        result = await service.update_password(
            user, payload.current_password, payload.new_password
        )
    except (AuthenticationError, ValueError) as exc:
        _raise_for_service_error(exc)
    return ApiResponse(data=_to_session_response(result))


@router.post("/logout", response_model=ApiResponse[ApiMessage])
async def logout(user: User = Depends(get_current_user)) -> ApiResponse[ApiMessage]:
    # Tokens are stateless; the client discards its copy.
    return ApiResponse(
        data=ApiMessage(detail="Logged out", timestamp=datetime.now(UTC))
    )


@router.get("/users", response_model=ApiResponse[list[UserResponse]])
async def list_users(
    _: User = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[list[UserResponse]]:
    users = await service.list_users()
    return ApiResponse(data=[UserResponse.model_validate(item) for item in users])
