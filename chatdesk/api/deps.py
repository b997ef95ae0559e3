from collections.abc import Callable
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.config import Settings, get_settings
from chatdesk.core.db import get_db_session
from chatdesk.core.security import decode_access_token
from chatdesk.domain.enums import UserRole
from chatdesk.infra.db.models import User
from chatdesk.infra.db.repositories import UserRepository
from chatdesk.services.auth_service import AuthService
from chatdesk.services.conversation_service import ConversationService
from chatdesk.services.credentials import CredentialResolver
from chatdesk.services.instruction_service import InstructionService
from chatdesk.services.platform_service import PlatformService
from chatdesk.services.webhook_service import WebhookService

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Not authorized to access this route") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def resolve_user_from_token(
    session: AsyncSession, token: str, settings: Settings
) -> User | None:
    """Return the active user a bearer token belongs to, or None."""
    try:
        claims = decode_access_token(token, settings.auth_secret)
    except ValueError:
        return None
    user = await UserRepository(session).get_by_id(claims.user_id)
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_db_session),
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized()

    user = await resolve_user_from_token(session, credentials.credentials, get_settings())
    if user is None:
        raise _unauthorized("Invalid or expired session")
    return user


def require_roles(*roles: UserRole) -> Callable:
    async def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User role {user.role.value} is not authorized to access this route",
            )
        return user

    return dependency


require_admin = require_roles(UserRole.ADMIN)


def parse_uuid(raw: object) -> UUID | None:
    # Socket frames carry arbitrary JSON; only strings can name a row.
    if not isinstance(raw, str):
        return None
    try:
        return UUID(raw)
    except ValueError:
        return None


def build_conversation_service(app: FastAPI, session: AsyncSession) -> ConversationService:
    settings = get_settings()
    state = app.state
    return ConversationService(
        session=session,
        realtime=getattr(state, "realtime_hub", None),
        generator=getattr(state, "response_generator", None),
        history=getattr(state, "history_cache", None),
        messenger=getattr(state, "messenger", None),
        credentials=CredentialResolver(session, settings),
        auto_reply=settings.auto_reply_enabled,
        history_window=settings.completion_history_window,
    )


async def get_conversation_service(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> ConversationService:
    return build_conversation_service(request.app, session)


async def get_webhook_service(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> WebhookService:
    return WebhookService(
        session=session,
        resolver=CredentialResolver(session, get_settings()),
        conversations=build_conversation_service(request.app, session),
    )


async def get_auth_service(
    session: AsyncSession = Depends(get_db_session),
) -> AuthService:
    return AuthService(session=session)


async def get_instruction_service(
    session: AsyncSession = Depends(get_db_session),
) -> InstructionService:
    return InstructionService(session=session)


async def get_platform_service(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> PlatformService:
    return PlatformService(
        session=session,
        messenger=getattr(request.app.state, "messenger", None),
    )
