from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.config import Settings, get_settings
from chatdesk.core.security import create_access_token, hash_password, verify_password
from chatdesk.domain.enums import UserRole
from chatdesk.infra.db.models import User
from chatdesk.infra.db.repositories import UserRepository
from chatdesk.services.errors import AuthenticationError, EmailAlreadyRegisteredError

MIN_PASSWORD_LENGTH = 6


@dataclass(slots=True)
class AuthSession:
    access_token: str
    token_type: str
    expires_at: datetime
    user: User


class AuthService:
    def __init__(
        self,
        session: AsyncSession,
        users: UserRepository | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.session = session
        self.users = users or UserRepository(session)
        self.settings = settings or get_settings()

    async def register(self, name: str, email: str, password: str) -> AuthSession:
        normalized_email = self._normalize_email(email)
        cleaned_name = name.strip()
        if not cleaned_name:
            raise ValueError("Name is required.")
        self._check_password(password)

        if await self.users.get_by_email(normalized_email) is not None:
            raise EmailAlreadyRegisteredError(normalized_email)

        # Self-service sign-ups are always agents; admins are seeded or promoted.
        user = await self.users.create(
            name=cleaned_name,
            email=normalized_email,
            password_hash=hash_password(password),
            role=UserRole.AGENT,
            is_active=True,
        )
        await self.session.commit()
        return self._issue(user)

    async def login(self, email: str, password: str) -> AuthSession:
        normalized_email = email.strip().lower()
        if not normalized_email or not password:
            raise AuthenticationError()

        user = await self.users.get_by_email(normalized_email)
        if user is None:
            raise AuthenticationError()
        if not user.is_active:
            raise AuthenticationError("Account is inactive")
        if not verify_password(password, user.password_hash):
            raise AuthenticationError()

        user = await self.users.update(user, last_login_at=datetime.now(UTC))
        await self.session.commit()
        return self._issue(user)

    async def update_details(
        self,
        user: User,
        name: str | None = None,
        email: str | None = None,
        avatar_url: str | None = None,
    ) -> User:
        fields: dict = {}
        if name is not None:
            if not name.strip():
                raise ValueError("Name is required.")
            fields["name"] = name.strip()
        if email is not None:
            normalized_email = self._normalize_email(email)
            if normalized_email != user.email:
                existing = await self.users.get_by_email(normalized_email)
                if existing is not None and existing.id != user.id:
                    raise EmailAlreadyRegisteredError(normalized_email)
                fields["email"] = normalized_email
        if avatar_url is not None:
            fields["avatar_url"] = avatar_url.strip() or None

        if fields:
            user = await self.users.update(user, **fields)
            await self.session.commit()
        return user

    async def update_password(
        self, user: User, current_password: str, new_password: str
    ) -> AuthSession:
        if not verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")
        self._check_password(new_password)

        user = await self.users.update(user, password_hash=hash_password(new_password))
        await self.session.commit()
        return self._issue(user)

    async def list_users(self) -> list[User]:
        return await self.users.list_all()

    def _issue(self, user: User) -> AuthSession:
        token, expires_at = create_access_token(
            user_id=user.id,
            role=user.role,
            secret=self.settings.auth_secret,
            ttl_minutes=self.settings.auth_token_ttl_minutes,
        )
        return AuthSession(
            access_token=token,
            token_type="bearer",
            expires_at=expires_at,
            user=user,
        )

    @staticmethod
    def _normalize_email(email: str) -> str:
        normalized = email.strip().lower()
        if "@" not in normalized or normalized.startswith("@") or normalized.endswith("@"):
            raise ValueError("Please provide a valid email address.")
        return normalized

    @staticmethod
    def _check_password(password: str) -> None:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
            )
