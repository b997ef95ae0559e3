import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.config import Settings
from chatdesk.domain.enums import Platform
from chatdesk.infra.db.repositories import PlatformCredentialRepository

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: dict[Platform, tuple[str, ...]] = {
    Platform.FACEBOOK: ("app_id", "app_secret", "page_access_token"),
    Platform.LINE: ("channel_access_token", "channel_secret"),
    Platform.TELEGRAM: ("bot_token",),
    Platform.INSTAGRAM: ("access_token",),
}

OPTIONAL_FIELDS: dict[Platform, tuple[str, ...]] = {
    Platform.FACEBOOK: ("verify_token",),
    Platform.LINE: (),
    Platform.TELEGRAM: ("secret_token",),
    Platform.INSTAGRAM: ("app_secret", "verify_token"),
}

SECRET_FIELDS = frozenset(
    {
        "app_secret",
        "page_access_token",
        "channel_access_token",
        "channel_secret",
        "bot_token",
        "secret_token",
        "access_token",
        "verify_token",
    }
)


def allowed_fields(platform: Platform) -> tuple[str, ...]:
    return REQUIRED_FIELDS.get(platform, ()) + OPTIONAL_FIELDS.get(platform, ())


def missing_fields(platform: Platform, values: dict[str, Any]) -> list[str]:
    return [name for name in REQUIRED_FIELDS.get(platform, ()) if not values.get(name)]


def mask_secret(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"


def mask_credentials(values: dict[str, Any]) -> dict[str, Any]:
    return {
        name: mask_secret(value) if name in SECRET_FIELDS else value
        for name, value in values.items()
    }


def default_credentials(settings: Settings, platform: Platform) -> dict[str, str]:
    """Environment-level credentials for a platform, without empty entries."""
    if platform == Platform.FACEBOOK:
        values = {
            "verify_token": settings.facebook_verify_token,
            "app_secret": settings.facebook_app_secret,
            "page_access_token": settings.facebook_page_access_token,
        }
    elif platform == Platform.INSTAGRAM:
        values = {
            "verify_token": settings.facebook_verify_token,
            "app_secret": settings.facebook_app_secret,
            "access_token": settings.instagram_access_token,
        }
    elif platform == Platform.LINE:
        values = {
            "channel_secret": settings.line_channel_secret,
            "channel_access_token": settings.line_channel_access_token,
        }
    elif platform == Platform.TELEGRAM:
        values = {
            "bot_token": settings.telegram_bot_token,
            "secret_token": settings.telegram_secret_token,
        }
    else:
        values = {}
    return {name: value for name, value in values.items() if value}


@dataclass(frozen=True, slots=True)
class ResolvedCredential:
    credential_id: UUID | None
    values: dict[str, Any] = field(default_factory=dict)

    @property
    def is_default(self) -> bool:
        return self.credential_id is None


class CredentialResolver:
    """Chooses which platform account a webhook or reply belongs to.

    Stored active credentials win. Environment defaults are only offered
    when no active stored credential of that platform exists.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        credentials: PlatformCredentialRepository | None = None,
    ) -> None:
        self.settings = settings
        self.credentials = credentials or PlatformCredentialRepository(session)

    async def candidates(self, platform: Platform) -> list[ResolvedCredential]:
        stored = await self.credentials.list_active(platform)
        if stored:
            return [
                ResolvedCredential(credential_id=item.id, values=dict(item.credentials or {}))
                for item in stored
            ]
        defaults = default_credentials(self.settings, platform)
        if defaults:
            return [ResolvedCredential(credential_id=None, values=defaults)]
        return []

    async def for_conversation(
        self, platform: Platform, credential_id: UUID | None
    ) -> dict[str, Any]:
        if credential_id is not None:
            credential = await self.credentials.get_by_id(credential_id)
            if credential is not None and credential.is_active:
                return dict(credential.credentials or {})
            logger.info(
                "Credential %s for %s is gone or inactive; falling back", credential_id, platform.value
            )
        candidates = await self.candidates(platform)
        if not candidates:
            return {}
        return candidates[0].values
