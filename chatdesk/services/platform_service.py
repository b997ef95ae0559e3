import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.domain.enums import CREDENTIAL_PLATFORMS, ConversationStatus, Platform
from chatdesk.infra.db.models import PlatformCredential
from chatdesk.infra.db.repositories import (
    ConversationFilters,
    ConversationRepository,
    PlatformCredentialRepository,
)
from chatdesk.integrations.messengers import PlatformMessenger
from chatdesk.services.credentials import allowed_fields, mask_secret, missing_fields
from chatdesk.services.errors import (
    InvalidCredentialsConfigError,
    PlatformCredentialNotFoundError,
    UnsupportedPlatformError,
)

PLATFORM_CATALOG: tuple[dict[str, str], ...] = (
    {"id": "facebook", "name": "Facebook Messenger", "icon": "facebook", "color": "#1877F2"},
    {"id": "line", "name": "LINE", "icon": "line", "color": "#00B900"},
    {"id": "telegram", "name": "Telegram", "icon": "telegram", "color": "#0088CC"},
    {"id": "instagram", "name": "Instagram", "icon": "instagram", "color": "#E4405F"},
    {"id": "whatsapp", "name": "WhatsApp", "icon": "whatsapp", "color": "#25D366"},
    {"id": "web", "name": "Web Chat", "icon": "web", "color": "#6366F1"},
)

_PERIOD_PATTERN = re.compile(r"^(\d{1,3})([dh])$")


@dataclass(slots=True)
class CatalogEntry:
    id: Platform
    name: str
    icon: str
    color: str
    is_active: bool
    has_config: bool
    config: PlatformCredential | None


@dataclass(slots=True)
class ConnectionTestResult:
    platform: Platform
    name: str
    ok: bool
    message: str
    tested_at: datetime


@dataclass(slots=True)
class CredentialStats:
    total_chats: int
    active_chats: int
    pending_chats: int
    resolved_chats: int
    closed_chats: int
    period: str


def parse_period(period: str) -> timedelta:
    match = _PERIOD_PATTERN.match(period.strip().lower())
    if match is None:
        raise ValueError("Period must look like '7d' or '24h'.")
    amount, unit = int(match.group(1)), match.group(2)
    if amount < 1:
        raise ValueError("Period must be at least one unit long.")
    return timedelta(days=amount) if unit == "d" else timedelta(hours=amount)


class PlatformService:
    def __init__(
        self,
        session: AsyncSession,
        credentials: PlatformCredentialRepository | None = None,
        conversations: ConversationRepository | None = None,
        messenger: PlatformMessenger | None = None,
    ) -> None:
        self.session = session
        self.credentials = credentials or PlatformCredentialRepository(session)
        self.conversations = conversations or ConversationRepository(session)
        self.messenger = messenger

    async def catalog(self) -> list[CatalogEntry]:
        stored = await self.credentials.list_all()
        by_platform: dict[Platform, PlatformCredential] = {}
        for credential in stored:
            current = by_platform.get(credential.platform)
            # Prefer an active credential when a platform has several.
            if current is None or (credential.is_active and not current.is_active):
                by_platform[credential.platform] = credential

        entries: list[CatalogEntry] = []
        for item in PLATFORM_CATALOG:
            platform = Platform(item["id"])
            config = by_platform.get(platform)
            if platform == Platform.WEB:
                is_active, has_config = True, False
            else:
                is_active = config is not None and config.is_active
                has_config = config is not None
            entries.append(
                CatalogEntry(
                    id=platform,
                    name=item["name"],
                    icon=item["icon"],
                    color=item["color"],
                    is_active=is_active,
                    has_config=has_config,
                    config=config,
                )
            )
        return entries

    async def list_credentials(self, platform: Platform | None = None) -> list[PlatformCredential]:
        return await self.credentials.list_all(platform)

    async def get_credential(self, credential_id: UUID) -> PlatformCredential:
        credential = await self.credentials.get_by_id(credential_id)
        if credential is None:
            raise PlatformCredentialNotFoundError(credential_id)
        return credential

    async def create_credential(
        self,
        *,
        owner_id: UUID | None,
        platform: Platform,
        name: str,
        credentials: dict[str, Any],
        webhook_url: str | None = None,
        is_active: bool = True,
    ) -> PlatformCredential:
        if platform not in CREDENTIAL_PLATFORMS:
            raise UnsupportedPlatformError(platform.value)
        cleaned_name = name.strip()
        if not cleaned_name:
            raise ValueError("Credential name is required.")

        credential = await self.credentials.create(
            owner_id=owner_id,
            platform=platform,
            name=cleaned_name,
            credentials=self._clean_values(platform, credentials),
            webhook_url=webhook_url,
            is_active=is_active,
        )
        await self.session.commit()
        return credential

    async def update_credential(
        self,
        credential_id: UUID,
        *,
        name: str | None = None,
        credentials: dict[str, Any] | None = None,
        webhook_url: str | None = None,
        is_active: bool | None = None,
    ) -> PlatformCredential:
        credential = await self.get_credential(credential_id)
        fields: dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise ValueError("Credential name is required.")
            fields["name"] = name.strip()
        if credentials is not None:
            # Omitted keys and masked echoes keep their stored values.
            merged = dict(credential.credentials or {})
            for key, value in self._clean_values(credential.platform, credentials).items():
                if merged.get(key) and value == mask_secret(merged[key]):
                    continue
                merged[key] = value
            fields["credentials"] = merged
        if webhook_url is not None:
            fields["webhook_url"] = webhook_url or None
        if is_active is not None:
            fields["is_active"] = is_active

        credential = await self.credentials.update(credential, **fields)
        await self.session.commit()
        return credential

    async def delete_credential(self, credential_id: UUID) -> None:
        credential = await self.get_credential(credential_id)
        await self.credentials.delete(credential)
        await self.session.commit()

    async def toggle_credential(self, credential_id: UUID) -> PlatformCredential:
        credential = await self.get_credential(credential_id)
        credential = await self.credentials.update(credential, is_active=not credential.is_active)
        await self.session.commit()
        return credential

    @staticmethod
    def is_valid(credential: PlatformCredential) -> bool:
        return not missing_fields(credential.platform, credential.credentials or {})

    async def test_connection(self, credential_id: UUID) -> ConnectionTestResult:
        credential = await self.get_credential(credential_id)
        missing = missing_fields(credential.platform, credential.credentials or {})
        if missing:
            raise InvalidCredentialsConfigError(credential.platform, missing)

        if self.messenger is None:
            ok, message = False, "Platform messenger is not available"
        else:
            ok, message = await self.messenger.test_connection(
                credential.platform, credential.credentials or {}
            )
        return ConnectionTestResult(
            platform=credential.platform,
            name=credential.name,
            ok=ok,
            message=message,
            tested_at=datetime.now(UTC),
        )

    async def stats(self, credential_id: UUID, period: str = "7d") -> CredentialStats:
        credential = await self.get_credential(credential_id)
        since = datetime.now(UTC) - parse_period(period)

        counts: dict[ConversationStatus, int] = {}
        for status in ConversationStatus:
            counts[status] = await self.conversations.count(
                ConversationFilters(
                    platform_credential_id=credential.id,
                    status=status,
                    created_since=since,
                )
            )
        return CredentialStats(
            total_chats=sum(counts.values()),
            active_chats=counts[ConversationStatus.ACTIVE],
            pending_chats=counts[ConversationStatus.PENDING],
            resolved_chats=counts[ConversationStatus.RESOLVED],
            closed_chats=counts[ConversationStatus.CLOSED],
            period=period,
        )

    @staticmethod
    def _clean_values(platform: Platform, values: dict[str, Any]) -> dict[str, str]:
        allowed = set(allowed_fields(platform))
        return {
            key: str(value).strip()
            for key, value in values.items()
            if key in allowed and value is not None and str(value).strip()
        }
