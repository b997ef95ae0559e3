import hmac
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.security import verify_hmac_signature
from chatdesk.domain.enums import Platform
from chatdesk.domain.inbound import InboundMessage
from chatdesk.integrations.parsers import PARSERS
from chatdesk.services.conversation_service import ConversationService
from chatdesk.services.credentials import CredentialResolver, ResolvedCredential
from chatdesk.services.errors import MissingSignatureError, WebhookVerificationError

logger = logging.getLogger(__name__)

LINE_SIGNATURE_HEADER = "x-line-signature"
GRAPH_SIGNATURE_HEADER = "x-hub-signature-256"
TELEGRAM_SECRET_HEADER = "x-telegram-bot-api-secret-token"


@dataclass(slots=True)
class WebhookOutcome:
    received: int = 0
    ingested: int = 0
    failed: int = 0


class WebhookService:
    """Verifies platform webhooks and feeds their messages to the conversation service.

    Verification problems raise. Anything that goes wrong after the request
    is accepted is logged and counted, never raised, so platforms always get
    their acknowledgement.
    """

    def __init__(
        self,
        session: AsyncSession,
        resolver: CredentialResolver,
        conversations: ConversationService,
    ) -> None:
        self.session = session
        self.resolver = resolver
        self.conversations = conversations

    async def verify_subscription(
        self,
        platform: Platform,
        mode: str | None,
        verify_token: str | None,
        challenge: str | None,
    ) -> str:
        if mode != "subscribe" or not verify_token:
            raise WebhookVerificationError(platform, "Invalid subscription request")

        for candidate in await self.resolver.candidates(platform):
            expected = candidate.values.get("verify_token")
            if expected and hmac.compare_digest(str(expected), verify_token):
                logger.info("%s webhook subscription verified", platform.value)
                return challenge or ""
        raise WebhookVerificationError(platform, "Unknown verify token")

    async def handle(
        self,
        platform: Platform,
        body: bytes,
        headers: Mapping[str, str],
    ) -> WebhookOutcome:
        credential = await self._verify(platform, body, headers)

        outcome = WebhookOutcome()
        try:
            payload = json.loads(body or b"{}")
            if not isinstance(payload, dict):
                raise ValueError("Webhook body must be a JSON object")
            messages = PARSERS[platform](payload)
        except (ValueError, ValidationError) as exc:
            logger.warning("Ignoring unreadable %s webhook body: %s", platform.value, exc)
            return outcome

        outcome.received = len(messages)
        for message in messages:
            if credential is not None:
                message = message.with_credential(credential.credential_id)
            if await self._ingest(message):
                outcome.ingested += 1
            else:
                outcome.failed += 1
        return outcome

    async def _ingest(self, message: InboundMessage) -> bool:
        try:
            await self.conversations.ingest_inbound(message)
        except Exception:
            logger.exception(
                "Failed to ingest %s message from %s", message.platform.value, message.customer_id
            )
            await self._rollback()
            return False
        return True

    async def _rollback(self) -> None:
        try:
            await self.session.rollback()
        except Exception:
            logger.exception("Rollback after failed webhook ingest also failed")

    async def _verify(
        self,
        platform: Platform,
        body: bytes,
        headers: Mapping[str, str],
    ) -> ResolvedCredential | None:
        if platform == Platform.WEB:
            return None

        candidates = await self.resolver.candidates(platform)
        if platform == Platform.LINE:
            return self._verify_line(candidates, body, headers)
        if platform in (Platform.FACEBOOK, Platform.INSTAGRAM):
            return self._verify_graph(platform, candidates, body, headers)
        if platform == Platform.TELEGRAM:
            return self._verify_telegram(candidates, headers)
        raise WebhookVerificationError(platform, "No webhook receiver for this platform")

    @staticmethod
    def _verify_line(
        candidates: list[ResolvedCredential],
        body: bytes,
        headers: Mapping[str, str],
    ) -> ResolvedCredential | None:
        signature = headers.get(LINE_SIGNATURE_HEADER)
        if not signature:
            raise MissingSignatureError(LINE_SIGNATURE_HEADER)
        if not candidates:
            # Nothing configured yet; acknowledge unverified.
            logger.info("LINE webhook received but no LINE credentials are configured")
            return None
        return _first_match(
            candidates,
            "channel_secret",
            lambda secret: verify_hmac_signature(secret, body, signature, encoding="base64"),
            Platform.LINE,
        )

    @staticmethod
    def _verify_graph(
        platform: Platform,
        candidates: list[ResolvedCredential],
        body: bytes,
        headers: Mapping[str, str],
    ) -> ResolvedCredential | None:
        signed = [item for item in candidates if item.values.get("app_secret")]
        if not signed:
            return candidates[0] if candidates else None

        signature = headers.get(GRAPH_SIGNATURE_HEADER)
        if not signature:
            raise WebhookVerificationError(platform, "Missing signature")
        return _first_match(
            signed,
            "app_secret",
            lambda secret: verify_hmac_signature(secret, body, signature, encoding="hex"),
            platform,
        )

    @staticmethod
    def _verify_telegram(
        candidates: list[ResolvedCredential],
        headers: Mapping[str, str],
    ) -> ResolvedCredential | None:
        secured = [item for item in candidates if item.values.get("secret_token")]
        if not secured:
            return candidates[0] if candidates else None

        provided = headers.get(TELEGRAM_SECRET_HEADER)
        if not provided:
            raise WebhookVerificationError(Platform.TELEGRAM, "Missing secret token")
        return _first_match(
            secured,
            "secret_token",
            lambda secret: hmac.compare_digest(secret, provided),
            Platform.TELEGRAM,
        )


def _first_match(
    candidates: list[ResolvedCredential],
    field: str,
    check: Callable[[str], bool],
    platform: Platform,
) -> ResolvedCredential:
    for candidate in candidates:
        secret = candidate.values.get(field)
        if secret and check(str(secret)):
            return candidate
    raise WebhookVerificationError(platform)
