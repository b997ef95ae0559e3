import hashlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.domain.enums import Platform, ThreadOutcome
from chatdesk.infra.db.models import Order
from chatdesk.infra.db.repositories import (
    MessageGroupStats,
    MessageRepository,
    OrderRepository,
    PlatformCredentialRepository,
    ThreadRepository,
)

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 100
COMPLETED_ORDER_STATUSES = frozenset({"completed", "confirmed", "shipped"})
AUTO_TAG_PREFIX = "auto:"
HIGH_VALUE_AMOUNT = 5000
LONG_CONVERSATION_MINUTES = 60

ProgressCallback = Callable[[int, int], None]


def thread_key_for(sender_id: str, bot_id: UUID | str | None, platform: Platform) -> str:
    raw = f"{sender_id}::{bot_id or 'default'}::{platform.value}"
    return "thread_" + hashlib.md5(raw.encode("utf-8")).hexdigest()[:16]


@dataclass(slots=True)
class OrderSummary:
    has_order: bool
    order_ids: list[str]
    ordered_products: list[str]
    order_status: str
    total_order_amount: float
    outcome: ThreadOutcome


@dataclass(slots=True)
class RebuildResult:
    total_groups: int
    processed_threads: int


def summarize_orders(orders: Sequence[Order]) -> OrderSummary:
    """Fold a customer's orders, oldest first, into thread order fields."""
    ordered_products: list[str] = []
    total_amount = 0.0
    latest_status = "unknown"
    for order in orders:
        if order.status:
            latest_status = order.status
        for item in order.items or []:
            product = item.get("product") if isinstance(item, dict) else None
            if product and product not in ordered_products:
                ordered_products.append(product)
        total_amount += float(order.total_amount or 0)

    if not orders:
        outcome = ThreadOutcome.UNKNOWN
    elif any(order.status in COMPLETED_ORDER_STATUSES for order in orders):
        outcome = ThreadOutcome.PURCHASED
    else:
        outcome = ThreadOutcome.PENDING

    return OrderSummary(
        has_order=bool(orders),
        order_ids=[str(order.id) for order in orders],
        ordered_products=ordered_products,
        order_status=latest_status,
        total_order_amount=total_amount,
        outcome=outcome,
    )


def auto_tags(
    existing: Sequence[str],
    outcome: ThreadOutcome,
    user_messages: int,
    has_order: bool,
    total_order_amount: float,
    duration_minutes: int,
) -> list[str]:
    tags = [tag for tag in existing if not tag.startswith(AUTO_TAG_PREFIX)]

    if outcome == ThreadOutcome.PURCHASED:
        tags.append("auto:purchased")

    if user_messages >= 20:
        tags.append("auto:high-engagement")
    elif user_messages >= 5:
        tags.append("auto:medium-engagement")
    else:
        tags.append("auto:low-engagement")

    if has_order and total_order_amount >= HIGH_VALUE_AMOUNT:
        tags.append("auto:high-value")
    if duration_minutes > LONG_CONVERSATION_MINUTES:
        tags.append("auto:long-conversation")

    return list(dict.fromkeys(tags))


class ThreadService:
    def __init__(
        self,
        session: AsyncSession,
        messages: MessageRepository | None = None,
        orders: OrderRepository | None = None,
        threads: ThreadRepository | None = None,
        credentials: PlatformCredentialRepository | None = None,
    ) -> None:
        self.session = session
        self.messages = messages or MessageRepository(session)
        self.orders = orders or OrderRepository(session)
        self.threads = threads or ThreadRepository(session)
        self.credentials = credentials or PlatformCredentialRepository(session)

    async def rebuild_all_threads(
        self, progress_callback: ProgressCallback | None = None
    ) -> RebuildResult:
        groups = await self.messages.group_stats()
        bot_names = {credential.id: credential.name for credential in await self.credentials.list_all()}

        total = len(groups)
        processed = 0
        for group in groups:
            await self._rebuild_group(group, bot_names.get(group.platform_credential_id))
            processed += 1
            if processed % PROGRESS_EVERY == 0:
                await self.session.commit()
                if progress_callback is not None:
                    progress_callback(processed, total)

        await self.session.commit()
        if progress_callback is not None and processed % PROGRESS_EVERY != 0:
            progress_callback(processed, total)

        logger.info("Rebuilt %d conversation threads", processed)
        return RebuildResult(total_groups=total, processed_threads=processed)

    async def summary(self) -> dict[str, int]:
        return {
            "threads": await self.threads.count(),
            "with_orders": await self.threads.count(has_order=True),
            "purchased": await self.threads.count(outcome=ThreadOutcome.PURCHASED),
        }

    async def _rebuild_group(self, group: MessageGroupStats, bot_name: str | None) -> None:
        thread_key = thread_key_for(group.customer_id, group.platform_credential_id, group.platform)

        duration_minutes = 0
        if group.first_message_at is not None and group.last_message_at is not None:
            elapsed = group.last_message_at - group.first_message_at
            duration_minutes = round(elapsed.total_seconds() / 60)

        orders = await self.orders.list_for_customer(
            group.customer_id,
            platform=group.platform,
            platform_credential_id=group.platform_credential_id,
        )
        summary = summarize_orders(orders)

        existing = await self.threads.get_by_key(thread_key)
        tags = auto_tags(
            existing.tags if existing is not None else [],
            outcome=summary.outcome,
            user_messages=group.user_messages,
            has_order=summary.has_order,
            total_order_amount=summary.total_order_amount,
            duration_minutes=duration_minutes,
        )

        await self.threads.upsert(
            thread_key,
            customer_id=group.customer_id,
            platform=group.platform,
            platform_credential_id=group.platform_credential_id,
            bot_name=bot_name,
            total_messages=group.total_messages,
            user_messages=group.user_messages,
            assistant_messages=group.assistant_messages,
            first_message_at=group.first_message_at,
            last_message_at=group.last_message_at,
            duration_minutes=duration_minutes,
            has_order=summary.has_order,
            order_ids=summary.order_ids,
            ordered_products=summary.ordered_products,
            order_status=summary.order_status,
            total_order_amount=summary.total_order_amount,
            outcome=summary.outcome,
            tags=tags,
        )
