from chatdesk.domain.enums import ConversationStatus
from chatdesk.domain.exceptions import InvalidConversationTransition


class ConversationLifecycle:
    """Status rules: active <-> pending <-> resolved, any -> closed (terminal)."""

    _open_states = frozenset(
        {
            ConversationStatus.ACTIVE,
            ConversationStatus.PENDING,
            ConversationStatus.RESOLVED,
        }
    )

    @classmethod
    def transition(
        cls, current: ConversationStatus, target: ConversationStatus
    ) -> ConversationStatus:
        # Repeated dashboard clicks are no-ops.
        if current == target:
            return current
        if current == ConversationStatus.CLOSED:
            raise InvalidConversationTransition(current=current, target=target)
        return target

    @classmethod
    def on_customer_message(cls, current: ConversationStatus) -> ConversationStatus:
        if current in (ConversationStatus.PENDING, ConversationStatus.RESOLVED):
            return ConversationStatus.ACTIVE
        return current

    @classmethod
    def is_open(cls, status: ConversationStatus) -> bool:
        return status in cls._open_states

    @staticmethod
    def is_read_only(status: ConversationStatus) -> bool:
        return status == ConversationStatus.CLOSED
