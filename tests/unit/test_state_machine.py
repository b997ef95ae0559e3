import pytest

from chatdesk.domain.enums import ConversationStatus
from chatdesk.domain.exceptions import InvalidConversationTransition
from chatdesk.domain.state_machine import ConversationLifecycle


def test_active_to_resolved_transition() -> None:
    next_state = ConversationLifecycle.transition(
        ConversationStatus.ACTIVE, ConversationStatus.RESOLVED
    )
    assert next_state == ConversationStatus.RESOLVED


def test_resolved_can_return_to_pending() -> None:
    next_state = ConversationLifecycle.transition(
        ConversationStatus.RESOLVED, ConversationStatus.PENDING
    )
    assert next_state == ConversationStatus.PENDING


def test_any_open_state_can_close() -> None:
    for status in (
        ConversationStatus.ACTIVE,
        ConversationStatus.PENDING,
        ConversationStatus.RESOLVED,
    ):
        assert (
            ConversationLifecycle.transition(status, ConversationStatus.CLOSED)
            == ConversationStatus.CLOSED
        )


def test_idempotent_close() -> None:
    next_state = ConversationLifecycle.transition(
        ConversationStatus.CLOSED, ConversationStatus.CLOSED
    )
    assert next_state == ConversationStatus.CLOSED


def test_closed_cannot_reopen() -> None:
    with pytest.raises(InvalidConversationTransition):
        ConversationLifecycle.transition(ConversationStatus.CLOSED, ConversationStatus.ACTIVE)


def test_customer_message_reactivates_waiting_states() -> None:
    assert (
        ConversationLifecycle.on_customer_message(ConversationStatus.PENDING)
        == ConversationStatus.ACTIVE
    )
    assert (
        ConversationLifecycle.on_customer_message(ConversationStatus.RESOLVED)
        == ConversationStatus.ACTIVE
    )
    assert (
        ConversationLifecycle.on_customer_message(ConversationStatus.ACTIVE)
        == ConversationStatus.ACTIVE
    )


def test_closed_is_read_only() -> None:
    assert ConversationLifecycle.is_read_only(ConversationStatus.CLOSED)
    assert not ConversationLifecycle.is_read_only(ConversationStatus.RESOLVED)
    assert not ConversationLifecycle.is_open(ConversationStatus.CLOSED)
    assert ConversationLifecycle.is_open(ConversationStatus.PENDING)
