from chatdesk.domain.enums import ConversationStatus


class InvalidConversationTransition(ValueError):
    def __init__(self, current: ConversationStatus, target: ConversationStatus) -> None:
        super().__init__(
            f"Cannot move conversation from '{current.value}' to '{target.value}'."
        )
        self.current = current
        self.target = target
