from uuid import UUID

AGENTS_CHANNEL = "agents"


def conversation_channel(conversation_id: UUID | str) -> str:
    return f"chat:{conversation_id}"


def user_channel(user_id: UUID | str) -> str:
    return f"user:{user_id}"
