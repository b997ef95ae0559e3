from enum import Enum


class RealtimeEvent(str, Enum):
    NEW_CHAT = "new-chat"
    NEW_MESSAGE = "new-message"
    CHAT_UPDATED = "chat-updated"
    CHAT_STATUS_UPDATED = "chat-status-updated"
    CHAT_ASSIGNED = "chat-assigned"
    CHAT_ASSIGNED_TO_YOU = "chat-assigned-to-you"
    USER_TYPING = "user-typing"
    USER_STATUS_CHANGED = "user-status-changed"


class SystemEvent(str, Enum):
    CONNECTED = "system.connected"
    JOINED = "system.joined"
    LEFT = "system.left"
    PONG = "system.pong"
    ERROR = "system.error"
