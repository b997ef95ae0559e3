from enum import Enum


class Platform(str, Enum):
    FACEBOOK = "facebook"
    LINE = "line"
    TELEGRAM = "telegram"
    INSTAGRAM = "instagram"
    WHATSAPP = "whatsapp"
    WEB = "web"


# Channels that carry a stored credential set.
CREDENTIAL_PLATFORMS = (
    Platform.FACEBOOK,
    Platform.LINE,
    Platform.TELEGRAM,
    Platform.INSTAGRAM,
)


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ConversationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class MessageSender(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
    AI = "ai"


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    AUDIO = "audio"
    VIDEO = "video"
    STICKER = "sticker"
    LOCATION = "location"


class UserRole(str, Enum):
    ADMIN = "admin"
    AGENT = "agent"


class InstructionCategory(str, Enum):
    GREETING = "greeting"
    PRODUCT = "product"
    SUPPORT = "support"
    SALES = "sales"
    GENERAL = "general"
    CUSTOM = "custom"


class ThreadOutcome(str, Enum):
    PURCHASED = "purchased"
    PENDING = "pending"
    UNKNOWN = "unknown"
