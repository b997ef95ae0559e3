"""Platform webhook payloads and their translation into ``InboundMessage``.

Each ``parse_<platform>`` function accepts the platform's native JSON body
(already decoded) and returns zero or more normalized messages. Events
that carry no customer message, such as follows, delivery receipts and
echoes of our own sends, produce nothing.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from chatdesk.domain.enums import MessageType, Platform
from chatdesk.domain.inbound import InboundMessage

_LINE_TYPES: dict[str, MessageType] = {
    "text": MessageType.TEXT,
    "image": MessageType.IMAGE,
    "video": MessageType.VIDEO,
    "audio": MessageType.AUDIO,
    "file": MessageType.FILE,
    "location": MessageType.LOCATION,
    "sticker": MessageType.STICKER,
}

_GRAPH_ATTACHMENT_TYPES: dict[str, MessageType] = {
    "image": MessageType.IMAGE,
    "video": MessageType.VIDEO,
    "audio": MessageType.AUDIO,
    "file": MessageType.FILE,
    "location": MessageType.LOCATION,
}


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def placeholder(message_type: MessageType) -> str:
    return f"[{message_type.value.upper()}]"


def _from_millis(value: int | None) -> datetime:
    if value is None:
        return datetime.now(UTC)
    return datetime.fromtimestamp(value / 1000, tz=UTC)


# Facebook Messenger / Instagram


class GraphParticipant(_Payload):
    id: str


class GraphAttachment(_Payload):
    type: str
    payload: dict[str, Any] | None = None


class GraphMessage(_Payload):
    mid: str | None = None
    text: str | None = None
    is_echo: bool = False
    sticker_id: int | None = None
    attachments: list[GraphAttachment] = Field(default_factory=list)


class GraphPostback(_Payload):
    title: str | None = None
    payload: str | None = None


class GraphMessagingEvent(_Payload):
    sender: GraphParticipant
    recipient: GraphParticipant
    timestamp: int | None = None
    message: GraphMessage | None = None
    postback: GraphPostback | None = None


class GraphEntry(_Payload):
    id: str
    time: int | None = None
    messaging: list[GraphMessagingEvent] = Field(default_factory=list)


class GraphWebhook(_Payload):
    object: str
    entry: list[GraphEntry] = Field(default_factory=list)


def _parse_graph(payload: dict[str, Any], platform: Platform) -> list[InboundMessage]:
    body = GraphWebhook.model_validate(payload)
    parsed: list[InboundMessage] = []
    for entry in body.entry:
        for event in entry.messaging:
            inbound = _graph_event(event, platform, entry.id)
            if inbound is not None:
                parsed.append(inbound)
    return parsed


def _graph_event(
    event: GraphMessagingEvent, platform: Platform, page_id: str
) -> InboundMessage | None:
    common = {
        "platform": platform,
        "customer_id": event.sender.id,
        "platform_id": event.recipient.id or page_id,
        "timestamp": _from_millis(event.timestamp),
    }

    if event.postback is not None:
        text = event.postback.title or event.postback.payload
        if not text:
            return None
        return InboundMessage(
            content=text,
            metadata={"postback": event.postback.payload},
            **common,
        )

    message = event.message
    if message is None or message.is_echo:
        return None

    if message.text:
        return InboundMessage(content=message.text, external_id=message.mid, **common)

    if message.sticker_id is not None:
        return InboundMessage(
            content=placeholder(MessageType.STICKER),
            message_type=MessageType.STICKER,
            external_id=message.mid,
            metadata={"sticker_id": message.sticker_id},
            **common,
        )

    if message.attachments:
        attachment = message.attachments[0]
        message_type = _GRAPH_ATTACHMENT_TYPES.get(attachment.type, MessageType.FILE)
        return InboundMessage(
            content=placeholder(message_type),
            message_type=message_type,
            external_id=message.mid,
            metadata={"attachments": [item.model_dump() for item in message.attachments]},
            **common,
        )
    return None


def parse_facebook(payload: dict[str, Any]) -> list[InboundMessage]:
    return _parse_graph(payload, Platform.FACEBOOK)


def parse_instagram(payload: dict[str, Any]) -> list[InboundMessage]:
    return _parse_graph(payload, Platform.INSTAGRAM)


# LINE


class LineSource(_Payload):
    type: Literal["user", "group", "room"] = "user"
    user_id: str | None = Field(default=None, alias="userId")
    group_id: str | None = Field(default=None, alias="groupId")
    room_id: str | None = Field(default=None, alias="roomId")


class LineMessage(_Payload):
    id: str | None = None
    type: str
    text: str | None = None
    package_id: str | None = Field(default=None, alias="packageId")
    sticker_id: str | None = Field(default=None, alias="stickerId")


class LineEvent(_Payload):
    type: str
    timestamp: int | None = None
    reply_token: str | None = Field(default=None, alias="replyToken")
    source: LineSource = Field(default_factory=LineSource)
    message: LineMessage | None = None


class LineWebhook(_Payload):
    destination: str | None = None
    events: list[LineEvent] = Field(default_factory=list)


def parse_line(payload: dict[str, Any]) -> list[InboundMessage]:
    body = LineWebhook.model_validate(payload)
    parsed: list[InboundMessage] = []
    for event in body.events:
        if event.type != "message" or event.message is None:
            continue
        if not event.source.user_id:
            continue

        message_type = _LINE_TYPES.get(event.message.type, MessageType.FILE)
        if message_type == MessageType.TEXT:
            content = event.message.text or ""
            if not content.strip():
                continue
        else:
            content = placeholder(message_type)

        metadata: dict[str, Any] = {"source_type": event.source.type}
        if event.source.group_id:
            metadata["group_id"] = event.source.group_id
        if event.source.room_id:
            metadata["room_id"] = event.source.room_id
        if event.message.sticker_id:
            metadata["sticker"] = {
                "package_id": event.message.package_id,
                "sticker_id": event.message.sticker_id,
            }

        parsed.append(
            InboundMessage(
                platform=Platform.LINE,
                customer_id=event.source.user_id,
                content=content,
                message_type=message_type,
                platform_id=body.destination,
                external_id=event.message.id,
                reply_token=event.reply_token,
                timestamp=_from_millis(event.timestamp),
                metadata=metadata,
            )
        )
    return parsed


# Telegram


class TelegramUser(_Payload):
    id: int
    is_bot: bool = False
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None

    @property
    def full_name(self) -> str | None:
        parts = [part for part in (self.first_name, self.last_name) if part]
        if parts:
            return " ".join(parts)
        return self.username


class TelegramChat(_Payload):
    id: int
    type: str = "private"


class TelegramMessage(_Payload):
    message_id: int
    date: int | None = None
    chat: TelegramChat
    from_user: TelegramUser | None = Field(default=None, alias="from")
    text: str | None = None
    caption: str | None = None
    photo: list[dict[str, Any]] | None = None
    sticker: dict[str, Any] | None = None
    document: dict[str, Any] | None = None
    audio: dict[str, Any] | None = None
    voice: dict[str, Any] | None = None
    video: dict[str, Any] | None = None
    location: dict[str, Any] | None = None


class TelegramUpdate(_Payload):
    update_id: int
    message: TelegramMessage | None = None


def _telegram_content(message: TelegramMessage) -> tuple[MessageType, str] | None:
    if message.text:
        return MessageType.TEXT, message.text
    if message.photo:
        return MessageType.IMAGE, message.caption or placeholder(MessageType.IMAGE)
    if message.sticker:
        return MessageType.STICKER, placeholder(MessageType.STICKER)
    if message.video:
        return MessageType.VIDEO, message.caption or placeholder(MessageType.VIDEO)
    if message.audio or message.voice:
        return MessageType.AUDIO, placeholder(MessageType.AUDIO)
    if message.document:
        return MessageType.FILE, message.caption or placeholder(MessageType.FILE)
    if message.location:
        return MessageType.LOCATION, placeholder(MessageType.LOCATION)
    return None


def parse_telegram(payload: dict[str, Any]) -> list[InboundMessage]:
    update = TelegramUpdate.model_validate(payload)
    message = update.message
    if message is None or (message.from_user is not None and message.from_user.is_bot):
        return []

    content = _telegram_content(message)
    if content is None:
        return []
    message_type, text = content

    timestamp = (
        datetime.fromtimestamp(message.date, tz=UTC)
        if message.date is not None
        else datetime.now(UTC)
    )
    return [
        InboundMessage(
            platform=Platform.TELEGRAM,
            customer_id=str(message.chat.id),
            content=text,
            message_type=message_type,
            customer_name=message.from_user.full_name if message.from_user else None,
            external_id=str(message.message_id),
            timestamp=timestamp,
            metadata={"chat_type": message.chat.type, "update_id": update.update_id},
        )
    ]


# Web widget


class WebWidgetMessage(_Payload):
    customer_id: str = Field(alias="customerId", min_length=1, max_length=200)
    customer_name: str | None = Field(default=None, alias="customerName", max_length=200)
    message: str = Field(min_length=1, max_length=4000)
    message_type: MessageType = Field(default=MessageType.TEXT, alias="messageType")
    platform_id: str | None = Field(default=None, alias="platformId", max_length=200)


def parse_web(payload: dict[str, Any]) -> list[InboundMessage]:
    body = WebWidgetMessage.model_validate(payload)
    if not body.message.strip():
        return []
    return [
        InboundMessage(
            platform=Platform.WEB,
            customer_id=body.customer_id,
            content=body.message.strip(),
            message_type=body.message_type,
            customer_name=body.customer_name,
            platform_id=body.platform_id,
        )
    ]


PARSERS = {
    Platform.FACEBOOK: parse_facebook,
    Platform.INSTAGRAM: parse_instagram,
    Platform.LINE: parse_line,
    Platform.TELEGRAM: parse_telegram,
    Platform.WEB: parse_web,
}
