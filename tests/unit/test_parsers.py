import pytest
from pydantic import ValidationError

from chatdesk.domain.enums import MessageType, Platform
from chatdesk.integrations.parsers import (
    parse_facebook,
    parse_instagram,
    parse_line,
    parse_telegram,
    parse_web,
)


def test_line_text_event_keeps_reply_token() -> None:
    payload = {
        "destination": "U-bot",
        "events": [
            {
                "type": "message",
                "timestamp": 1700000000000,
                "replyToken": "reply-1",
                "source": {"type": "user", "userId": "U123"},
                "message": {"id": "m1", "type": "text", "text": "Hello"},
            },
            {"type": "follow", "source": {"type": "user", "userId": "U123"}},
        ],
    }

    [inbound] = parse_line(payload)

    assert inbound.platform == Platform.LINE
    assert inbound.customer_id == "U123"
    assert inbound.content == "Hello"
    assert inbound.reply_token == "reply-1"
    assert inbound.platform_id == "U-bot"
    assert inbound.timestamp.year == 2023


def test_line_sticker_becomes_placeholder() -> None:
    payload = {
        "events": [
            {
                "type": "message",
                "source": {"type": "group", "userId": "U9", "groupId": "G1"},
                "message": {"id": "m2", "type": "sticker", "packageId": "1", "stickerId": "2"},
            }
        ]
    }

    [inbound] = parse_line(payload)

    assert inbound.message_type == MessageType.STICKER
    assert inbound.content == "[STICKER]"
    assert inbound.metadata["group_id"] == "G1"
    assert inbound.metadata["sticker"] == {"package_id": "1", "sticker_id": "2"}


def test_facebook_skips_echoes_and_reads_text() -> None:
    payload = {
        "object": "page",
        "entry": [
            {
                "id": "PAGE1",
                "messaging": [
                    {
                        "sender": {"id": "PAGE1"},
                        "recipient": {"id": "PSID1"},
                        "message": {"mid": "e1", "text": "our reply", "is_echo": True},
                    },
                    {
                        "sender": {"id": "PSID1"},
                        "recipient": {"id": "PAGE1"},
                        "timestamp": 1700000000000,
                        "message": {"mid": "m1", "text": "Where is my order?"},
                    },
                ],
            }
        ],
    }

    [inbound] = parse_facebook(payload)

    assert inbound.customer_id == "PSID1"
    assert inbound.platform_id == "PAGE1"
    assert inbound.external_id == "m1"
    assert inbound.content == "Where is my order?"


def test_instagram_attachment_and_postback() -> None:
    payload = {
        "object": "instagram",
        "entry": [
            {
                "id": "IG1",
                "messaging": [
                    {
                        "sender": {"id": "IGSID"},
                        "recipient": {"id": "IG1"},
                        "message": {"mid": "m1", "attachments": [{"type": "image"}]},
                    },
                    {
                        "sender": {"id": "IGSID"},
                        "recipient": {"id": "IG1"},
                        "postback": {"title": "Track order", "payload": "TRACK"},
                    },
                ],
            }
        ],
    }

    image, postback = parse_instagram(payload)

    assert image.platform == Platform.INSTAGRAM
    assert image.message_type == MessageType.IMAGE
    assert image.content == "[IMAGE]"
    assert postback.content == "Track order"
    assert postback.metadata == {"postback": "TRACK"}


def test_telegram_private_message_uses_chat_id_and_name() -> None:
    payload = {
        "update_id": 10,
        "message": {
            "message_id": 55,
            "date": 1700000000,
            "chat": {"id": 4242, "type": "private"},
            "from": {"id": 4242, "first_name": "Dana", "last_name": "K"},
            "text": "/start",
        },
    }

    [inbound] = parse_telegram(payload)

    assert inbound.customer_id == "4242"
    assert inbound.customer_name == "Dana K"
    assert inbound.external_id == "55"
    assert inbound.metadata == {"chat_type": "private", "update_id": 10}


def test_telegram_ignores_bots_and_non_message_updates() -> None:
    assert parse_telegram({"update_id": 1}) == []
    assert (
        parse_telegram(
            {
                "update_id": 2,
                "message": {
                    "message_id": 1,
                    "chat": {"id": 1},
                    "from": {"id": 1, "is_bot": True},
                    "text": "beep",
                },
            }
        )
        == []
    )


def test_telegram_photo_uses_caption() -> None:
    [inbound] = parse_telegram(
        {
            "update_id": 3,
            "message": {
                "message_id": 2,
                "chat": {"id": 7},
                "photo": [{"file_id": "abc"}],
                "caption": "Is this in stock?",
            },
        }
    )

    assert inbound.message_type == MessageType.IMAGE
    assert inbound.content == "Is this in stock?"


def test_web_widget_payload() -> None:
    [inbound] = parse_web(
        {"customerId": "visitor-1", "customerName": "Dana", "message": "  Hi there  "}
    )

    assert inbound.platform == Platform.WEB
    assert inbound.content == "Hi there"
    assert inbound.display_name == "Dana"


def test_web_widget_requires_customer_and_message() -> None:
    with pytest.raises(ValidationError):
        parse_web({"message": "Hi"})
    assert parse_web({"customerId": "visitor-1", "message": "   "}) == []
