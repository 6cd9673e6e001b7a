"""Tests for chat message assembly."""

from modaudit.datatypes.payload_datatypes import AuditPayload, PayloadImage
from modaudit.extraction.message_builder import build_messages, format_user_message

DATA_URI = "data:image/png;base64,AAAA"


def test_text_only_payload_is_a_plain_string():
    payload = AuditPayload(type="post", content={"text": "Hello"}, context={"username": "alice"})

    messages = build_messages(payload, "SYSTEM")

    assert messages[0] == {"role": "system", "content": "SYSTEM"}
    assert messages[1]["role"] == "user"
    assert messages[1]["content"] == (
        "Content Type: post\n\nContent to Review:\nText: Hello\n\nContext:\nUsername: alice"
    )


def test_url_images_are_listed_when_nothing_is_inline():
    payload = AuditPayload(
        type="user_profile",
        content={"avatar": "https://cdn.test/a.png"},
        images=[PayloadImage(type="avatar", url="https://cdn.test/a.png")],
    )

    text = format_user_message(payload)

    assert "Images: 1 image(s) attached for review" in text
    assert "Image (avatar): https://cdn.test/a.png" in text
    assert isinstance(build_messages(payload, "S")[1]["content"], str)


def test_inline_images_produce_multimodal_parts():
    payload = AuditPayload(
        type="post",
        content={"text": "Look"},
        images=[
            PayloadImage(type="post_image", data=DATA_URI),
            PayloadImage(type="post_image", url="https://cdn.test/b.png"),
        ],
    )

    user = build_messages(payload, "S")[1]

    parts = user["content"]
    assert parts[0]["type"] == "text"
    assert "Images: 1 image(s) attached for review" in parts[0]["text"]
    assert "Image (post_image): https://cdn.test/b.png" in parts[0]["text"]
    assert parts[1:] == [{"type": "image_url", "image_url": {"url": DATA_URI}}]


def test_empty_context_values_render_blank():
    payload = AuditPayload(type="user_profile", content={"bio": "hi"}, context={"joined_at": None})

    assert format_user_message(payload).endswith("Joined at: ")
