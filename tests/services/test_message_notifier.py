"""Tests for violation notices."""

import pytest

from conftest import FakeSender
from modaudit.configuration.audit_settings import AuditSettings
from modaudit.datatypes.content_datatypes import UserProfile
from modaudit.services.message_notifier import DEFAULT_TEMPLATE, MessageNotifier, format_violation_message

USER = UserProfile(id=7, username="alice")


def test_format_fills_placeholders():
    body = format_violation_message(
        "{content_type} | {violations} | {confidence} | {other}", "discussion", ["Spam", "", "Ads"], 0.877
    )
    assert body == "discussion | - Spam\n- Ads | 87.7% | {other}"


def test_unknown_content_type_is_kept_verbatim():
    assert format_violation_message("{content_type}", "poll", [], 0.5) == "poll"


class TestMessageNotifier:
    @pytest.mark.asyncio
    async def test_sends_default_template_from_system_user(self):
        sender = FakeSender()
        notifier = MessageNotifier(AuditSettings(system_user_id=2), sender)

        assert await notifier.send_violation_notice(USER, "post", ["Spam"], 0.9) is True

        [(sender_id, recipient_id, body)] = sender.sent
        assert (sender_id, recipient_id) == (2, 7)
        assert body == format_violation_message(DEFAULT_TEMPLATE, "post", ["Spam"], 0.9)
        assert "post reply" in body

    @pytest.mark.asyncio
    async def test_custom_template(self):
        sender = FakeSender()
        notifier = MessageNotifier(AuditSettings(message_template="Removed ({confidence})"), sender)

        await notifier.send_violation_notice(USER, "upload", ["x"], 0.5)

        assert sender.sent[0][2] == "Removed (50.0%)"

    @pytest.mark.asyncio
    async def test_disabled(self):
        sender = FakeSender()
        notifier = MessageNotifier(AuditSettings(send_message_notification=False), sender)

        assert await notifier.send_violation_notice(USER, "post", ["Spam"], 0.9) is False
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_without_sender(self):
        assert not MessageNotifier(AuditSettings(), None).enabled

    @pytest.mark.asyncio
    async def test_sender_failure_returns_false(self):
        notifier = MessageNotifier(AuditSettings(), FakeSender(fail=True))

        assert await notifier.send_violation_notice(USER, "post", ["Spam"], 0.9) is False
