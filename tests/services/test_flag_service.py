"""Tests for moderation flags."""

from unittest.mock import AsyncMock

import pytest

from modaudit.datatypes.audit_datatypes import AuditLog
from modaudit.datatypes.content_datatypes import ContentType, Discussion, Post, UserProfile
from modaudit.services.flag_service import FLAG_TYPE, FlagLabels, FlagService, FlagStage, resolve_post


def audit_log(log_id=12, conclusion="Spam", confidence=0.856):
    log = AuditLog(content_type=ContentType.POST, content_id=1, user_id=7, id=log_id)
    log.conclusion = conclusion
    log.confidence = confidence
    return log


class TestReasonDetail:
    def test_pre_approval_uses_pending_label(self):
        service = FlagService(database=None)
        assert service.format_reason_detail(FlagStage.PRE_APPROVAL, audit_log()) == "Pending AI content audit"
        assert service.format_reason_detail(FlagStage.AUDIT, None) == "Pending AI content audit"

    def test_audit_stage_template(self):
        service = FlagService(database=None)
        assert service.format_reason_detail(FlagStage.AUDIT, audit_log()) == "[Audit log #12] Spam\nConfidence: 85.6%"

    def test_missing_conclusion_fallback(self):
        service = FlagService(database=None)
        detail = service.format_reason_detail(FlagStage.AUDIT, audit_log(conclusion=None, confidence=None))
        assert detail == "[Audit log #12] No conclusion available\nConfidence: 0.0%"

    def test_custom_labels_with_blank_fallback(self):
        labels = FlagLabels.from_mapping({"audit_log": "Journal", "confidence": "  ", "unknown": "x"})
        service = FlagService(database=None, labels=labels)

        assert labels.confidence == "Confidence"
        assert service.format_reason_detail(FlagStage.AUDIT, audit_log()).startswith("[Journal #12]")


class TestFlagLifecycle:
    def test_resolve_post(self):
        first = Post(id=3, user_id=1, content="x")
        assert resolve_post(first) is first
        assert resolve_post(Discussion(id=1, user_id=1, title="t", first_post=first)) is first
        assert resolve_post(Discussion(id=1, user_id=1, title="t")) is None
        assert resolve_post(UserProfile(id=1, username="u")) is None

    @pytest.mark.asyncio
    async def test_create_is_idempotent(self, database):
        service = FlagService(database)
        post = Post(id=3, user_id=1, content="x")

        log = await database.create_log(audit_log(log_id=None))

        first = await service.create_flag(post, None, FlagStage.PRE_APPROVAL)
        second = await service.create_flag(post, log, FlagStage.AUDIT)

        assert first.id == second.id
        assert second.reason_detail == "Pending AI content audit"
        assert second.type == FLAG_TYPE

    @pytest.mark.asyncio
    async def test_delete_then_recreate(self, database):
        service = FlagService(database)
        post = Post(id=3, user_id=1, content="x")
        await service.create_flag(post, None, FlagStage.PRE_APPROVAL)

        assert await service.delete_flags(post) == 1
        log = await database.create_log(audit_log(log_id=None))
        recreated = await service.create_flag(post, log, FlagStage.AUDIT)

        assert recreated.reason_detail == f"[Audit log #{log.id}] Spam\nConfidence: 85.6%"
        assert recreated.audit_log_id == log.id

    @pytest.mark.asyncio
    async def test_unflaggable_content(self, database):
        service = FlagService(database)
        assert await service.create_flag(UserProfile(id=1, username="u")) is None
        assert await service.delete_flags(UserProfile(id=1, username="u")) == 0

    @pytest.mark.asyncio
    async def test_store_errors_are_swallowed(self):
        database = AsyncMock()
        database.create_flag.side_effect = RuntimeError("disk full")
        database.delete_flags.side_effect = RuntimeError("disk full")
        service = FlagService(database)
        post = Post(id=3, user_id=1, content="x")

        assert await service.create_flag(post) is None
        assert await service.delete_flags(post) == 0
