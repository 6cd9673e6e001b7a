"""Tests for verdict interpretation and action execution."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeEvents, FakeSender
from modaudit.configuration.audit_settings import AuditSettings
from modaudit.datatypes.action_datatypes import ActionStatus, Decision
from modaudit.datatypes.audit_datatypes import AuditLog
from modaudit.datatypes.content_datatypes import ContentType, Discussion, Post, UploadedFile, UserProfile
from modaudit.interfaces import UserSuspended
from modaudit.services.flag_service import FLAG_TYPE, FlagService, FlagStage
from modaudit.services.message_notifier import MessageNotifier
from modaudit.services.result_handler import ResultHandler


def completed_log(database_log, confidence, actions, conclusion="Spam"):
    database_log.confidence = confidence
    database_log.actions_taken = list(actions)
    database_log.conclusion = conclusion
    database_log.mark_completed()
    return database_log


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def events():
    return FakeEvents()


@pytest.fixture
def handler_settings():
    return AuditSettings(confidence_threshold=0.7, suspend_days=3, default_bio="", system_user_id=99)


@pytest.fixture
def handler(handler_settings, database, content_store, sender, events):
    return ResultHandler(
        handler_settings,
        database,
        content_store,
        MessageNotifier(handler_settings, sender),
        FlagService(database),
        events,
    )


async def make_log(database, content_type=ContentType.POST, content_id=1, user_id=7, audited=None):
    log = await database.create_log(AuditLog(content_type=content_type, content_id=content_id, user_id=user_id))
    log.audited_content = audited
    return log


class TestApproval:
    @pytest.mark.asyncio
    async def test_below_threshold_approves_unapproved_post(self, handler, database, content_store, author, sender):
        post = Post(id=1, user_id=7, content="hi", is_approved=False)
        log = completed_log(await make_log(database), 0.40, ["hide"])

        execution = await handler.handle(log, author, post)

        assert execution.decision is Decision.APPROVED
        assert execution.reason == "confidence_below_threshold"
        assert execution.actions_executed == []
        assert execution.content_approved is True
        assert content_store.approved == [post]
        assert content_store.unapproved == []
        assert post.is_approved is True
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_only_none_approves(self, handler, database, author):
        post = Post(id=1, user_id=7, content="hi", is_approved=False)
        log = completed_log(await make_log(database), 0.95, ["none"])

        execution = await handler.handle(log, author, post)

        assert execution.decision is Decision.APPROVED
        assert execution.reason == "no_violations_found"

    @pytest.mark.asyncio
    async def test_already_approved_content_is_left_alone(self, handler, database, content_store, author):
        post = Post(id=1, user_id=7, content="hi", is_approved=True)
        log = completed_log(await make_log(database), 0.1, ["none"])

        execution = await handler.handle(log, author, post)

        assert content_store.approved == []
        assert execution.content_approved is False

    @pytest.mark.asyncio
    async def test_approval_removes_pending_flag(self, handler, database, author):
        post = Post(id=1, user_id=7, content="hi", is_approved=False)
        await FlagService(database).create_flag(post, None, FlagStage.PRE_APPROVAL)
        log = completed_log(await make_log(database), 0.1, ["none"])

        execution = await handler.handle(log, author, post)

        assert await database.get_flag(1, FLAG_TYPE) is None
        assert execution.extra["flags_removed"] == 1

    @pytest.mark.asyncio
    async def test_execution_log_is_persisted(self, handler, database, author):
        post = Post(id=1, user_id=7, content="hi")
        log = completed_log(await make_log(database), 0.1, ["none"])

        await handler.handle(log, author, post)

        stored = await database.get_log(log.id)
        assert stored.execution_log["decision"] == "approved"
        assert stored.execution_log["threshold"] == 0.7


class TestViolations:
    @pytest.mark.asyncio
    async def test_suspend_sets_deadline_and_notifies(self, handler, database, content_store, author, sender, events):
        post = Post(id=1, user_id=7, content="hi")
        log = completed_log(await make_log(database), 0.90, ["suspend"], conclusion="Harassment")
        before = datetime.now(timezone.utc)

        execution = await handler.handle(log, author, post)

        assert execution.decision is Decision.VIOLATED
        [outcome] = execution.actions_executed
        assert outcome.action == "suspend"
        assert outcome.status is ActionStatus.SUCCESS
        assert outcome.details == "user_suspended"
        assert author.suspended_until - before >= timedelta(days=3)
        assert author.suspended_until - before < timedelta(days=3, minutes=1)
        assert author.suspend_reason == "Harassment"
        [(user_id, until, reason, message)] = content_store.suspensions
        assert (user_id, reason, message) == (7, "Harassment", "Harassment")
        assert events.events == [
            UserSuspended(user_id=7, suspended_until=until, reason="Harassment", audit_log_id=log.id)
        ]
        assert execution.message_sent is True
        [(sender_id, recipient_id, body)] = sender.sent
        assert (sender_id, recipient_id) == (99, 7)
        assert "Harassment" in body
        assert "90.0%" in body

    @pytest.mark.asyncio
    async def test_unknown_action_is_recorded_without_side_effects(self, handler, database, content_store, author):
        post = Post(id=1, user_id=7, content="hi")
        log = completed_log(await make_log(database), 0.95, ["unknown_tag"])

        execution = await handler.handle(log, author, post)

        [outcome] = execution.actions_executed
        assert outcome.status is ActionStatus.UNKNOWN
        assert outcome.error == "unknown_action_type"
        assert content_store.unapproved == []
        assert content_store.suspensions == []

    @pytest.mark.asyncio
    async def test_delete_is_unsupported(self, handler, database, author):
        post = Post(id=1, user_id=7, content="hi")
        log = completed_log(await make_log(database), 0.95, ["delete"])

        execution = await handler.handle(log, author, post)

        assert execution.actions_executed[0].status is ActionStatus.UNKNOWN
        assert execution.actions_executed[0].error == "unsupported_action"

    @pytest.mark.asyncio
    async def test_hide_post_unapproves_and_flags(self, handler, database, content_store, author):
        post = Post(id=1, user_id=7, content="hi")
        log = completed_log(await make_log(database), 0.9, ["hide"], conclusion="Spam link")

        execution = await handler.handle(log, author, post)

        assert content_store.unapproved == [post]
        assert post.is_approved is False
        flag = await database.get_flag(1, FLAG_TYPE)
        assert flag.reason_detail == f"[Audit log #{log.id}] Spam link\nConfidence: 90.0%"
        assert execution.actions_executed[0].extra["flag_id"] == flag.id

    @pytest.mark.asyncio
    async def test_hide_discussion_flags_first_post(self, handler, database, content_store, author):
        first = Post(id=5, user_id=7, content="body")
        discussion = Discussion(id=2, user_id=7, title="t", first_post=first)
        log = completed_log(await make_log(database, ContentType.DISCUSSION, 2), 0.9, ["unapprove"])

        await handler.handle(log, author, discussion)

        assert content_store.unapproved == [discussion]
        assert await database.get_flag(5, FLAG_TYPE) is not None

    @pytest.mark.asyncio
    async def test_hide_upload(self, handler, database, content_store, author):
        file = UploadedFile(id=4, user_id=7, base_name="a.png", size=1)
        log = completed_log(await make_log(database, ContentType.UPLOAD, 4), 0.9, ["hide"])

        execution = await handler.handle(log, author, file)

        assert content_store.unapproved == [file]
        assert execution.actions_executed[0].details == "upload_hidden"

    @pytest.mark.asyncio
    async def test_failing_action_does_not_stop_the_others(self, handler, database, content_store, author):
        content_store.fail_on.add("unapprove")
        post = Post(id=1, user_id=7, content="hi")
        log = completed_log(await make_log(database), 0.9, ["hide", "suspend"])

        execution = await handler.handle(log, author, post)

        hide, suspend = execution.actions_executed
        assert hide.status is ActionStatus.FAILED
        assert hide.error == "unapprove failed"
        assert suspend.status is ActionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_event_failure_is_only_logged(self, handler_settings, database, content_store, author, sender):
        handler = ResultHandler(
            handler_settings, database, content_store, MessageNotifier(handler_settings, sender),
            events=FakeEvents(fail=True),
        )
        log = completed_log(await make_log(database), 0.9, ["suspend"])

        execution = await handler.handle(log, author, Post(id=1, user_id=7, content="hi"))

        assert execution.actions_executed[0].status is ActionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_notification_failure_is_recorded(self, handler_settings, database, content_store, author):
        handler = ResultHandler(
            handler_settings, database, content_store, MessageNotifier(handler_settings, FakeSender(fail=True))
        )
        log = completed_log(await make_log(database), 0.9, ["hide"])

        execution = await handler.handle(log, author, Post(id=1, user_id=7, content="hi"))

        assert execution.message_sent is False


class TestProfileRevert:
    @pytest.mark.asyncio
    async def test_revert_table(self, handler, database, content_store):
        user = UserProfile(
            id=7, username="alice", display_name="Spammy", bio="Buy now", avatar_url="a.png", cover="c.png"
        )
        audited = {
            "type": "user_profile",
            "content": {"display_name": "Spammy", "bio": "Buy now", "avatar": "a.png", "cover": "c.png"},
        }
        log = completed_log(await make_log(database, ContentType.USER_PROFILE, None, 7, audited), 0.9, ["hide"])

        execution = await handler.handle(log, user, user)

        assert sorted(content_store.profile_updates) == [
            (7, "avatar", None),
            (7, "bio", ""),
            (7, "cover", None),
            (7, "display_name", "alice"),
        ]
        outcome = execution.actions_executed[0]
        assert outcome.details == "profile_reverted"
        assert outcome.extra["reverted_fields"]["display_name"] == {"old": "Spammy", "new": "alice"}
        assert user.display_name == "alice"
        assert user.avatar_url is None

    @pytest.mark.asyncio
    async def test_configured_default_display_name(self, database, content_store, sender):
        settings = AuditSettings(default_display_name="Member")
        handler = ResultHandler(settings, database, content_store, MessageNotifier(settings, sender))
        user = UserProfile(id=7, username="alice", display_name="Spammy")
        audited = {"type": "user_profile", "content": {"display_name": "Spammy"}}
        log = completed_log(await make_log(database, ContentType.USER_PROFILE, None, 7, audited), 0.9, ["hide"])

        await handler.handle(log, user, user)

        assert content_store.profile_updates == [(7, "display_name", "Member")]

    @pytest.mark.asyncio
    async def test_absent_optional_fields_are_not_touched(self, handler, database, content_store):
        user = UserProfile(id=7, username="alice", bio=None, cover=None)
        audited = {"type": "user_profile", "content": {"bio": "x", "cover": "c.png", "username": "alice"}}
        log = completed_log(await make_log(database, ContentType.USER_PROFILE, None, 7, audited), 0.9, ["hide"])

        execution = await handler.handle(log, user, user)

        assert content_store.profile_updates == []
        assert execution.actions_executed[0].details == "no_changes_needed"
