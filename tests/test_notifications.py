"""
tests/test_notifications.py — Notification Fan-out & Inbox
===========================================================

Recipient resolution per notification type, opt-out suppression, partial
failure reporting and inbox reads/updates against a real SQLite store.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from agora.database.models import (
    Answer,
    Article,
    InboxEntry,
    Notification,
    NotificationType,
    PollVote,
    QuestionSubscriber,
)
from agora.engine.results import ErrorKind
from agora.services import notification_service
from agora.services.notification_service import announce, notify
from agora.services.recipients import NotificationEvent, dedupe
from conftest import NOW, make_community, make_poll, make_question, make_users, run


def _inbox(engine, username: str) -> list:
    return notification_service.fetch_inbox(engine, username).value


def _notify(engine, notification_type, source_id, now=NOW):
    return run(notify(engine, NotificationEvent(notification_type, source_id), now=now))


def _subscribe(engine, question_id: int, *usernames: str) -> None:
    with Session(engine) as session:
        for name in usernames:
            session.add(QuestionSubscriber(question_id=question_id, username=name, active=True))
        session.commit()


# ===========================================================================
# Recipient resolution
# ===========================================================================
class TestRecipients:
    def test_answer_reaches_asker_and_subscribers_once(self, db_engine):
        make_users(db_engine, "alice", "bob", "carol")
        qid = make_question(db_engine, "alice")
        _subscribe(db_engine, qid, "bob", "alice", "carol")

        result = _notify(db_engine, NotificationType.ANSWER, qid)

        assert result.ok
        assert result.value.recipients == ("alice", "bob", "carol")
        for name in ("alice", "bob", "carol"):
            inbox = _inbox(db_engine, name)
            assert len(inbox) == 1
            assert inbox[0].notification_type == "Answer"
            assert inbox[0].source_type == "Question"
            assert inbox[0].source_id == qid

    def test_comment_and_upvote_reach_asker_only(self, db_engine):
        make_users(db_engine, "alice", "bob")
        qid = make_question(db_engine, "alice")
        _subscribe(db_engine, qid, "bob")

        assert _notify(db_engine, NotificationType.COMMENT, qid).value.recipients == ("alice",)
        assert _notify(db_engine, NotificationType.UPVOTE, qid).value.recipients == ("alice",)
        assert _inbox(db_engine, "bob") == []

    def test_answer_comment_reaches_answer_author_and_links_question(self, db_engine):
        make_users(db_engine, "alice", "bob")
        qid = make_question(db_engine, "alice")
        with Session(db_engine) as session:
            answer = Answer(question_id=qid, text="Use grid", ans_by="bob", ans_date_time=NOW)
            session.add(answer)
            session.commit()
            aid = answer.id

        result = _notify(db_engine, NotificationType.ANSWER_COMMENT, aid)

        assert result.value.recipients == ("bob",)
        (entry,) = _inbox(db_engine, "bob")
        assert entry.source_type == "Question"
        assert entry.source_id == qid

    def test_community_events_reach_members(self, db_engine):
        make_users(db_engine, "alice", "bob", "carol")
        cid = make_community(db_engine, members=("bob", "carol"))
        qid = make_question(db_engine, "alice", community_id=cid)
        pid, _ = make_poll(db_engine, community_id=cid)
        with Session(db_engine) as session:
            article = Article(community_id=cid, title="Guide", body="...")
            session.add(article)
            session.commit()
            art_id = article.id

        assert _notify(db_engine, NotificationType.NEW_QUESTION, qid).value.recipients == ("bob", "carol")
        assert _notify(db_engine, NotificationType.NEW_POLL, pid).value.recipients == ("bob", "carol")
        assert _notify(db_engine, NotificationType.NEW_ARTICLE, art_id).value.recipients == ("bob", "carol")
        assert _notify(db_engine, NotificationType.ARTICLE_UPDATE, art_id).value.recipients == ("bob", "carol")
        assert len(_inbox(db_engine, "carol")) == 4

    def test_poll_closed_reaches_creator_and_voters(self, db_engine):
        make_users(db_engine, "alice", "bob", "carol")
        pid, (yes, no) = make_poll(db_engine, "alice")
        with Session(db_engine) as session:
            session.add_all([
                PollVote(poll_id=pid, username="bob", option_id=yes, voted_at=NOW),
                PollVote(poll_id=pid, username="carol", option_id=no, voted_at=NOW + timedelta(minutes=1)),
            ])
            session.commit()

        result = _notify(db_engine, NotificationType.POLL_CLOSED, pid)

        assert result.value.recipients == ("alice", "bob", "carol")

    def test_new_reward_reaches_user_without_source(self, db_engine):
        ids = make_users(db_engine, "alice")

        result = _notify(db_engine, NotificationType.NEW_REWARD, ids["alice"])

        assert result.value.recipients == ("alice",)
        (entry,) = _inbox(db_engine, "alice")
        assert entry.source_type is None
        assert entry.source_id is None
        assert entry.message == "You unlocked a new reward"

    def test_dedupe_keeps_first_seen_order(self):
        assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


# ===========================================================================
# Failure modes
# ===========================================================================
class TestFanOutFailures:
    def test_missing_source_is_not_found(self, db_engine):
        result = _notify(db_engine, NotificationType.ANSWER, 999)
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_unknown_type_is_invalid_input(self, db_engine):
        result = _notify(db_engine, "Mention", 1)
        assert result.error.kind == ErrorKind.INVALID_INPUT

    def test_no_recipients_is_invalid_input(self, db_engine):
        cid = make_community(db_engine, members=())
        qid = make_question(db_engine, "alice", community_id=cid)

        result = _notify(db_engine, NotificationType.NEW_QUESTION, qid)

        assert result.error.kind == ErrorKind.INVALID_INPUT

    def test_partial_failure_keeps_delivered_recipients(self, db_engine):
        # "ghost" follows the question but has no user profile
        make_users(db_engine, "alice", "bob")
        qid = make_question(db_engine, "alice")
        _subscribe(db_engine, qid, "ghost", "bob")

        result = _notify(db_engine, NotificationType.ANSWER, qid)

        assert result.error.kind == ErrorKind.AGGREGATE_FAILURE
        assert result.error.cause.kind == ErrorKind.NOT_FOUND
        outcomes = {o.username: o for o in result.error.details}
        assert outcomes["alice"].delivered
        assert outcomes["bob"].delivered
        assert not outcomes["ghost"].ok
        assert len(_inbox(db_engine, "alice")) == 1
        assert len(_inbox(db_engine, "bob")) == 1

    def test_unknown_recipient_gets_no_record(self, db_engine):
        make_users(db_engine, "alice")
        qid = make_question(db_engine, "alice")
        _subscribe(db_engine, qid, "ghost")

        _notify(db_engine, NotificationType.ANSWER, qid)

        with Session(db_engine) as session:
            recipients = session.scalars(select(Notification.recipient)).all()
            inboxed = session.scalars(select(InboxEntry.username)).all()
        assert recipients == ["alice"]
        assert inboxed == ["alice"]

    def test_announce_swallows_failure_into_none(self, db_engine):
        report = run(announce(db_engine, NotificationEvent(NotificationType.UPVOTE, 404), now=NOW))
        assert report is None


# ===========================================================================
# Opt-outs
# ===========================================================================
class TestBlockedTypes:
    def test_toggle_adds_then_removes(self, db_engine):
        make_users(db_engine, "alice")

        first = notification_service.toggle_blocked_type(db_engine, "alice", "Upvote")
        second = notification_service.toggle_blocked_type(db_engine, "alice", "Upvote")

        assert first.value == ["Upvote"]
        assert second.value == []

    def test_toggle_keeps_other_types(self, db_engine):
        make_users(db_engine, "alice")
        notification_service.toggle_blocked_type(db_engine, "alice", "Upvote")
        result = notification_service.toggle_blocked_type(db_engine, "alice", "Answer")
        assert result.value == ["Answer", "Upvote"]

    def test_unknown_type_rejected(self, db_engine):
        make_users(db_engine, "alice")
        result = notification_service.toggle_blocked_type(db_engine, "alice", "Mention")
        assert result.error.kind == ErrorKind.INVALID_INPUT

    def test_unknown_user_rejected(self, db_engine):
        result = notification_service.toggle_blocked_type(db_engine, "ghost", "Upvote")
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_blocked_recipient_gets_record_but_no_inbox_entry(self, db_engine):
        make_users(db_engine, "alice", "bob")
        qid = make_question(db_engine, "alice")
        _subscribe(db_engine, qid, "bob")
        notification_service.toggle_blocked_type(db_engine, "bob", "Answer")

        report = _notify(db_engine, NotificationType.ANSWER, qid).value

        assert report.recipients == ("alice", "bob")
        assert report.delivered == ("alice",)
        assert report.suppressed == ("bob",)
        assert _inbox(db_engine, "bob") == []
        with Session(db_engine) as session:
            records = session.scalar(
                select(func.count()).select_from(Notification).where(Notification.recipient == "bob")
            )
        assert records == 1

    def test_block_applies_only_to_that_type(self, db_engine):
        make_users(db_engine, "alice")
        qid = make_question(db_engine, "alice")
        notification_service.toggle_blocked_type(db_engine, "alice", "Comment")

        _notify(db_engine, NotificationType.UPVOTE, qid)

        assert [n.notification_type for n in _inbox(db_engine, "alice")] == ["Upvote"]


# ===========================================================================
# Inbox reads & updates
# ===========================================================================
class TestInbox:
    @pytest.fixture
    def seeded(self, db_engine):
        make_users(db_engine, "alice")
        qid = make_question(db_engine, "alice")
        _notify(db_engine, NotificationType.COMMENT, qid, now=NOW)
        _notify(db_engine, NotificationType.UPVOTE, qid, now=NOW + timedelta(minutes=5))
        return db_engine

    def test_newest_first(self, seeded):
        inbox = _inbox(seeded, "alice")
        assert [n.notification_type for n in inbox] == ["Upvote", "Comment"]
        assert inbox[0].message == "Your question was upvoted"

    def test_has_unread_and_mark_read(self, seeded):
        assert notification_service.has_unread(seeded, "alice").value is True

        newest = _inbox(seeded, "alice")[0]
        marked = notification_service.mark_read(seeded, newest.id)

        assert marked.value.is_read
        unread = notification_service.fetch_inbox(seeded, "alice", unread_only=True).value
        assert [n.notification_type for n in unread] == ["Comment"]

    def test_mark_all_read(self, seeded):
        result = notification_service.mark_all_read(seeded, "alice")

        assert len(result.value) == 2
        assert all(n.is_read for n in _inbox(seeded, "alice"))
        assert notification_service.has_unread(seeded, "alice").value is False

    def test_mark_all_read_on_empty_inbox(self, db_engine):
        make_users(db_engine, "bob")
        assert notification_service.mark_all_read(db_engine, "bob").value == []

    def test_mark_read_unknown_notification(self, db_engine):
        result = notification_service.mark_read(db_engine, 12345)
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_fetch_inbox_unknown_user(self, db_engine):
        result = notification_service.fetch_inbox(db_engine, "ghost")
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_one_inbox_entry_per_notification(self, seeded):
        with Session(seeded) as session:
            entries = session.scalar(select(func.count()).select_from(InboxEntry))
        assert entries == 2
