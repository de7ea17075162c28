"""
tests/test_community_service.py — Membership & Community Content
=================================================================
"""

from __future__ import annotations

from datetime import timedelta, timezone

from agora.engine.results import ErrorKind
from agora.services import community_service, poll_service
from conftest import NOW, make_question


def _community(engine, name="Pythonistas") -> int:
    return community_service.create_community(engine, name, "All things Python").value.id


class TestMembership:
    def test_create_and_fetch(self, db_engine):
        cid = _community(db_engine)
        community = community_service.fetch_community(db_engine, cid).value
        assert community.name == "Pythonistas"
        assert community.members == ()

    def test_join_is_idempotent(self, db_engine):
        cid = _community(db_engine)
        community_service.join_community(db_engine, cid, "bob")
        result = community_service.join_community(db_engine, cid, "bob")
        assert result.value.members == ("bob",)

    def test_join_unknown_community(self, db_engine):
        result = community_service.join_community(db_engine, 42, "bob")
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_name_required(self, db_engine):
        assert community_service.create_community(db_engine, "").error.kind == ErrorKind.INVALID_INPUT

    def test_list_communities(self, db_engine):
        python = _community(db_engine)
        rust = _community(db_engine, "Rustaceans")
        community_service.join_community(db_engine, rust, "carol")

        listed = community_service.list_communities(db_engine).value

        assert [(c.id, c.name, c.members) for c in listed] == [
            (python, "Pythonistas", ()),
            (rust, "Rustaceans", ("carol",)),
        ]

    def test_list_communities_empty(self, db_engine):
        assert community_service.list_communities(db_engine).value == []


class TestContent:
    def test_add_question(self, db_engine):
        cid = _community(db_engine)
        qid = make_question(db_engine)

        assert community_service.add_question_to_community(db_engine, cid, qid).value == qid
        content = community_service.list_community_content(db_engine, cid).value
        assert content["questions"] == [qid]

    def test_add_missing_question(self, db_engine):
        cid = _community(db_engine)
        result = community_service.add_question_to_community(db_engine, cid, 77)
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_save_poll(self, db_engine):
        cid = _community(db_engine)

        result = community_service.save_poll_to_community(
            db_engine,
            cid,
            title="Favourite web framework?",
            options=["FastAPI", "Django", "Flask"],
            created_by="alice",
            poll_date_time=NOW,
            poll_due_date=NOW + timedelta(days=2),
        )

        poll = result.value
        assert [o.text for o in poll.options] == ["FastAPI", "Django", "Flask"]
        assert not poll.is_closed
        assert poll.community_id == cid
        assert community_service.list_community_content(db_engine, cid).value["polls"] == [poll.id]

    def test_poll_needs_two_options(self, db_engine):
        cid = _community(db_engine)
        result = community_service.save_poll_to_community(
            db_engine, cid, title="?", options=["Only"], created_by="alice",
            poll_date_time=NOW, poll_due_date=NOW + timedelta(days=1),
        )
        assert result.error.kind == ErrorKind.INVALID_INPUT

    def test_poll_due_date_after_creation(self, db_engine):
        cid = _community(db_engine)
        result = community_service.save_poll_to_community(
            db_engine, cid, title="?", options=["A", "B"], created_by="alice",
            poll_date_time=NOW, poll_due_date=NOW,
        )
        assert result.error.kind == ErrorKind.INVALID_INPUT

    def test_save_and_update_article(self, db_engine):
        cid = _community(db_engine)
        article = community_service.save_article_to_community(
            db_engine, cid, title="Guide", body="v1", created_by="alice", latest_edit_date=NOW,
        ).value

        later = NOW + timedelta(hours=3)
        updated = community_service.update_article(
            db_engine, article.id, title="Guide", body="v2", latest_edit_date=later,
        ).value

        assert updated.body == "v2"
        assert updated.latest_edit_date == later
        assert community_service.list_community_content(db_engine, cid).value["articles"] == [article.id]

    def test_update_missing_article(self, db_engine):
        result = community_service.update_article(
            db_engine, 5, title="t", body="b", latest_edit_date=NOW,
        )
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_fetch_article(self, db_engine):
        cid = _community(db_engine)
        saved = community_service.save_article_to_community(
            db_engine, cid, title="Guide", body="v1", created_by="alice", latest_edit_date=NOW,
        ).value

        article = community_service.fetch_article(db_engine, saved.id).value

        assert (article.title, article.body, article.community_id) == ("Guide", "v1", cid)
        assert article.latest_edit_date == NOW

    def test_fetch_missing_article(self, db_engine):
        assert community_service.fetch_article(db_engine, 9).error.kind == ErrorKind.NOT_FOUND

    def test_offset_dates_stored_as_utc(self, db_engine):
        cid = _community(db_engine)
        plus_five = timezone(timedelta(hours=5))
        poll = community_service.save_poll_to_community(
            db_engine, cid, title="?", options=["A", "B"], created_by="alice",
            poll_date_time=NOW.astimezone(plus_five),
            poll_due_date=(NOW + timedelta(hours=1)).astimezone(plus_five),
        ).value
        article = community_service.save_article_to_community(
            db_engine, cid, title="Guide", body="v1", latest_edit_date=NOW.astimezone(plus_five),
        ).value

        stored = poll_service.fetch_poll(db_engine, poll.id).value
        assert stored.poll_due_date == NOW + timedelta(hours=1)
        assert stored.poll_due_date.utcoffset() == timedelta(0)
        assert community_service.fetch_article(db_engine, article.id).value.latest_edit_date == NOW
