"""
tests/test_polls.py — Poll Votes & Expiry Sweep
================================================
"""

from __future__ import annotations

import asyncio
from datetime import timedelta, timezone

from agora.database.engine import run_db
from agora.engine.results import ErrorKind
from agora.services import notification_service, poll_service
from agora.services.poll_service import ALREADY_VOTED, POLL_CLOSED, is_open
from conftest import NOW, make_poll, make_users, run


class TestVote:
    def test_vote_recorded_on_option(self, db_engine):
        pid, (yes, no) = make_poll(db_engine)

        result = poll_service.vote(db_engine, pid, yes, "bob", now=NOW)

        assert result.ok
        options = {o.id: o.users_voted for o in result.value.options}
        assert options == {yes: ("bob",), no: ()}
        assert result.value.voters == ("bob",)

    def test_second_vote_same_option_conflicts(self, db_engine):
        pid, (yes, _) = make_poll(db_engine)
        poll_service.vote(db_engine, pid, yes, "bob", now=NOW)

        result = poll_service.vote(db_engine, pid, yes, "bob", now=NOW)

        assert result.error.kind == ErrorKind.CONFLICT
        assert result.error.reason == ALREADY_VOTED

    def test_second_vote_other_option_conflicts(self, db_engine):
        pid, (yes, no) = make_poll(db_engine)
        poll_service.vote(db_engine, pid, yes, "bob", now=NOW)

        result = poll_service.vote(db_engine, pid, no, "bob", now=NOW)

        assert result.error.reason == ALREADY_VOTED
        poll = poll_service.fetch_poll(db_engine, pid).value
        assert poll.voters == ("bob",)

    def test_vote_on_closed_poll(self, db_engine):
        pid, (yes, _) = make_poll(db_engine, is_closed=True)

        result = poll_service.vote(db_engine, pid, yes, "bob", now=NOW)

        assert result.error.kind == ErrorKind.CONFLICT
        assert result.error.reason == POLL_CLOSED

    def test_vote_after_due_date_but_before_sweep(self, db_engine):
        pid, (yes, _) = make_poll(db_engine, poll_due_date=NOW - timedelta(minutes=1))

        result = poll_service.vote(db_engine, pid, yes, "bob", now=NOW)

        assert result.error.reason == POLL_CLOSED

    def test_vote_exactly_at_due_date_is_closed(self, db_engine):
        pid, (yes, _) = make_poll(db_engine, poll_due_date=NOW)
        assert poll_service.vote(db_engine, pid, yes, "bob", now=NOW).error.reason == POLL_CLOSED

    def test_unknown_poll(self, db_engine):
        result = poll_service.vote(db_engine, 999, 1, "bob", now=NOW)
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_option_from_another_poll(self, db_engine):
        pid, _ = make_poll(db_engine)
        _, (other_yes, _) = make_poll(db_engine)

        result = poll_service.vote(db_engine, pid, other_yes, "bob", now=NOW)

        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_concurrent_votes_by_one_user_land_once(self, db_engine):
        pid, (yes, no) = make_poll(db_engine)

        async def _race():
            return await asyncio.gather(
                run_db(poll_service.vote, db_engine, pid, yes, "bob", now=NOW),
                run_db(poll_service.vote, db_engine, pid, no, "bob", now=NOW),
            )

        results = run(_race())

        assert sorted(r.ok for r in results) == [False, True]
        poll = poll_service.fetch_poll(db_engine, pid).value
        assert poll.voters == ("bob",)

    def test_is_open(self, db_engine):
        pid, _ = make_poll(db_engine, poll_due_date=NOW + timedelta(hours=1))
        poll = poll_service.fetch_poll(db_engine, pid).value
        assert is_open(poll, NOW)
        assert not is_open(poll, NOW + timedelta(hours=1))


class TestCloseExpired:
    def test_closes_only_due_polls(self, db_engine):
        due, _ = make_poll(db_engine, poll_due_date=NOW - timedelta(hours=1))
        on_time, _ = make_poll(db_engine, poll_due_date=NOW)
        future, _ = make_poll(db_engine, poll_due_date=NOW + timedelta(hours=1))

        result = poll_service.close_expired_polls(db_engine, now=NOW)

        assert [p.id for p in result.value] == [due, on_time]
        assert all(p.is_closed for p in result.value)
        assert poll_service.fetch_poll(db_engine, future).value.is_closed is False

    def test_already_closed_not_reported(self, db_engine):
        make_poll(db_engine, poll_due_date=NOW - timedelta(hours=1), is_closed=True)
        assert poll_service.close_expired_polls(db_engine, now=NOW).value == []

    def test_second_sweep_is_a_no_op(self, db_engine):
        make_poll(db_engine, poll_due_date=NOW - timedelta(hours=1))
        assert len(poll_service.close_expired_polls(db_engine, now=NOW).value) == 1
        assert poll_service.close_expired_polls(db_engine, now=NOW).value == []

    def test_closed_poll_returned_with_votes(self, db_engine):
        pid, (yes, _) = make_poll(db_engine, poll_due_date=NOW + timedelta(minutes=5))
        poll_service.vote(db_engine, pid, yes, "bob", now=NOW)

        closed = poll_service.close_expired_polls(db_engine, now=NOW + timedelta(minutes=5)).value

        assert closed[0].options[0].users_voted == ("bob",)

    def test_due_date_with_offset_is_compared_in_utc(self, db_engine):
        plus_five = timezone(timedelta(hours=5))
        due = (NOW - timedelta(minutes=30)).astimezone(plus_five)
        pid, _ = make_poll(db_engine, poll_due_date=due)

        closed = poll_service.close_expired_polls(db_engine, now=NOW).value

        assert [p.id for p in closed] == [pid]
        assert poll_service.fetch_poll(db_engine, pid).value.poll_due_date == NOW - timedelta(minutes=30)

    def test_future_due_date_with_offset_stays_open(self, db_engine):
        plus_five = timezone(timedelta(hours=5))
        pid, (yes, _) = make_poll(db_engine, poll_due_date=(NOW + timedelta(minutes=30)).astimezone(plus_five))

        assert poll_service.close_expired_polls(db_engine, now=NOW).value == []
        assert poll_service.vote(db_engine, pid, yes, "bob", now=NOW).ok


class TestCloseAndNotify:
    def test_creator_and_voters_notified(self, db_engine):
        make_users(db_engine, "alice", "bob", "carol")
        pid, (yes, no) = make_poll(db_engine, "alice", poll_due_date=NOW + timedelta(minutes=5))
        poll_service.vote(db_engine, pid, yes, "bob", now=NOW)
        poll_service.vote(db_engine, pid, no, "carol", now=NOW + timedelta(minutes=1))

        later = NOW + timedelta(minutes=10)
        result = run(poll_service.close_expired_polls_and_notify(db_engine, now=later))

        (closure,) = result.value
        assert closure.poll.id == pid
        assert closure.notified == ("alice", "bob", "carol")
        assert closure.error is None
        inbox = notification_service.fetch_inbox(db_engine, "carol").value
        assert [n.notification_type for n in inbox] == ["PollClosed"]

    def test_failed_fan_out_keeps_poll_closed(self, db_engine):
        # creator has no user profile → the fan-out fails for them
        pid, _ = make_poll(db_engine, "ghost", poll_due_date=NOW - timedelta(minutes=1))

        result = run(poll_service.close_expired_polls_and_notify(db_engine, now=NOW))

        (closure,) = result.value
        assert closure.error.kind == ErrorKind.AGGREGATE_FAILURE
        assert poll_service.fetch_poll(db_engine, pid).value.is_closed

    def test_nothing_due(self, db_engine):
        make_poll(db_engine, poll_due_date=NOW + timedelta(days=1))
        assert run(poll_service.close_expired_polls_and_notify(db_engine, now=NOW)).value == []
