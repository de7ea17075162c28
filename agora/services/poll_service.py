"""
agora.services.poll_service — Poll Lifecycle Manager
=====================================================

Vote application and the expiry sweep.

A vote is a single conditional statement::

    INSERT INTO poll_votes (poll_id, username, option_id, voted_at)
    SELECT :poll, :user, :option, :now
    WHERE EXISTS (SELECT * FROM polls
                  WHERE id = :poll AND NOT is_closed AND poll_due_date > :now)
    ON CONFLICT (poll_id, username) DO NOTHING

The ``(poll_id, username)`` key covers every option of the poll, so two
concurrent votes by one user on different options cannot both land.  When
no row is inserted the poll is re-read to report *why*.

Closing is ``UPDATE polls SET is_closed = true WHERE id = :id AND NOT
is_closed``: a set, never a toggle, and only the caller whose update hit
a row reports the poll as closed by this sweep.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, exists, literal, select, update
from sqlalchemy.orm import Session

from agora.constants import ensure_utc
from agora.database.engine import get_session, run_db, upsert
from agora.database.models import NotificationType, Poll, PollOption, PollVote, UTCDateTime
from agora.engine.results import (
    ConflictError,
    EngineError,
    NotFoundError,
    returns_result,
)
from agora.services.notification_service import notify
from agora.services.recipients import NotificationEvent

logger = logging.getLogger(__name__)

POLL_CLOSED = "poll_closed"
ALREADY_VOTED = "already_voted"


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PollOptionView:
    id: int
    text: str
    users_voted: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class PollView:
    id: int
    title: str
    community_id: int | None
    created_by: str
    poll_date_time: datetime
    poll_due_date: datetime
    is_closed: bool
    options: tuple[PollOptionView, ...]

    @classmethod
    def from_row(cls, poll: Poll) -> PollView:
        return cls(
            id=poll.id,
            title=poll.title,
            community_id=poll.community_id,
            created_by=poll.created_by,
            poll_date_time=ensure_utc(poll.poll_date_time),
            poll_due_date=ensure_utc(poll.poll_due_date),
            is_closed=poll.is_closed,
            options=tuple(
                PollOptionView(id=o.id, text=o.text, users_voted=tuple(o.users_voted))
                for o in poll.options
            ),
        )

    @property
    def voters(self) -> tuple[str, ...]:
        return tuple(u for o in self.options for u in o.users_voted)


@dataclass(frozen=True, slots=True)
class PollClosure:
    """One poll closed by a sweep and how its PollClosed fan-out went."""

    poll: PollView
    notified: tuple[str, ...] = ()
    error: EngineError | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def is_open(poll: Poll | PollView, now: datetime) -> bool:
    """Open means not flagged closed and not yet due at *now*."""
    return not poll.is_closed and ensure_utc(poll.poll_due_date) > ensure_utc(now)


def _load_poll(session: Session, poll_id: int) -> Poll:
    poll = session.get(Poll, poll_id)
    if poll is None:
        raise NotFoundError(f"Poll {poll_id} not found")
    return poll


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------
@returns_result
def fetch_poll(engine: Engine, poll_id: int) -> PollView:
    with get_session(engine) as session:
        return PollView.from_row(_load_poll(session, poll_id))


@returns_result
def vote(
    engine: Engine,
    poll_id: int,
    option_id: int,
    username: str,
    *,
    now: datetime,
) -> PollView:
    """Cast *username*'s single vote in *poll_id* for *option_id*.

    Returns
    -------
    Result[PollView]
        ``NotFound`` for an unknown poll or an option of another poll;
        ``Conflict`` with reason ``poll_closed`` or ``already_voted``.
    """
    now = ensure_utc(now)
    with get_session(engine) as session:
        poll = _load_poll(session, poll_id)
        option = session.get(PollOption, option_id)
        if option is None or option.poll_id != poll_id:
            raise NotFoundError(f"Option {option_id} not found in poll {poll_id}")

        still_open = exists().where(
            Poll.id == poll_id,
            Poll.is_closed.is_(False),
            Poll.poll_due_date > now,
        )
        row = select(
            literal(poll_id),
            literal(username),
            literal(option_id),
            literal(now, UTCDateTime()),
        ).where(still_open)
        stmt = (
            upsert(session, PollVote)
            .from_select(["poll_id", "username", "option_id", "voted_at"], row)
            .on_conflict_do_nothing(index_elements=["poll_id", "username"])
        )
        inserted = session.execute(stmt).rowcount

        session.expire_all()
        poll = _load_poll(session, poll_id)
        if inserted == 0:
            if not is_open(poll, now):
                raise ConflictError(f"Poll {poll_id} is closed", reason=POLL_CLOSED)
            raise ConflictError(
                f"{username!r} already voted in poll {poll_id}", reason=ALREADY_VOTED,
            )

        logger.info("Vote recorded: %s → option %d of poll %d", username, option_id, poll_id)
        return PollView.from_row(poll)


@returns_result
def close_expired_polls(engine: Engine, *, now: datetime) -> list[PollView]:
    """Close every open poll whose due date is at or before *now*.

    Returns only the polls this call closed, options populated.  Sending
    ``PollClosed`` notifications is the caller's job; see
    :func:`close_expired_polls_and_notify`.
    """
    now = ensure_utc(now)
    with get_session(engine) as session:
        due = session.scalars(
            select(Poll.id)
            .where(Poll.is_closed.is_(False), Poll.poll_due_date <= now)
            .order_by(Poll.poll_due_date, Poll.id)
        ).all()

        closed_ids: list[int] = []
        for poll_id in due:
            hit = session.execute(
                update(Poll)
                .where(Poll.id == poll_id, Poll.is_closed.is_(False))
                .values(is_closed=True)
            ).rowcount
            if hit:
                closed_ids.append(poll_id)

        session.expire_all()
        closed = [PollView.from_row(_load_poll(session, pid)) for pid in closed_ids]

    for poll in closed:
        logger.info("Poll closed: %r (id=%d, %d voter(s))", poll.title, poll.id, len(poll.voters))
    return closed


@returns_result
async def close_expired_polls_and_notify(engine: Engine, *, now: datetime) -> list[PollClosure]:
    """Sweep expired polls, then fan out ``PollClosed`` for each one.

    A failed fan-out is logged and recorded on its :class:`PollClosure`;
    it never reopens the poll or stops the remaining notifications.
    """
    closed = (await run_db(close_expired_polls, engine, now=now)).unwrap()

    closures: list[PollClosure] = []
    for poll in closed:
        result = await notify(
            engine, NotificationEvent(NotificationType.POLL_CLOSED, poll.id), now=now,
        )
        if result.ok:
            closures.append(PollClosure(poll=poll, notified=result.value.recipients))
        else:
            logger.warning(
                "PollClosed fan-out for poll %d failed: %s", poll.id, result.error.message,
            )
            closures.append(PollClosure(poll=poll, error=result.error))
    return closures
