"""
agora.services.question_service — Question Engagement
======================================================

Votes, subscriptions, views, tags, answers and comments on questions,
plus the feed query that feeds :mod:`agora.engine.ranking`.

Every set mutation is one statement:

* vote        — ``INSERT … ON CONFLICT DO UPDATE SET vote_type = CASE …``
* subscribe   — ``INSERT … ON CONFLICT DO UPDATE SET active = NOT active``
* view / tag  — ``INSERT … ON CONFLICT DO NOTHING``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, case, func, not_, select
from sqlalchemy.orm import Session, selectinload

from agora.constants import ensure_utc
from agora.database.engine import get_session, upsert
from agora.database.models import (
    Answer,
    Comment,
    Question,
    QuestionSubscriber,
    QuestionView,
    QuestionVote,
    Tag,
    VoteType,
    question_tags,
)
from agora.engine.ranking import (
    QuestionOrder,
    filter_by_asker,
    latest_answer_time,
    rank,
    search_questions,
)
from agora.engine.results import InvalidInputError, NotFoundError, returns_result

logger = logging.getLogger(__name__)

VOTE_MESSAGES: dict[tuple[VoteType, bool], str] = {
    (VoteType.UPVOTE, True): "Question upvoted successfully",
    (VoteType.UPVOTE, False): "Upvote cancelled successfully",
    (VoteType.DOWNVOTE, True): "Question downvoted successfully",
    (VoteType.DOWNVOTE, False): "Downvote cancelled successfully",
}


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CommentView:
    id: int
    text: str
    comment_by: str
    comment_date_time: datetime

    @classmethod
    def from_row(cls, row: Comment) -> CommentView:
        return cls(row.id, row.text, row.comment_by, ensure_utc(row.comment_date_time))


@dataclass(frozen=True, slots=True)
class AnswerView:
    id: int
    question_id: int
    text: str
    ans_by: str
    ans_date_time: datetime
    comments: tuple[CommentView, ...] = ()

    @classmethod
    def from_row(cls, row: Answer) -> AnswerView:
        return cls(
            id=row.id,
            question_id=row.question_id,
            text=row.text,
            ans_by=row.ans_by,
            ans_date_time=ensure_utc(row.ans_date_time),
            comments=tuple(CommentView.from_row(c) for c in row.comments),
        )


@dataclass(frozen=True, slots=True)
class QuestionSummary:
    id: int
    title: str
    text: str
    asked_by: str
    ask_date_time: datetime
    community_id: int | None
    tags: tuple[str, ...]
    answers: tuple[AnswerView, ...]
    views: tuple[str, ...]
    up_votes: tuple[str, ...]
    down_votes: tuple[str, ...]
    subscribers: tuple[str, ...]
    latest_answer_time: datetime | None = None

    @classmethod
    def from_row(cls, row: Question) -> QuestionSummary:
        return cls(
            id=row.id,
            title=row.title,
            text=row.text,
            asked_by=row.asked_by,
            ask_date_time=ensure_utc(row.ask_date_time),
            community_id=row.community_id,
            tags=tuple(t.name for t in row.tags),
            answers=tuple(AnswerView.from_row(a) for a in row.answers),
            views=tuple(v.username for v in row.views),
            up_votes=tuple(row.up_votes),
            down_votes=tuple(row.down_votes),
            subscribers=tuple(row.subscribers),
            latest_answer_time=latest_answer_time(row),
        )


@dataclass(frozen=True, slots=True)
class VoteOutcome:
    message: str
    vote_type: VoteType
    active: bool
    up_votes: tuple[str, ...]
    down_votes: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SubscriptionOutcome:
    subscribed: bool
    subscribers: tuple[str, ...]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
_EAGER = (
    selectinload(Question.tags),
    selectinload(Question.answers).selectinload(Answer.comments),
    selectinload(Question.views),
    selectinload(Question.votes),
    selectinload(Question.subscriptions),
)


def _load_question(session: Session, question_id: int) -> Question:
    question = session.scalar(
        select(Question).options(*_EAGER).where(Question.id == question_id)
    )
    if question is None:
        raise NotFoundError(f"Question {question_id} not found")
    return question


def _require(**fields) -> None:
    missing = [name for name, value in fields.items() if value is None or value == ""]
    if missing:
        raise InvalidInputError(f"Missing required field(s): {', '.join(missing)}")


# ---------------------------------------------------------------------------
# Votes, subscriptions, views
# ---------------------------------------------------------------------------
@returns_result
def vote_on_question(
    engine: Engine,
    question_id: int,
    username: str,
    vote_type: str,
) -> VoteOutcome:
    """Toggle *username*'s *vote_type* on *question_id*.

    Same type twice cancels; the opposite type moves the user across.
    The user is never in both sets, and never in neither mid-switch.
    """
    try:
        vote_type = VoteType(vote_type)
    except ValueError:
        raise InvalidInputError(f"Unknown vote type {vote_type!r}") from None

    with get_session(engine) as session:
        _load_question(session, question_id)

        current = QuestionVote.__table__.c.vote_type
        stmt = upsert(session, QuestionVote).values(
            question_id=question_id, username=username, vote_type=vote_type,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["question_id", "username"],
            set_={"vote_type": case((current == vote_type, None), else_=vote_type)},
        )
        session.execute(stmt)

        session.expire_all()
        question = _load_question(session, question_id)
        active = username in (
            question.up_votes if vote_type == VoteType.UPVOTE else question.down_votes
        )
        outcome = VoteOutcome(
            message=VOTE_MESSAGES[(vote_type, active)],
            vote_type=vote_type,
            active=active,
            up_votes=tuple(question.up_votes),
            down_votes=tuple(question.down_votes),
        )

    logger.info("Question %d: %s by %s", question_id, outcome.message, username)
    return outcome


@returns_result
def toggle_subscriber(engine: Engine, question_id: int, username: str) -> SubscriptionOutcome:
    with get_session(engine) as session:
        _load_question(session, question_id)

        stmt = upsert(session, QuestionSubscriber).values(
            question_id=question_id, username=username, active=True,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["question_id", "username"],
            set_={"active": not_(QuestionSubscriber.__table__.c.active)},
        )
        session.execute(stmt)

        session.expire_all()
        subscribers = tuple(_load_question(session, question_id).subscribers)
        return SubscriptionOutcome(subscribed=username in subscribers, subscribers=subscribers)


@returns_result
def record_view(engine: Engine, question_id: int, username: str) -> QuestionSummary:
    """Add *username* to the question's viewers and return the question."""
    with get_session(engine) as session:
        _load_question(session, question_id)
        session.execute(
            upsert(session, QuestionView)
            .values(question_id=question_id, username=username)
            .on_conflict_do_nothing(index_elements=["question_id", "username"])
        )
        session.expire_all()
        return QuestionSummary.from_row(_load_question(session, question_id))


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------
def _find_or_create_tags(session: Session, names: list[str]) -> list[Tag]:
    unique = list(dict.fromkeys(n.strip() for n in names))
    if any(not n for n in unique):
        raise InvalidInputError("Tag names cannot be blank")
    for name in unique:
        session.execute(
            upsert(session, Tag)
            .values(name=name)
            .on_conflict_do_nothing(index_elements=["name"])
        )
    by_name = {t.name: t for t in session.scalars(select(Tag).where(Tag.name.in_(unique)))}
    return [by_name[n] for n in unique]


@returns_result
def process_tags(engine: Engine, names: list[str]) -> list[str]:
    """Dedupe *names* and find-or-create each tag; returns the names."""
    with get_session(engine) as session:
        return [t.name for t in _find_or_create_tags(session, names)]


@returns_result
def tag_question_counts(engine: Engine) -> dict[str, int]:
    """Tag name → number of questions carrying it (zero included)."""
    with get_session(engine) as session:
        rows = session.execute(
            select(Tag.name, func.count(question_tags.c.question_id))
            .outerjoin(question_tags, question_tags.c.tag_id == Tag.id)
            .group_by(Tag.id, Tag.name)
            .order_by(Tag.name)
        ).all()
        return {name: count for name, count in rows}


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------
@returns_result
def add_question(
    engine: Engine,
    *,
    title: str,
    text: str,
    asked_by: str,
    ask_date_time: datetime,
    tags: list[str] | None = None,
) -> QuestionSummary:
    _require(title=title, text=text, asked_by=asked_by, ask_date_time=ask_date_time)
    with get_session(engine) as session:
        question = Question(
            title=title,
            text=text,
            asked_by=asked_by,
            ask_date_time=ask_date_time,
            tags=_find_or_create_tags(session, list(tags or [])),
        )
        session.add(question)
        session.flush()
        question_id = question.id

        session.expire_all()
        summary = QuestionSummary.from_row(_load_question(session, question_id))
    logger.info("Question %d asked by %s", summary.id, asked_by)
    return summary


@returns_result
def add_answer(
    engine: Engine,
    question_id: int,
    *,
    text: str,
    ans_by: str,
    ans_date_time: datetime,
) -> AnswerView:
    _require(text=text, ans_by=ans_by, ans_date_time=ans_date_time)
    with get_session(engine) as session:
        _load_question(session, question_id)
        answer = Answer(
            question_id=question_id,
            text=text,
            ans_by=ans_by,
            ans_date_time=ans_date_time,
        )
        session.add(answer)
        session.flush()
        return AnswerView.from_row(answer)


@returns_result
def add_comment(
    engine: Engine,
    target: str,
    target_id: int,
    *,
    text: str,
    comment_by: str,
    comment_date_time: datetime,
) -> CommentView:
    """Attach a comment to a question (``target="question"``) or answer."""
    _require(text=text, comment_by=comment_by, comment_date_time=comment_date_time)
    if target not in ("question", "answer"):
        raise InvalidInputError(f"Invalid comment target {target!r}")

    with get_session(engine) as session:
        parent = session.get(Question if target == "question" else Answer, target_id)
        if parent is None:
            raise NotFoundError(f"{target.capitalize()} {target_id} not found")
        comment = Comment(
            text=text,
            comment_by=comment_by,
            comment_date_time=comment_date_time,
            question_id=target_id if target == "question" else None,
            answer_id=target_id if target == "answer" else None,
        )
        session.add(comment)
        session.flush()
        return CommentView.from_row(comment)


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------
@returns_result
def get_questions_by_order(
    engine: Engine,
    order: str,
    *,
    search: str | None = None,
    asked_by: str | None = None,
) -> list[QuestionSummary]:
    try:
        order = QuestionOrder(order)
    except ValueError:
        raise InvalidInputError(f"Unknown question order {order!r}") from None

    with get_session(engine) as session:
        questions = session.scalars(select(Question).options(*_EAGER)).all()
        ranked = rank(questions, order)
        if asked_by:
            ranked = filter_by_asker(ranked, asked_by)
        if search:
            ranked = search_questions(ranked, search)
        return [QuestionSummary.from_row(q) for q in ranked]


@returns_result
def fetch_question(engine: Engine, question_id: int) -> QuestionSummary:
    with get_session(engine) as session:
        return QuestionSummary.from_row(_load_question(session, question_id))
