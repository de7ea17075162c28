"""
agora.services.recipients — Recipient Resolution
=================================================

Handler registry mapping each :class:`NotificationType` to the function
that turns a source object id into the usernames to notify.  The registry
is checked for exhaustiveness when this module is imported, so adding a
notification type without a resolver fails at startup rather than at the
first event of that type.

Every resolver runs inside the caller's session and raises
:class:`NotFoundError` when the referenced object does not exist.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.database.models import (
    Answer,
    Article,
    CommunityMember,
    NotificationType,
    Poll,
    PollVote,
    Question,
    QuestionSubscriber,
    SourceType,
    User,
)
from agora.engine.results import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """A domain event that fans out into notifications.

    ``source_id`` is the id of the question, answer, poll or article the
    event refers to; for ``NewReward`` it is the rewarded user's id.
    """

    notification_type: NotificationType
    source_id: int


# Source reference stored on each Notification.  AnswerComment links back
# to the answer's question; NewReward links to nothing.
SOURCE_TYPES: dict[NotificationType, SourceType | None] = {
    NotificationType.ANSWER: SourceType.QUESTION,
    NotificationType.COMMENT: SourceType.QUESTION,
    NotificationType.ANSWER_COMMENT: SourceType.QUESTION,
    NotificationType.UPVOTE: SourceType.QUESTION,
    NotificationType.NEW_QUESTION: SourceType.QUESTION,
    NotificationType.NEW_POLL: SourceType.POLL,
    NotificationType.POLL_CLOSED: SourceType.POLL,
    NotificationType.NEW_ARTICLE: SourceType.ARTICLE,
    NotificationType.ARTICLE_UPDATE: SourceType.ARTICLE,
    NotificationType.NEW_REWARD: None,
}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def _get_or_raise(session: Session, model, object_id: int):
    obj = session.get(model, object_id)
    if obj is None:
        raise NotFoundError(f"{model.__name__} {object_id} not found")
    return obj


def _community_members(session: Session, community_id: int | None) -> list[str]:
    if community_id is None:
        return []
    return list(session.scalars(
        select(CommunityMember.username)
        .where(CommunityMember.community_id == community_id)
        .order_by(CommunityMember.joined_at, CommunityMember.username)
    ))


# ---------------------------------------------------------------------------
# Resolvers — (session, source_id) → usernames
# ---------------------------------------------------------------------------
def _question_asker_and_subscribers(session: Session, question_id: int) -> list[str]:
    question = _get_or_raise(session, Question, question_id)
    subscribers = session.scalars(
        select(QuestionSubscriber.username)
        .where(
            QuestionSubscriber.question_id == question_id,
            QuestionSubscriber.active.is_(True),
        )
        .order_by(QuestionSubscriber.username)
    )
    return [question.asked_by, *subscribers]


def _question_asker(session: Session, question_id: int) -> list[str]:
    return [_get_or_raise(session, Question, question_id).asked_by]


def _answer_author(session: Session, answer_id: int) -> list[str]:
    return [_get_or_raise(session, Answer, answer_id).ans_by]


def _question_community(session: Session, question_id: int) -> list[str]:
    question = _get_or_raise(session, Question, question_id)
    return _community_members(session, question.community_id)


def _poll_community(session: Session, poll_id: int) -> list[str]:
    poll = _get_or_raise(session, Poll, poll_id)
    return _community_members(session, poll.community_id)


def _article_community(session: Session, article_id: int) -> list[str]:
    article = _get_or_raise(session, Article, article_id)
    return _community_members(session, article.community_id)


def _poll_creator_and_voters(session: Session, poll_id: int) -> list[str]:
    poll = _get_or_raise(session, Poll, poll_id)
    voters = session.scalars(
        select(PollVote.username)
        .where(PollVote.poll_id == poll_id)
        .order_by(PollVote.voted_at, PollVote.username)
    )
    return [poll.created_by, *voters]


def _rewarded_user(session: Session, user_id: int) -> list[str]:
    return [_get_or_raise(session, User, user_id).username]


RESOLVERS: dict[NotificationType, Callable[[Session, int], list[str]]] = {
    NotificationType.ANSWER: _question_asker_and_subscribers,
    NotificationType.COMMENT: _question_asker,
    NotificationType.UPVOTE: _question_asker,
    NotificationType.ANSWER_COMMENT: _answer_author,
    NotificationType.NEW_QUESTION: _question_community,
    NotificationType.NEW_POLL: _poll_community,
    NotificationType.NEW_ARTICLE: _article_community,
    NotificationType.ARTICLE_UPDATE: _article_community,
    NotificationType.POLL_CLOSED: _poll_creator_and_voters,
    NotificationType.NEW_REWARD: _rewarded_user,
}

_unresolved = set(NotificationType) - RESOLVERS.keys()
if _unresolved:
    raise RuntimeError(f"No recipient resolver for: {sorted(_unresolved)}")

_unsourced = set(NotificationType) - SOURCE_TYPES.keys()
if _unsourced:
    raise RuntimeError(f"No source type for: {sorted(_unsourced)}")


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------
def dedupe(usernames: Iterable[str]) -> list[str]:
    """Drop repeats, keeping first-seen order."""
    return list(dict.fromkeys(usernames))


def resolve_recipients(session: Session, event: NotificationEvent) -> list[str]:
    """Return the distinct usernames *event* must reach.

    Raises
    ------
    NotFoundError
        If the referenced source object does not exist.
    """
    resolver = RESOLVERS[NotificationType(event.notification_type)]
    recipients = dedupe(resolver(session, event.source_id))
    logger.debug(
        "Resolved %d recipient(s) for %s on %d",
        len(recipients), event.notification_type, event.source_id,
    )
    return recipients


def source_reference(session: Session, event: NotificationEvent) -> tuple[SourceType | None, int | None]:
    """The ``(source_type, source_id)`` pair stored on each notification."""
    source_type = SOURCE_TYPES[NotificationType(event.notification_type)]
    if source_type is None:
        return None, None
    if event.notification_type == NotificationType.ANSWER_COMMENT:
        return source_type, _get_or_raise(session, Answer, event.source_id).question_id
    return source_type, event.source_id
