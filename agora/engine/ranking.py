"""
agora.engine.ranking — Feed Ordering & Search
==============================================

Pure functions over in-memory question collections.  They accept any
objects exposing ``ask_date_time``, ``answers`` (each with
``ans_date_time``), ``views``, ``tags`` (each with ``name``), ``title``,
``text`` and ``asked_by`` — ORM rows and test doubles alike.

No database I/O.  Inputs are never mutated; every function returns a new
list.
"""

from __future__ import annotations

import enum
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from agora.constants import ensure_utc

_TAG_TOKEN = re.compile(r"\[([^\]]+)\]")
_WORD_TOKEN = re.compile(r"\b\w+\b")


class QuestionOrder(enum.StrEnum):
    NEWEST = "newest"
    ACTIVE = "active"
    UNANSWERED = "unanswered"
    MOST_VIEWED = "mostViewed"


@dataclass(frozen=True, slots=True)
class SearchQuery:
    """A free-text query split into ``[tag]`` tokens and plain keywords."""

    tags: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.tags and not self.keywords


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------
def latest_answer_time(question: Any) -> datetime | None:
    """Most recent ``ans_date_time`` among the question's answers, if any."""
    times = [ensure_utc(a.ans_date_time) for a in question.answers]
    return max(times) if times else None


def _newest(questions: Iterable[Any]) -> list[Any]:
    return sorted(questions, key=lambda q: ensure_utc(q.ask_date_time), reverse=True)


def _unanswered(questions: Iterable[Any]) -> list[Any]:
    return [q for q in _newest(questions) if len(q.answers) == 0]


def _active(questions: Iterable[Any]) -> list[Any]:
    # Answered questions first (latest answer desc), unanswered after;
    # newest-first is the tiebreak inside both groups.
    ordered = _newest(questions)
    answered = [q for q in ordered if q.answers]
    answered.sort(key=latest_answer_time, reverse=True)
    return answered + [q for q in ordered if not q.answers]


def _most_viewed(questions: Iterable[Any]) -> list[Any]:
    return sorted(_newest(questions), key=lambda q: len(q.views), reverse=True)


_ORDERINGS: dict[QuestionOrder, Callable[[Iterable[Any]], list[Any]]] = {
    QuestionOrder.NEWEST: _newest,
    QuestionOrder.ACTIVE: _active,
    QuestionOrder.UNANSWERED: _unanswered,
    QuestionOrder.MOST_VIEWED: _most_viewed,
}


def rank(questions: Sequence[Any], order: QuestionOrder | str) -> list[Any]:
    """Return *questions* arranged for the given feed *order*.

    Raises
    ------
    ValueError
        If *order* is not a :class:`QuestionOrder` value.
    """
    return _ORDERINGS[QuestionOrder(order)](questions)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------
def parse_search(query: str) -> SearchQuery:
    """Split *query* into bracketed tag names and the remaining words.

    >>> parse_search("[react][javascript] router navigate")
    SearchQuery(tags=('react', 'javascript'), keywords=('router', 'navigate'))
    """
    tags = tuple(_TAG_TOKEN.findall(query))
    keywords = tuple(_WORD_TOKEN.findall(_TAG_TOKEN.sub(" ", query)))
    return SearchQuery(tags=tags, keywords=keywords)


def _has_tag(question: Any, tags: Sequence[str]) -> bool:
    names = {t.name for t in question.tags}
    return any(tag in names for tag in tags)


def _has_keyword(question: Any, keywords: Sequence[str]) -> bool:
    return any(w in question.title or w in question.text for w in keywords)


def filter_questions(
    questions: Sequence[Any],
    tags: Sequence[str] = (),
    keywords: Sequence[str] = (),
) -> list[Any]:
    """Keep questions matching any tag OR any keyword.

    Both empty keeps everything.  Keyword matching is a case-sensitive
    substring test against title and text.
    """
    if not tags and not keywords:
        return list(questions)
    if not keywords:
        return [q for q in questions if _has_tag(q, tags)]
    if not tags:
        return [q for q in questions if _has_keyword(q, keywords)]
    return [q for q in questions if _has_keyword(q, keywords) or _has_tag(q, tags)]


def search_questions(questions: Sequence[Any], query: str) -> list[Any]:
    parsed = parse_search(query)
    return filter_questions(questions, parsed.tags, parsed.keywords)


def filter_by_asker(questions: Sequence[Any], asked_by: str) -> list[Any]:
    return [q for q in questions if q.asked_by == asked_by]
