"""
agora.services.community_service — Community Membership & Content
==================================================================

Places questions, polls and articles into communities.  These functions
only persist; the matching ``NewQuestion`` / ``NewPoll`` / ``NewArticle``
/ ``ArticleUpdate`` fan-out is sent by the caller once the write has
committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session, selectinload

from agora.constants import ensure_utc
from agora.database.engine import get_session, upsert
from agora.database.models import Article, Community, CommunityMember, Poll, PollOption, Question
from agora.engine.results import InvalidInputError, NotFoundError, returns_result
from agora.services.poll_service import PollView

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommunityView:
    id: int
    name: str
    description: str | None
    members: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ArticleView:
    id: int
    community_id: int | None
    title: str
    body: str
    created_by: str | None
    latest_edit_date: datetime | None

    @classmethod
    def from_row(cls, row: Article) -> ArticleView:
        return cls(
            id=row.id,
            community_id=row.community_id,
            title=row.title,
            body=row.body,
            created_by=row.created_by,
            latest_edit_date=ensure_utc(row.latest_edit_date) if row.latest_edit_date else None,
        )


def _load_community(session: Session, community_id: int) -> Community:
    community = session.get(Community, community_id)
    if community is None:
        raise NotFoundError(f"Community {community_id} not found")
    return community


# ---------------------------------------------------------------------------
# Communities & membership
# ---------------------------------------------------------------------------
@returns_result
def create_community(engine: Engine, name: str, description: str | None = None) -> CommunityView:
    if not name:
        raise InvalidInputError("Community name is required")
    with get_session(engine) as session:
        community = Community(name=name, description=description)
        session.add(community)
        session.flush()
        return CommunityView(community.id, community.name, community.description, ())


@returns_result
def fetch_community(engine: Engine, community_id: int) -> CommunityView:
    with get_session(engine) as session:
        community = _load_community(session, community_id)
        return CommunityView(
            community.id, community.name, community.description, tuple(community.member_names),
        )


@returns_result
def list_communities(engine: Engine) -> list[CommunityView]:
    """Every community with its members, oldest first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Community).options(selectinload(Community.members)).order_by(Community.id)
        )
        return [
            CommunityView(c.id, c.name, c.description, tuple(c.member_names)) for c in rows
        ]


@returns_result
def join_community(engine: Engine, community_id: int, username: str) -> CommunityView:
    """Set-add *username* to the community's members."""
    with get_session(engine) as session:
        _load_community(session, community_id)
        session.execute(
            upsert(session, CommunityMember)
            .values(community_id=community_id, username=username)
            .on_conflict_do_nothing(index_elements=["community_id", "username"])
        )
        session.expire_all()
        community = _load_community(session, community_id)
        view = CommunityView(
            community.id, community.name, community.description, tuple(community.member_names),
        )
    logger.info("%s joined community %r", username, view.name)
    return view


# ---------------------------------------------------------------------------
# Content placement
# ---------------------------------------------------------------------------
@returns_result
def add_question_to_community(engine: Engine, community_id: int, question_id: int) -> int:
    """Move an existing question into a community; returns the question id."""
    with get_session(engine) as session:
        _load_community(session, community_id)
        hit = session.execute(
            update(Question)
            .where(Question.id == question_id)
            .values(community_id=community_id)
        ).rowcount
        if hit == 0:
            raise NotFoundError(f"Question {question_id} not found")
    return question_id


@returns_result
def save_poll_to_community(
    engine: Engine,
    community_id: int,
    *,
    title: str,
    options: list[str],
    created_by: str,
    poll_date_time: datetime,
    poll_due_date: datetime,
) -> PollView:
    if not title or not created_by:
        raise InvalidInputError("Poll title and creator are required")
    if len(options) < 2 or any(not o for o in options):
        raise InvalidInputError("A poll needs at least two non-empty options")
    if ensure_utc(poll_due_date) <= ensure_utc(poll_date_time):
        raise InvalidInputError("Poll due date must be after its creation time")

    with get_session(engine) as session:
        _load_community(session, community_id)
        poll = Poll(
            community_id=community_id,
            title=title,
            created_by=created_by,
            poll_date_time=poll_date_time,
            poll_due_date=poll_due_date,
            is_closed=False,
            options=[PollOption(text=text, position=i) for i, text in enumerate(options)],
        )
        session.add(poll)
        session.flush()
        view = PollView.from_row(poll)

    logger.info("Poll %d %r saved to community %d", view.id, title, community_id)
    return view


@returns_result
def save_article_to_community(
    engine: Engine,
    community_id: int,
    *,
    title: str,
    body: str,
    created_by: str | None = None,
    latest_edit_date: datetime | None = None,
) -> ArticleView:
    if not title or not body:
        raise InvalidInputError("Article title and body are required")
    with get_session(engine) as session:
        _load_community(session, community_id)
        article = Article(
            community_id=community_id,
            title=title,
            body=body,
            created_by=created_by,
            latest_edit_date=latest_edit_date,
        )
        session.add(article)
        session.flush()
        return ArticleView.from_row(article)


@returns_result
def fetch_article(engine: Engine, article_id: int) -> ArticleView:
    with get_session(engine) as session:
        article = session.get(Article, article_id)
        if article is None:
            raise NotFoundError(f"Article {article_id} not found")
        return ArticleView.from_row(article)


@returns_result
def update_article(
    engine: Engine,
    article_id: int,
    *,
    title: str,
    body: str,
    latest_edit_date: datetime,
) -> ArticleView:
    if not title or not body:
        raise InvalidInputError("Article title and body are required")
    with get_session(engine) as session:
        hit = session.execute(
            update(Article)
            .where(Article.id == article_id)
            .values(title=title, body=body, latest_edit_date=latest_edit_date)
        ).rowcount
        if hit == 0:
            raise NotFoundError(f"Article {article_id} not found")
        session.expire_all()
        return ArticleView.from_row(session.get(Article, article_id))


@returns_result
def list_community_content(engine: Engine, community_id: int) -> dict[str, list[int]]:
    """Ids of the questions, polls and articles placed in a community."""
    with get_session(engine) as session:
        _load_community(session, community_id)
        return {
            "questions": list(session.scalars(
                select(Question.id).where(Question.community_id == community_id).order_by(Question.id)
            )),
            "polls": list(session.scalars(
                select(Poll.id).where(Poll.community_id == community_id).order_by(Poll.id)
            )),
            "articles": list(session.scalars(
                select(Article.id).where(Article.community_id == community_id).order_by(Article.id)
            )),
        }
