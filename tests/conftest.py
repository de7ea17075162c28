"""
tests/conftest.py — Shared Test Fixtures
=========================================

Every test gets its own file-backed SQLite database.  A file (rather than
``sqlite://`` + StaticPool) lets the fan-out's worker threads each hold
their own connection, the way they do against PostgreSQL.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from agora.database.engine import create_db_engine, init_db
from agora.database.models import (
    Challenge,
    ChallengeType,
    Community,
    CommunityMember,
    Poll,
    PollOption,
    Question,
    User,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def run(coro):
    """Drive a coroutine to completion from a sync test."""
    return asyncio.run(coro)


@pytest.fixture
def db_engine(tmp_path) -> Engine:
    """Create a fresh SQLite database with all Agora tables."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'agora-test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def make_users(engine: Engine, *usernames: str) -> dict[str, int]:
    """Insert users and return ``{username: id}``."""
    with Session(engine) as session:
        users = [User(username=name, total_points=0) for name in usernames]
        session.add_all(users)
        session.commit()
        return {u.username: u.id for u in users}


def make_question(
    engine: Engine,
    asked_by: str = "alice",
    *,
    title: str = "How do I center a div?",
    text: str = "Flexbox or grid?",
    ask_date_time: datetime = NOW,
    community_id: int | None = None,
) -> int:
    with Session(engine) as session:
        question = Question(
            title=title,
            text=text,
            asked_by=asked_by,
            ask_date_time=ask_date_time,
            community_id=community_id,
        )
        session.add(question)
        session.commit()
        return question.id


def make_community(engine: Engine, name: str = "Pythonistas", members: tuple[str, ...] = ()) -> int:
    with Session(engine) as session:
        community = Community(name=name)
        session.add(community)
        session.flush()
        for username in members:
            session.add(CommunityMember(community_id=community.id, username=username))
        session.commit()
        return community.id


def make_poll(
    engine: Engine,
    created_by: str = "alice",
    *,
    options: tuple[str, ...] = ("Yes", "No"),
    poll_date_time: datetime = NOW - timedelta(days=1),
    poll_due_date: datetime = NOW + timedelta(days=1),
    is_closed: bool = False,
    community_id: int | None = None,
) -> tuple[int, list[int]]:
    """Insert a poll; returns ``(poll_id, [option ids in order])``."""
    with Session(engine) as session:
        poll = Poll(
            title="Tabs or spaces?",
            created_by=created_by,
            poll_date_time=poll_date_time,
            poll_due_date=poll_due_date,
            is_closed=is_closed,
            community_id=community_id,
            options=[PollOption(text=text, position=i) for i, text in enumerate(options)],
        )
        session.add(poll)
        session.commit()
        return poll.id, [o.id for o in poll.options]


def make_challenge(
    engine: Engine,
    challenge_type: ChallengeType = ChallengeType.ANSWER,
    action_amount: int = 3,
    reward: str = "Helper",
    hours_to_complete: int | None = None,
) -> int:
    with Session(engine) as session:
        challenge = Challenge(
            challenge_type=challenge_type,
            action_amount=action_amount,
            reward=reward,
            hours_to_complete=hours_to_complete,
        )
        session.add(challenge)
        session.commit()
        return challenge.id
