"""
agora.services.challenge_service — Challenge Progress Tracker
==============================================================

Records qualifying user actions against every challenge of the matching
type, pruning timed challenges to their sliding window, bootstrapping
records the user does not have yet and unlocking rewards on completion.

``increment_progress`` works in three phases:

    1. **Plan** (one session): load the user's records, select, prune,
       bootstrap and append.  Every new progress array is computed here,
       before anything is written.
    2. **Persist** (one session per record, gathered concurrently): unlock
       the reward when the record completes, then replace the progress
       array.
    3. **Announce**: a ``NewReward`` fan-out for each title newly
       unlocked.  Best effort; a failure is logged and does not undo
       progress.

Also hosts the reward wallet: unlocking frames, equipping frames and
titles, and awarding points.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, exists, select, update
from sqlalchemy.orm import Session, joinedload

from agora.database.engine import get_session, run_db, upsert
from agora.database.models import (
    Challenge,
    ChallengeType,
    NotificationType,
    Question,
    RewardKind,
    User,
    UserChallenge,
    UserReward,
)
from agora.engine.challenges import advance_progress, is_complete, is_eligible
from agora.engine.results import (
    AggregateError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    error_from_exception,
    returns_result,
)
from agora.services.notification_service import announce
from agora.services.recipients import NotificationEvent

logger = logging.getLogger(__name__)

REWARD_LOCKED = "reward_locked"


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ChallengeView:
    id: int
    challenge_type: str
    description: str | None
    action_amount: int
    reward: str
    hours_to_complete: int | None

    @classmethod
    def from_row(cls, row: Challenge) -> ChallengeView:
        return cls(
            id=row.id,
            challenge_type=row.challenge_type,
            description=row.description,
            action_amount=row.action_amount,
            reward=row.reward,
            hours_to_complete=row.hours_to_complete,
        )


@dataclass(frozen=True, slots=True)
class UserChallengeView:
    id: int | None
    username: str
    challenge: ChallengeView
    progress: tuple[str, ...]
    newly_unlocked: bool = False

    @property
    def is_complete(self) -> bool:
        return is_complete(self.progress, self.challenge.action_amount)


@dataclass(frozen=True, slots=True)
class EquippedReward:
    username: str
    reward: str
    kind: RewardKind


@dataclass(frozen=True, slots=True)
class _PlannedUpdate:
    record_id: int | None       # None → bootstrap
    challenge: ChallengeView
    progress: tuple[str, ...]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _load_user(session: Session, username: str) -> User:
    user = session.scalar(select(User).where(User.username == username))
    if user is None:
        raise NotFoundError(f"User {username!r} not found")
    return user


def _parse_challenge_type(challenge_type: str) -> ChallengeType:
    try:
        return ChallengeType(challenge_type)
    except ValueError:
        raise InvalidInputError(f"Unknown challenge type {challenge_type!r}") from None


def _view(record: UserChallenge, *, newly_unlocked: bool = False) -> UserChallengeView:
    return UserChallengeView(
        id=record.id,
        username=record.username,
        challenge=ChallengeView.from_row(record.challenge),
        progress=tuple(record.progress or ()),
        newly_unlocked=newly_unlocked,
    )


# ---------------------------------------------------------------------------
# Phase 1 — plan
# ---------------------------------------------------------------------------
def _plan_increment(
    engine: Engine,
    username: str,
    challenge_type: ChallengeType,
    now: datetime,
) -> tuple[int, list[_PlannedUpdate]]:
    with get_session(engine) as session:
        user = _load_user(session, username)

        records = session.scalars(
            select(UserChallenge)
            .join(UserChallenge.challenge)
            .options(joinedload(UserChallenge.challenge))
            .where(
                UserChallenge.username == username,
                Challenge.challenge_type == challenge_type,
            )
            .order_by(UserChallenge.id)
        ).all()

        planned: list[_PlannedUpdate] = []
        for record in records:
            challenge = record.challenge
            progress = record.progress or []
            if not is_eligible(progress, challenge.action_amount):
                continue
            planned.append(_PlannedUpdate(
                record_id=record.id,
                challenge=ChallengeView.from_row(challenge),
                progress=tuple(advance_progress(progress, challenge.hours_to_complete, now)),
            ))

        unstarted = session.scalars(
            select(Challenge)
            .where(
                Challenge.challenge_type == challenge_type,
                ~exists().where(
                    UserChallenge.username == username,
                    UserChallenge.challenge_id == Challenge.id,
                ),
            )
            .order_by(Challenge.id)
        ).all()
        for challenge in unstarted:
            planned.append(_PlannedUpdate(
                record_id=None,
                challenge=ChallengeView.from_row(challenge),
                progress=tuple(advance_progress([], challenge.hours_to_complete, now)),
            ))

        return user.id, planned


# ---------------------------------------------------------------------------
# Phase 2 — persist (one record per call)
# ---------------------------------------------------------------------------
def _unlock(session: Session, username: str, kind: RewardKind, name: str) -> bool:
    """Set-add one reward; True when it was not unlocked before."""
    stmt = (
        upsert(session, UserReward)
        .values(username=username, kind=kind, name=name)
        .on_conflict_do_nothing(index_elements=["username", "kind", "name"])
    )
    return session.execute(stmt).rowcount == 1


def _persist(engine: Engine, username: str, plan: _PlannedUpdate) -> UserChallengeView:
    with get_session(engine) as session:
        newly_unlocked = False
        if is_complete(plan.progress, plan.challenge.action_amount):
            newly_unlocked = _unlock(session, username, RewardKind.TITLE, plan.challenge.reward)

        progress = list(plan.progress)
        if plan.record_id is None:
            stmt = upsert(session, UserChallenge).values(
                username=username,
                challenge_id=plan.challenge.id,
                progress=progress,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["username", "challenge_id"],
                set_={"progress": stmt.excluded.progress},
            )
            session.execute(stmt)
        else:
            hit = session.execute(
                update(UserChallenge)
                .where(UserChallenge.id == plan.record_id)
                .values(progress=progress)
            ).rowcount
            if hit == 0:
                raise NotFoundError(f"UserChallenge {plan.record_id} disappeared")

        record = session.scalar(
            select(UserChallenge)
            .options(joinedload(UserChallenge.challenge))
            .where(
                UserChallenge.username == username,
                UserChallenge.challenge_id == plan.challenge.id,
            )
        )
        return _view(record, newly_unlocked=newly_unlocked)


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------
@returns_result
async def increment_progress(
    engine: Engine,
    username: str,
    challenge_type: str,
    *,
    now: datetime,
) -> list[UserChallengeView]:
    """Record one *challenge_type* action by *username* at *now*.

    Returns
    -------
    Result[list[UserChallengeView]]
        Every record this call advanced, challenge populated.
        ``NotFound`` for an unknown user, ``AggregateFailure`` if any
        record failed to persist.
    """
    ctype = _parse_challenge_type(challenge_type)
    user_id, planned = await run_db(_plan_increment, engine, username, ctype, now)
    if not planned:
        return []

    results = await asyncio.gather(
        *(run_db(_persist, engine, username, plan) for plan in planned),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
    errors = [error_from_exception(r) for r in results if isinstance(r, Exception)]
    if errors:
        raise AggregateError(
            f"{len(errors)} of {len(planned)} challenge record(s) failed for {username!r}",
            cause=errors[0],
            details=tuple(errors),
        )

    updated: list[UserChallengeView] = list(results)
    for view in updated:
        if not view.newly_unlocked:
            continue
        logger.info("Reward unlocked: %s earned title %r", username, view.challenge.reward)
        await announce(engine, NotificationEvent(NotificationType.NEW_REWARD, user_id), now=now)
    return updated


def _question_asker(engine: Engine, question_id: int) -> str:
    with get_session(engine) as session:
        question = session.get(Question, question_id)
        if question is None:
            raise NotFoundError(f"Question {question_id} not found")
        return question.asked_by


@returns_result
async def increment_progress_for_question_asker(
    engine: Engine,
    question_id: int,
    *,
    now: datetime,
) -> list[UserChallengeView]:
    """Credit an upvote to the author of *question_id*."""
    asker = await run_db(_question_asker, engine, question_id)
    result = await increment_progress(engine, asker, ChallengeType.UPVOTE, now=now)
    return result.unwrap()


@returns_result
def fetch_user_challenges(engine: Engine, username: str) -> list[UserChallengeView]:
    with get_session(engine) as session:
        _load_user(session, username)
        records = session.scalars(
            select(UserChallenge)
            .options(joinedload(UserChallenge.challenge))
            .where(UserChallenge.username == username)
            .order_by(UserChallenge.id)
        ).all()
        return [_view(r) for r in records]


@returns_result
def unlock_frames(engine: Engine, username: str, frames: list[str]) -> list[str]:
    """Set-add *frames* to the user's unlocked frames; returns all frames."""
    with get_session(engine) as session:
        user = _load_user(session, username)
        for frame in dict.fromkeys(frames):
            _unlock(session, username, RewardKind.FRAME, frame)
        session.refresh(user)
        return user.unlocked_frames


@returns_result
def equip_reward(engine: Engine, username: str, reward: str, kind: str) -> EquippedReward:
    """Equip an unlocked frame or title.

    The ownership check and the write are one
    ``UPDATE users … WHERE EXISTS (user_rewards …)``.
    """
    try:
        kind = RewardKind(kind)
    except ValueError:
        raise InvalidInputError(f"Unknown reward kind {kind!r}") from None

    column = "equipped_frame" if kind == RewardKind.FRAME else "equipped_title"
    with get_session(engine) as session:
        _load_user(session, username)
        owned = exists().where(
            UserReward.username == username,
            UserReward.kind == kind,
            UserReward.name == reward,
        )
        hit = session.execute(
            update(User)
            .where(User.username == username, owned)
            .values({column: reward})
        ).rowcount
        if hit == 0:
            raise ConflictError(
                f"{username!r} has not unlocked {kind} {reward!r}", reason=REWARD_LOCKED,
            )

    logger.info("%s equipped %s %r", username, kind, reward)
    return EquippedReward(username=username, reward=reward, kind=kind)


@returns_result
def add_points(engine: Engine, username: str, points: int) -> int:
    """Atomically add *points* to the user's total; returns the new total."""
    with get_session(engine) as session:
        hit = session.execute(
            update(User)
            .where(User.username == username)
            .values(total_points=User.total_points + points)
        ).rowcount
        if hit == 0:
            raise NotFoundError(f"User {username!r} not found")
        return session.scalar(select(User.total_points).where(User.username == username))


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UserProfile:
    id: int
    username: str
    total_points: int
    unlocked_frames: tuple[str, ...]
    unlocked_titles: tuple[str, ...]
    equipped_frame: str | None
    equipped_title: str | None
    blocked_notifications: tuple[str, ...]

    @classmethod
    def from_row(cls, user: User) -> UserProfile:
        return cls(
            id=user.id,
            username=user.username,
            total_points=user.total_points or 0,
            unlocked_frames=tuple(user.unlocked_frames),
            unlocked_titles=tuple(user.unlocked_titles),
            equipped_frame=user.equipped_frame,
            equipped_title=user.equipped_title,
            blocked_notifications=tuple(user.blocked_notifications),
        )


@returns_result
def register_user(engine: Engine, username: str) -> UserProfile:
    if not username:
        raise InvalidInputError("Username is required")
    with get_session(engine) as session:
        inserted = session.execute(
            upsert(session, User)
            .values(username=username, total_points=0)
            .on_conflict_do_nothing(index_elements=["username"])
        ).rowcount
        if inserted == 0:
            raise ConflictError(f"Username {username!r} is taken", reason="username_taken")
        return UserProfile.from_row(_load_user(session, username))


@returns_result
def fetch_user(engine: Engine, username: str) -> UserProfile:
    with get_session(engine) as session:
        return UserProfile.from_row(_load_user(session, username))
