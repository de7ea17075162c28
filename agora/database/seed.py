"""
agora.database.seed — Default Challenge Seeder
===============================================

Baseline challenges seeded on first startup so the tracker has something
to count against.

Idempotent — a challenge is only inserted when no challenge with the same
type and reward exists.  Challenges edited or added later are never
overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from agora.database.models import Challenge, ChallengeType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default challenge catalogue
# ---------------------------------------------------------------------------
DEFAULT_CHALLENGES: list[tuple[ChallengeType, int, str, int | None, str]] = [
    (ChallengeType.ANSWER, 1, "Helper", None, "Answer a question"),
    (ChallengeType.ANSWER, 10, "Expert", None, "Answer 10 questions"),
    (ChallengeType.ANSWER, 3, "Quick Responder", 24, "Answer 3 questions within 24 hours"),
    (ChallengeType.QUESTION, 1, "Curious", None, "Ask a question"),
    (ChallengeType.QUESTION, 5, "Inquisitor", 168, "Ask 5 questions within a week"),
    (ChallengeType.COMMENT, 5, "Conversationalist", None, "Leave 5 comments"),
    (ChallengeType.UPVOTE, 1, "Noticed", None, "Receive an upvote on a question"),
    (ChallengeType.UPVOTE, 10, "Rising Star", 72, "Receive 10 upvotes within 3 days"),
]
"""Each entry is ``(type, action_amount, reward, hours_to_complete, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_challenges(engine: Engine) -> int:
    """Insert default challenges that don't yet exist.

    Safe to call on every startup.  Returns the number of rows inserted.
    """
    session = Session(engine)
    inserted = 0
    try:
        existing = {
            (str(ctype), reward)
            for ctype, reward in session.execute(select(Challenge.challenge_type, Challenge.reward))
        }
        for ctype, amount, reward, hours, desc in DEFAULT_CHALLENGES:
            if (str(ctype), reward) in existing:
                continue
            session.add(Challenge(
                challenge_type=ctype,
                action_amount=amount,
                reward=reward,
                hours_to_complete=hours,
                description=desc,
            ))
            inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default challenges.", inserted)
    return inserted
