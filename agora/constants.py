"""
agora.constants — Shared Constants & Helpers
=============================================

Single source of truth for inbox wording and the UTC helpers every
time-sensitive function relies on.  Import from here instead of
duplicating in services and routes.
"""

from __future__ import annotations

from datetime import UTC, datetime

from agora.database.models import NotificationType

# ---------------------------------------------------------------------------
# Inbox wording (used by notification_service.fetch_inbox)
# ---------------------------------------------------------------------------
NOTIFICATION_MESSAGES: dict[NotificationType, str] = {
    NotificationType.ANSWER: "A question you follow has a new answer",
    NotificationType.COMMENT: "Someone commented on your question",
    NotificationType.ANSWER_COMMENT: "Someone commented on your answer",
    NotificationType.UPVOTE: "Your question was upvoted",
    NotificationType.NEW_QUESTION: "New question in your community",
    NotificationType.NEW_POLL: "New poll in your community",
    NotificationType.POLL_CLOSED: "A poll you took part in has closed",
    NotificationType.NEW_ARTICLE: "New article in your community",
    NotificationType.ARTICLE_UPDATE: "An article in your community was updated",
    NotificationType.NEW_REWARD: "You unlocked a new reward",
}


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    """Current time as an aware UTC datetime.

    Only entry points (routes, the sweep loop) call this; the engine
    receives ``now`` as an explicit argument.
    """
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC.

    SQLite hands back naive values even for ``DateTime(timezone=True)``
    columns, so every comparison against ``now`` goes through here.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
