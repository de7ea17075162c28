"""
agora.engine.challenges — Sliding-Window Progress Arithmetic
=============================================================

Pure helpers for the challenge tracker.  Progress is stored as a JSON
array of ISO-8601 UTC timestamps, one per qualifying action.  A timed
challenge only counts actions newer than ``now - hours_to_complete``,
recomputed at every call.

No database I/O.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

from agora.constants import ensure_utc


def serialize_timestamp(moment: datetime) -> str:
    return ensure_utc(moment).isoformat()


def parse_timestamp(raw: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(raw))


def is_eligible(progress: Sequence[str], action_amount: int) -> bool:
    """True while the challenge still accepts progress."""
    return len(progress) < action_amount


def is_complete(progress: Sequence[str], action_amount: int) -> bool:
    # Equality: progress is only appended while under target, so it never
    # exceeds action_amount.
    return len(progress) == action_amount


def prune_progress(
    progress: Sequence[str],
    hours_to_complete: int | None,
    now: datetime,
) -> list[str]:
    """Drop entries older than ``now - hours_to_complete``.

    Untimed challenges (``hours_to_complete is None``) keep everything.
    The cutoff is computed once from *now*; an entry exactly on the cutoff
    still counts.
    """
    if hours_to_complete is None:
        return list(progress)
    cutoff = ensure_utc(now) - timedelta(hours=hours_to_complete)
    return [p for p in progress if parse_timestamp(p) >= cutoff]


def advance_progress(
    progress: Sequence[str],
    hours_to_complete: int | None,
    now: datetime,
) -> list[str]:
    """Prune by window then record one action at *now*.

    >>> from datetime import UTC
    >>> t = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    >>> advance_progress([], None, t)
    ['2024-01-01T12:00:00+00:00']
    """
    return [*prune_progress(progress, hours_to_complete, now), serialize_timestamp(now)]
