"""
agora.services.notification_service — Notification Fan-out Engine
==================================================================

Turns one domain event into one Notification record per recipient and
attaches each record to its recipient's inbox unless the recipient has
blocked that notification type.

Lifecycle of one event::

    Triggered → RecipientsResolved → Created (×N) → Delivered (×N)

Resolution runs in a single session.  Each recipient is then handled in
its own session on a worker thread; all recipients are dispatched
together and joined with ``asyncio.gather``.  There is no atomicity
across recipients: a failure for one leaves the others delivered, and the
call reports an ``AggregateFailure`` whose ``details`` hold every
recipient's outcome.

Inbox attachment is a single ``INSERT … SELECT … WHERE NOT EXISTS``
against the recipient's preferences, so a concurrent opt-out toggle can
never race it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, and_, exists, insert, literal, not_, select, update
from sqlalchemy.orm import Session

from agora.constants import NOTIFICATION_MESSAGES, ensure_utc
from agora.database.engine import get_session, run_db, upsert
from agora.database.models import (
    InboxEntry,
    Notification,
    NotificationPreference,
    NotificationType,
    SourceType,
    User,
)
from agora.engine.results import (
    AggregateError,
    EngineError,
    InvalidInputError,
    NotFoundError,
    error_from_exception,
    returns_result,
)
from agora.services.recipients import NotificationEvent, resolve_recipients, source_reference

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Return types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RecipientOutcome:
    """What happened for one recipient of a fan-out.

    ``delivered`` is False for a recipient who blocked the type: the
    record exists but was not attached to the inbox.
    """

    username: str
    notification_id: int | None = None
    delivered: bool = False
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class FanOutReport:
    notification_type: NotificationType
    source_id: int
    recipients: tuple[str, ...]
    outcomes: tuple[RecipientOutcome, ...]

    @property
    def delivered(self) -> tuple[str, ...]:
        return tuple(o.username for o in self.outcomes if o.delivered)

    @property
    def suppressed(self) -> tuple[str, ...]:
        return tuple(o.username for o in self.outcomes if o.ok and not o.delivered)


@dataclass(frozen=True, slots=True)
class NotificationView:
    id: int
    notification_type: str
    source_type: str | None
    source_id: int | None
    is_read: bool
    created_at: datetime
    message: str

    @classmethod
    def from_row(cls, row: Notification) -> NotificationView:
        return cls(
            id=row.id,
            notification_type=row.notification_type,
            source_type=row.source_type,
            source_id=row.source_id,
            is_read=row.is_read,
            created_at=ensure_utc(row.created_at),
            message=NOTIFICATION_MESSAGES[NotificationType(row.notification_type)],
        )


# ---------------------------------------------------------------------------
# Sync building blocks (run on worker threads via run_db)
# ---------------------------------------------------------------------------
def _require_user(session: Session, username: str) -> None:
    found = session.scalar(select(User.id).where(User.username == username))
    if found is None:
        raise NotFoundError(f"User {username!r} not found")


def _is_blocked(username: str, notification_type: str):
    return exists().where(
        NotificationPreference.username == username,
        NotificationPreference.notification_type == notification_type,
        NotificationPreference.blocked.is_(True),
    )


def _resolve(engine: Engine, event: NotificationEvent):
    with get_session(engine) as session:
        recipients = resolve_recipients(session, event)
        source_type, source_id = source_reference(session, event)
    return recipients, source_type, source_id


def _deliver(
    engine: Engine,
    username: str,
    notification_type: NotificationType,
    source_type: SourceType | None,
    source_id: int | None,
    now: datetime,
) -> RecipientOutcome:
    """Create one record for *username* and attach it unless blocked.

    An unknown user fails with ``NotFound`` before anything is written.
    """
    with get_session(engine) as session:
        _require_user(session, username)

        notification = Notification(
            recipient=username,
            notification_type=notification_type,
            source_type=source_type,
            source_id=source_id,
            is_read=False,
            created_at=now,
        )
        session.add(notification)
        session.flush()

        attach = _inbox_attach(username, notification.id, notification_type)
        delivered = session.execute(attach).rowcount == 1

    return RecipientOutcome(
        username=username,
        notification_id=notification.id,
        delivered=delivered,
    )


def _inbox_attach(username: str, notification_id: int, notification_type: str):
    """``INSERT INTO inbox_entries … SELECT … WHERE NOT EXISTS (blocked)``."""
    gate = select(literal(username), literal(notification_id)).where(
        not_(_is_blocked(username, notification_type))
    )
    return insert(InboxEntry).from_select(["username", "notification_id"], gate)


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------
@returns_result
async def notify(engine: Engine, event: NotificationEvent, *, now: datetime) -> FanOutReport:
    """Deliver *event* to every resolved recipient.

    Returns
    -------
    Result[FanOutReport]
        ``NotFound`` if the source object is missing, ``InvalidInput`` if
        nobody is to be notified, ``AggregateFailure`` if any recipient
        failed (``details`` carries every :class:`RecipientOutcome`).
    """
    try:
        notification_type = NotificationType(event.notification_type)
    except ValueError:
        raise InvalidInputError(
            f"Unknown notification type {event.notification_type!r}"
        ) from None
    if event.source_id is None:
        raise InvalidInputError("Notification event has no source id")

    recipients, source_type, source_id = await run_db(_resolve, engine, event)
    if not recipients:
        raise InvalidInputError(
            f"No recipients for {notification_type} on {event.source_id}"
        )

    results = await asyncio.gather(
        *(
            run_db(_deliver, engine, username, notification_type, source_type, source_id, now)
            for username in recipients
        ),
        return_exceptions=True,
    )

    outcomes: list[RecipientOutcome] = []
    for username, result in zip(recipients, results, strict=True):
        if isinstance(result, Exception):
            outcomes.append(RecipientOutcome(username=username, error=error_from_exception(result)))
        elif isinstance(result, BaseException):
            raise result
        else:
            outcomes.append(result)

    failed = [o for o in outcomes if not o.ok]
    if failed:
        raise AggregateError(
            f"{len(failed)} of {len(outcomes)} recipient(s) failed for {notification_type}",
            cause=failed[0].error,
            details=tuple(outcomes),
        )

    report = FanOutReport(
        notification_type=notification_type,
        source_id=event.source_id,
        recipients=tuple(recipients),
        outcomes=tuple(outcomes),
    )
    logger.info(
        "%s fan-out on %d: %d recipient(s), %d delivered, %d suppressed",
        notification_type, event.source_id, len(recipients),
        len(report.delivered), len(report.suppressed),
    )
    return report


async def announce(engine: Engine, event: NotificationEvent, *, now: datetime) -> FanOutReport | None:
    """:func:`notify` for call sites where the triggering write already
    committed: a failed fan-out is logged and ``None`` returned.
    """
    result = await notify(engine, event, now=now)
    if not result.ok:
        logger.warning(
            "%s fan-out on %s failed (%s): %s",
            event.notification_type, event.source_id, result.error.kind, result.error.message,
        )
        return None
    return result.value


# ---------------------------------------------------------------------------
# Inbox reads & updates
# ---------------------------------------------------------------------------
def _inbox_query(username: str, unread_only: bool = False):
    stmt = (
        select(Notification)
        .join(InboxEntry, InboxEntry.notification_id == Notification.id)
        .where(InboxEntry.username == username)
        .order_by(InboxEntry.id.desc())
    )
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    return stmt


@returns_result
def fetch_inbox(engine: Engine, username: str, *, unread_only: bool = False) -> list[NotificationView]:
    """Newest-first inbox of *username*."""
    with get_session(engine) as session:
        _require_user(session, username)
        rows = session.scalars(_inbox_query(username, unread_only)).all()
        return [NotificationView.from_row(r) for r in rows]


@returns_result
def has_unread(engine: Engine, username: str) -> bool:
    with get_session(engine) as session:
        _require_user(session, username)
        stmt = select(
            exists().where(
                and_(
                    InboxEntry.username == username,
                    InboxEntry.notification_id == Notification.id,
                    Notification.is_read.is_(False),
                )
            )
        )
        return bool(session.scalar(stmt))


def _set_read(engine: Engine, notification_id: int) -> NotificationView:
    with get_session(engine) as session:
        updated = session.execute(
            update(Notification)
            .where(Notification.id == notification_id)
            .values(is_read=True)
        ).rowcount
        if updated == 0:
            raise NotFoundError(f"Notification {notification_id} not found")
        return NotificationView.from_row(session.get(Notification, notification_id))


@returns_result
def mark_read(engine: Engine, notification_id: int) -> NotificationView:
    return _set_read(engine, notification_id)


@returns_result
def mark_all_read(engine: Engine, username: str) -> list[NotificationView]:
    """Mark every notification in *username*'s inbox as read.

    Each update commits on its own.  The first failure stops the batch;
    updates already applied are kept.
    """
    with get_session(engine) as session:
        _require_user(session, username)
        ids = list(session.scalars(
            select(InboxEntry.notification_id)
            .where(InboxEntry.username == username)
            .order_by(InboxEntry.id.desc())
        ))

    marked = [_set_read(engine, nid) for nid in ids]
    logger.info("Marked %d notification(s) read for %s", len(marked), username)
    return marked


@returns_result
def toggle_blocked_type(engine: Engine, username: str, notification_type: str) -> list[str]:
    """Flip *username*'s opt-out for *notification_type*.

    A single ``INSERT … ON CONFLICT DO UPDATE SET blocked = NOT blocked``,
    so two concurrent toggles always net out.  Returns the blocked types
    after the toggle.
    """
    try:
        notification_type = NotificationType(notification_type)
    except ValueError:
        raise InvalidInputError(f"Unknown notification type {notification_type!r}") from None

    with get_session(engine) as session:
        _require_user(session, username)
        stmt = upsert(session, NotificationPreference).values(
            username=username,
            notification_type=notification_type,
            blocked=True,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["username", "notification_type"],
            set_={"blocked": not_(NotificationPreference.__table__.c.blocked)},
        )
        session.execute(stmt)

        blocked = sorted(session.scalars(
            select(NotificationPreference.notification_type).where(
                NotificationPreference.username == username,
                NotificationPreference.blocked.is_(True),
            )
        ))
    logger.info("Blocked notification types for %s → %s", username, blocked)
    return blocked
