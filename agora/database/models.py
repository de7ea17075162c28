"""
agora.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- users                    — Community member profiles (unique username)
- notification_preferences — Per-user, per-type notification opt-outs
- user_rewards             — Unlocked frames and titles
- tags / question_tags     — Globally unique tag names + M2M to questions
- communities              — Named groups of members and content
- community_members        — Membership set (username per community)
- questions                — Asked questions
- question_views           — Set of usernames that viewed a question
- question_votes           — One up/down vote row per (question, username)
- question_subscribers     — Subscription toggles per (question, username)
- answers / comments       — Question answers and question/answer comments
- articles                 — Community articles
- polls / poll_options     — Polls with ordered options
- poll_votes               — One vote per (poll, username)
- notifications            — Per-recipient notification records
- inbox_entries            — Ordered inbox (newest = highest id)
- challenges               — Gamified challenge definitions
- user_challenges          — Per-user progress timestamps toward a challenge

Document-style "sets of usernames" are association tables whose primary
key makes membership unique, so every set mutation is a single
``INSERT … ON CONFLICT`` or ``UPDATE`` statement.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp stored and returned in UTC.

    SQLite keeps only the wall time of a bound datetime, so offsets are
    folded into UTC before binding and naive results are read back as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Agora ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class NotificationType(enum.StrEnum):
    """Every domain event that fans out into notification inboxes."""
    ANSWER = "Answer"
    COMMENT = "Comment"
    ANSWER_COMMENT = "AnswerComment"
    UPVOTE = "Upvote"
    NEW_QUESTION = "NewQuestion"
    NEW_POLL = "NewPoll"
    POLL_CLOSED = "PollClosed"
    NEW_ARTICLE = "NewArticle"
    ARTICLE_UPDATE = "ArticleUpdate"
    NEW_REWARD = "NewReward"


class SourceType(enum.StrEnum):
    """Kind of object a notification links back to (None for rewards)."""
    QUESTION = "Question"
    POLL = "Poll"
    ARTICLE = "Article"


class ChallengeType(enum.StrEnum):
    """User actions that count toward challenges."""
    UPVOTE = "upvote"
    ANSWER = "answer"
    QUESTION = "question"
    COMMENT = "comment"


class VoteType(enum.StrEnum):
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


class RewardKind(enum.StrEnum):
    FRAME = "frame"
    TITLE = "title"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    equipped_frame: Mapped[str | None] = mapped_column(String(100), default=None)
    equipped_title: Mapped[str | None] = mapped_column(String(100), default=None)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now()
    )

    rewards: Mapped[list[UserReward]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    preferences: Mapped[list[NotificationPreference]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def unlocked_frames(self) -> list[str]:
        return sorted(r.name for r in self.rewards if r.kind == RewardKind.FRAME)

    @property
    def unlocked_titles(self) -> list[str]:
        return sorted(r.name for r in self.rewards if r.kind == RewardKind.TITLE)

    @property
    def blocked_notifications(self) -> list[str]:
        return sorted(p.notification_type for p in self.preferences if p.blocked)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"


# ---------------------------------------------------------------------------
# NotificationPreference — per-user notification opt-outs
# ---------------------------------------------------------------------------
class NotificationPreference(Base):
    """One row per (user, notification type) the user ever toggled.

    ``blocked`` flips in place so a toggle is one upsert statement.
    """
    __tablename__ = "notification_preferences"

    username: Mapped[str] = mapped_column(
        String(50), ForeignKey("users.username", ondelete="CASCADE"), primary_key=True
    )
    notification_type: Mapped[str] = mapped_column(String(30), primary_key=True)
    blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    user: Mapped[User] = relationship(back_populates="preferences")

    def __repr__(self) -> str:
        return (
            f"<NotificationPreference user={self.username!r} "
            f"type={self.notification_type!r} blocked={self.blocked}>"
        )


# ---------------------------------------------------------------------------
# UserReward — unlocked frames and titles (set semantics via PK)
# ---------------------------------------------------------------------------
class UserReward(Base):
    __tablename__ = "user_rewards"

    username: Mapped[str] = mapped_column(
        String(50), ForeignKey("users.username", ondelete="CASCADE"), primary_key=True
    )
    kind: Mapped[str] = mapped_column(String(10), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    unlocked_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="rewards")

    def __repr__(self) -> str:
        return f"<UserReward user={self.username!r} {self.kind}={self.name!r}>"


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------
question_tags = Table(
    "question_tags",
    Base.metadata,
    Column("question_id", ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<Tag id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Communities
# ---------------------------------------------------------------------------
class Community(Base):
    __tablename__ = "communities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    members: Mapped[list[CommunityMember]] = relationship(
        back_populates="community", cascade="all, delete-orphan"
    )

    @property
    def member_names(self) -> list[str]:
        return [m.username for m in self.members]

    def __repr__(self) -> str:
        return f"<Community id={self.id} name={self.name!r}>"


class CommunityMember(Base):
    __tablename__ = "community_members"

    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="CASCADE"), primary_key=True
    )
    username: Mapped[str] = mapped_column(String(50), primary_key=True)
    joined_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now()
    )

    community: Mapped[Community] = relationship(back_populates="members")

    def __repr__(self) -> str:
        return f"<CommunityMember community={self.community_id} user={self.username!r}>"


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------
class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    asked_by: Mapped[str] = mapped_column(String(50), nullable=False)
    ask_date_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    community_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="SET NULL"), nullable=True
    )

    tags: Mapped[list[Tag]] = relationship(secondary=question_tags)
    answers: Mapped[list[Answer]] = relationship(
        back_populates="question",
        cascade="all, delete-orphan",
        order_by=lambda: [Answer.ans_date_time.desc(), Answer.id.desc()],
    )
    comments: Mapped[list[Comment]] = relationship(
        cascade="all, delete-orphan",
        primaryjoin="Comment.question_id == Question.id",
        order_by="Comment.id",
    )
    views: Mapped[list[QuestionView]] = relationship(cascade="all, delete-orphan")
    votes: Mapped[list[QuestionVote]] = relationship(cascade="all, delete-orphan")
    subscriptions: Mapped[list[QuestionSubscriber]] = relationship(
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_questions_ask_date_time", "ask_date_time"),
        Index("ix_questions_community", "community_id"),
    )

    @property
    def up_votes(self) -> list[str]:
        return [v.username for v in self.votes if v.vote_type == VoteType.UPVOTE]

    @property
    def down_votes(self) -> list[str]:
        return [v.username for v in self.votes if v.vote_type == VoteType.DOWNVOTE]

    @property
    def subscribers(self) -> list[str]:
        return [s.username for s in self.subscriptions if s.active]

    def __repr__(self) -> str:
        return f"<Question id={self.id} title={self.title!r}>"


class QuestionView(Base):
    __tablename__ = "question_views"

    question_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True
    )
    username: Mapped[str] = mapped_column(String(50), primary_key=True)


class QuestionVote(Base):
    """At most one vote row per user per question.

    ``vote_type`` is NULL once a vote has been toggled off, so a user is
    never in both the upvote and downvote sets.
    """
    __tablename__ = "question_votes"

    question_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True
    )
    username: Mapped[str] = mapped_column(String(50), primary_key=True)
    vote_type: Mapped[str | None] = mapped_column(String(10), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<QuestionVote question={self.question_id} "
            f"user={self.username!r} type={self.vote_type!r}>"
        )


class QuestionSubscriber(Base):
    __tablename__ = "question_subscribers"

    question_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True
    )
    username: Mapped[str] = mapped_column(String(50), primary_key=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# ---------------------------------------------------------------------------
# Answers & Comments
# ---------------------------------------------------------------------------
class Answer(Base):
    __tablename__ = "answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    ans_by: Mapped[str] = mapped_column(String(50), nullable=False)
    ans_date_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    question: Mapped[Question] = relationship(back_populates="answers")
    comments: Mapped[list[Comment]] = relationship(
        cascade="all, delete-orphan",
        primaryjoin="Comment.answer_id == Answer.id",
        order_by="Comment.id",
    )

    __table_args__ = (
        Index("ix_answers_question", "question_id"),
    )

    def __repr__(self) -> str:
        return f"<Answer id={self.id} question={self.question_id} by={self.ans_by!r}>"


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    comment_by: Mapped[str] = mapped_column(String(50), nullable=False)
    comment_date_time: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False
    )
    question_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=True
    )
    answer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("answers.id", ondelete="CASCADE"), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "(question_id IS NULL) <> (answer_id IS NULL)",
            name="ck_comments_single_parent",
        ),
    )

    def __repr__(self) -> str:
        return f"<Comment id={self.id} by={self.comment_by!r}>"


# ---------------------------------------------------------------------------
# Articles
# ---------------------------------------------------------------------------
class Article(Base):
    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    community_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(50), default=None)
    latest_edit_date: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )

    def __repr__(self) -> str:
        return f"<Article id={self.id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# Polls
# ---------------------------------------------------------------------------
class Poll(Base):
    __tablename__ = "polls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    community_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    created_by: Mapped[str] = mapped_column(String(50), nullable=False)
    poll_date_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    poll_due_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    options: Mapped[list[PollOption]] = relationship(
        back_populates="poll",
        cascade="all, delete-orphan",
        order_by="PollOption.position",
    )

    __table_args__ = (
        Index("ix_polls_open_due", "is_closed", "poll_due_date"),
    )

    def __repr__(self) -> str:
        return f"<Poll id={self.id} title={self.title!r} closed={self.is_closed}>"


class PollOption(Base):
    __tablename__ = "poll_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    poll_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("polls.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(String(200), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    poll: Mapped[Poll] = relationship(back_populates="options")
    votes: Mapped[list[PollVote]] = relationship(
        back_populates="option", order_by="PollVote.voted_at"
    )

    @property
    def users_voted(self) -> list[str]:
        return [v.username for v in self.votes]

    def __repr__(self) -> str:
        return f"<PollOption id={self.id} poll={self.poll_id} text={self.text!r}>"


class PollVote(Base):
    """A username's single vote in a poll.

    The ``(poll_id, username)`` primary key is what makes "has this user
    voted in any option of this poll" and "add the vote" one statement.
    """
    __tablename__ = "poll_votes"

    poll_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("polls.id", ondelete="CASCADE"), primary_key=True
    )
    username: Mapped[str] = mapped_column(String(50), primary_key=True)
    option_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("poll_options.id", ondelete="CASCADE"), nullable=False
    )
    voted_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now()
    )

    option: Mapped[PollOption] = relationship(back_populates="votes")

    __table_args__ = (
        Index("ix_poll_votes_option", "option_id"),
    )


# ---------------------------------------------------------------------------
# Notifications & inbox
# ---------------------------------------------------------------------------
class Notification(Base):
    """One notification addressed to one recipient.

    Immutable once created except for ``is_read``.  A record exists even
    when the recipient blocked the type; only the inbox entry is skipped.
    """
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipient: Mapped[str] = mapped_column(String(50), nullable=False)
    notification_type: Mapped[str] = mapped_column(String(30), nullable=False)
    source_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    source_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    __table_args__ = (
        Index("ix_notifications_recipient", "recipient"),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification id={self.id} to={self.recipient!r} "
            f"type={self.notification_type!r} read={self.is_read}>"
        )


class InboxEntry(Base):
    """A notification attached to a user's inbox.

    Inserting a row is the "prepend": the inbox reads newest-first by id.
    """
    __tablename__ = "inbox_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String(50), ForeignKey("users.username", ondelete="CASCADE"), nullable=False
    )
    notification_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False
    )

    notification: Mapped[Notification] = relationship()

    __table_args__ = (
        UniqueConstraint("username", "notification_id", name="uq_inbox_user_notification"),
        Index("ix_inbox_user_id", "username", "id"),
    )

    def __repr__(self) -> str:
        return f"<InboxEntry id={self.id} user={self.username!r} notif={self.notification_id}>"


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
class Challenge(Base):
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    challenge_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    action_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reward: Mapped[str] = mapped_column(String(100), nullable=False)
    hours_to_complete: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("action_amount > 0", name="ck_challenges_positive_amount"),
        Index("ix_challenges_type", "challenge_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<Challenge id={self.id} type={self.challenge_type!r} "
            f"amount={self.action_amount} reward={self.reward!r}>"
        )


class UserChallenge(Base):
    """Progress of one user toward one challenge.

    ``progress`` holds one ISO-8601 UTC timestamp per qualifying action and
    is always replaced wholesale.
    """
    __tablename__ = "user_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String(50), ForeignKey("users.username", ondelete="CASCADE"), nullable=False
    )
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    progress: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    challenge: Mapped[Challenge] = relationship()

    __table_args__ = (
        UniqueConstraint("username", "challenge_id", name="uq_user_challenges_user_challenge"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserChallenge id={self.id} user={self.username!r} "
            f"challenge={self.challenge_id} progress={len(self.progress or [])}>"
        )
