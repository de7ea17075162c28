"""Initial engagement schema

Users, tags, communities, questions and their vote/view/subscriber sets,
answers, comments, articles, polls, notifications with inbox entries, and
challenges with per-user progress.

Revision ID: 0a1c3e5f7b90
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0a1c3e5f7b90"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True),
        sa.Column("total_points", sa.Integer(), server_default="0"),
        sa.Column("equipped_frame", sa.String(100), nullable=True),
        sa.Column("equipped_title", sa.String(100), nullable=True),
        _created_at(),
    )
    op.create_table(
        "notification_preferences",
        sa.Column(
            "username", sa.String(50),
            sa.ForeignKey("users.username", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("notification_type", sa.String(30), primary_key=True),
        sa.Column("blocked", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "user_rewards",
        sa.Column(
            "username", sa.String(50),
            sa.ForeignKey("users.username", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("kind", sa.String(10), primary_key=True),
        sa.Column("name", sa.String(100), primary_key=True),
        _created_at("unlocked_at"),
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
    )
    op.create_table(
        "communities",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
    )
    op.create_table(
        "community_members",
        sa.Column(
            "community_id", sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("username", sa.String(50), primary_key=True),
        _created_at("joined_at"),
    )

    op.create_table(
        "questions",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("asked_by", sa.String(50), nullable=False),
        sa.Column("ask_date_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "community_id", sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="SET NULL"), nullable=True,
        ),
    )
    op.create_index("ix_questions_ask_date_time", "questions", ["ask_date_time"])
    op.create_index("ix_questions_community", "questions", ["community_id"])

    op.create_table(
        "question_tags",
        sa.Column(
            "question_id", sa.Integer(),
            sa.ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "tag_id", sa.Integer(),
            sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True,
        ),
    )
    for table, extra in (
        ("question_views", None),
        ("question_votes", sa.Column("vote_type", sa.String(10), nullable=True)),
        (
            "question_subscribers",
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        ),
    ):
        columns = [
            sa.Column(
                "question_id", sa.Integer(),
                sa.ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True,
            ),
            sa.Column("username", sa.String(50), primary_key=True),
        ]
        if extra is not None:
            columns.append(extra)
        op.create_table(table, *columns)

    op.create_table(
        "answers",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "question_id", sa.Integer(),
            sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("ans_by", sa.String(50), nullable=False),
        sa.Column("ans_date_time", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_answers_question", "answers", ["question_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("comment_by", sa.String(50), nullable=False),
        sa.Column("comment_date_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "question_id", sa.Integer(),
            sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column(
            "answer_id", sa.Integer(),
            sa.ForeignKey("answers.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.CheckConstraint(
            "(question_id IS NULL) <> (answer_id IS NULL)",
            name="ck_comments_single_parent",
        ),
    )

    op.create_table(
        "articles",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "community_id", sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(50), nullable=True),
        sa.Column("latest_edit_date", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "polls",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "community_id", sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("created_by", sa.String(50), nullable=False),
        sa.Column("poll_date_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("poll_due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_polls_open_due", "polls", ["is_closed", "poll_due_date"])

    op.create_table(
        "poll_options",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "poll_id", sa.Integer(),
            sa.ForeignKey("polls.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("text", sa.String(200), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_table(
        "poll_votes",
        sa.Column(
            "poll_id", sa.Integer(),
            sa.ForeignKey("polls.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("username", sa.String(50), primary_key=True),
        sa.Column(
            "option_id", sa.Integer(),
            sa.ForeignKey("poll_options.id", ondelete="CASCADE"), nullable=False,
        ),
        _created_at("voted_at"),
    )
    op.create_index("ix_poll_votes_option", "poll_votes", ["option_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("recipient", sa.String(50), nullable=False),
        sa.Column("notification_type", sa.String(30), nullable=False),
        sa.Column("source_type", sa.String(20), nullable=True),
        sa.Column("source_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_notifications_recipient", "notifications", ["recipient"])

    op.create_table(
        "inbox_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "username", sa.String(50),
            sa.ForeignKey("users.username", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "notification_id", sa.Integer(),
            sa.ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.UniqueConstraint("username", "notification_id", name="uq_inbox_user_notification"),
    )
    op.create_index(
        "ix_inbox_user_id", "inbox_entries", ["username", "id"],
    )

    op.create_table(
        "challenges",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("challenge_type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("action_amount", sa.Integer(), nullable=False),
        sa.Column("reward", sa.String(100), nullable=False),
        sa.Column("hours_to_complete", sa.Integer(), nullable=True),
        sa.CheckConstraint("action_amount > 0", name="ck_challenges_positive_amount"),
    )
    op.create_index("ix_challenges_type", "challenges", ["challenge_type"])

    op.create_table(
        "user_challenges",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "username", sa.String(50),
            sa.ForeignKey("users.username", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "challenge_id", sa.Integer(),
            sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("progress", JSONType, nullable=False),
        sa.UniqueConstraint(
            "username", "challenge_id", name="uq_user_challenges_user_challenge",
        ),
    )


def downgrade() -> None:
    op.drop_table("user_challenges")
    op.drop_index("ix_challenges_type", table_name="challenges")
    op.drop_table("challenges")
    op.drop_index("ix_inbox_user_id", table_name="inbox_entries")
    op.drop_table("inbox_entries")
    op.drop_index("ix_notifications_recipient", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_poll_votes_option", table_name="poll_votes")
    op.drop_table("poll_votes")
    op.drop_table("poll_options")
    op.drop_index("ix_polls_open_due", table_name="polls")
    op.drop_table("polls")
    op.drop_table("articles")
    op.drop_table("comments")
    op.drop_index("ix_answers_question", table_name="answers")
    op.drop_table("answers")
    op.drop_table("question_subscribers")
    op.drop_table("question_votes")
    op.drop_table("question_views")
    op.drop_table("question_tags")
    op.drop_index("ix_questions_community", table_name="questions")
    op.drop_index("ix_questions_ask_date_time", table_name="questions")
    op.drop_table("questions")
    op.drop_table("community_members")
    op.drop_table("communities")
    op.drop_table("tags")
    op.drop_table("user_rewards")
    op.drop_table("notification_preferences")
    op.drop_table("users")
