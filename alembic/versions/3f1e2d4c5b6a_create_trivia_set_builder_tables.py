"""create trivia question, set, collection, config and source content tables

Revision ID: 3f1e2d4c5b6a
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1e2d4c5b6a"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

QUESTION_TABLES = ("trivia_multiple_choice", "trivia_true_false", "trivia_who_am_i")
SET_TABLES = (
    "sets_trivia_multiple_choice",
    "sets_trivia_true_false",
    "sets_trivia_who_am_i",
)


def _id_column() -> sa.Column:
    return sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False)


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _question_columns() -> list[sa.Column]:
    return [
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=255), nullable=True),
        sa.Column("theme", sa.String(length=255), nullable=True),
        sa.Column("difficulty", sa.String(length=50), nullable=True),
        sa.Column("tags", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("attribution", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="unpublished"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("global_usage_count", sa.Integer(), nullable=False, server_default="0"),
    ]


def _set_columns() -> list[sa.Column]:
    return [
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("slug", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=255), nullable=True),
        sa.Column("theme", sa.String(length=255), nullable=True),
        sa.Column("difficulty", sa.String(length=50), nullable=True),
        sa.Column("tags", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "question_data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("question_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("estimated_duration", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("visibility", sa.String(length=20), nullable=True, server_default="Private"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    extra_question_columns = {
        "trivia_multiple_choice": [
            sa.Column("correct_answer", sa.Text(), nullable=False),
            sa.Column(
                "wrong_answers",
                postgresql.JSONB(astext_type=sa.Text()),
                nullable=False,
                server_default=sa.text("'[]'::jsonb"),
            ),
        ],
        "trivia_true_false": [sa.Column("is_true", sa.Boolean(), nullable=False)],
        "trivia_who_am_i": [sa.Column("correct_answer", sa.Text(), nullable=False)],
    }
    for table in QUESTION_TABLES:
        op.create_table(
            table,
            *_question_columns(),
            *extra_question_columns[table],
            _id_column(),
            *_timestamp_columns(),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in ("category", "theme", "status", "global_usage_count"):
            op.create_index(f"ix_{table}_{column}", table, [column], unique=False)

    for table in SET_TABLES:
        op.create_table(
            table,
            *_set_columns(),
            _id_column(),
            *_timestamp_columns(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug", name=f"uq_{table}_slug"),
        )

    op.create_table(
        "automated_set_builder_config",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sets_per_day", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("questions_per_set", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("themes", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("balance_themes", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "cron_schedule",
            sa.String(length=100),
            nullable=False,
            server_default="0 2 * * *",
        ),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_run_status", sa.String(length=50), nullable=True),
        sa.Column("last_run_message", sa.Text(), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("id = 1", name="single_config"),
    )
    op.execute("INSERT INTO automated_set_builder_config (id) VALUES (1) ON CONFLICT (id) DO NOTHING")

    op.create_table(
        "collection_trivia_sets",
        sa.Column("publish_date", sa.Date(), nullable=False),
        sa.Column(
            "sets",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("set_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("run_status", sa.String(length=50), nullable=False, server_default="completed"),
        sa.Column("run_message", sa.Text(), nullable=True),
        _id_column(),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_collection_trivia_sets_publish_date",
        "collection_trivia_sets",
        ["publish_date"],
        unique=False,
    )

    op.create_table(
        "source_content_ingested",
        sa.Column("title", sa.String(length=500), nullable=True),
        sa.Column("content_text", sa.Text(), nullable=False),
        sa.Column("content_status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column(
            "used_for",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        _id_column(),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_source_content_ingested_content_status",
        "source_content_ingested",
        ["content_status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_source_content_ingested_content_status", table_name="source_content_ingested")
    op.drop_table("source_content_ingested")
    op.drop_index("ix_collection_trivia_sets_publish_date", table_name="collection_trivia_sets")
    op.drop_table("collection_trivia_sets")
    op.drop_table("automated_set_builder_config")
    for table in reversed(SET_TABLES):
        op.drop_table(table)
    for table in reversed(QUESTION_TABLES):
        for column in ("global_usage_count", "status", "theme", "category"):
            op.drop_index(f"ix_{table}_{column}", table_name=table)
        op.drop_table(table)
