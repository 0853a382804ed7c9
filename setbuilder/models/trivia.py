"""Source trivia questions (candidates) and the sets built from them."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from setbuilder.models.base import Base, IntegerIDMixin, TimestampMixin


class SourceQuestionMixin:
    """Columns shared by every source question table."""

    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    theme: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    difficulty: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tags: Mapped[list[str] | None] = mapped_column(JSONB, nullable=True)
    attribution: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Only "published" rows are eligible for sets
    status: Mapped[str] = mapped_column(String(20), default="unpublished", nullable=False, index=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Incremented once per stored set that includes the question
    global_usage_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        server_default="0",
        nullable=False,
        index=True,
    )


class TriviaMultipleChoice(Base, IntegerIDMixin, TimestampMixin, SourceQuestionMixin):
    """Multiple choice source question."""

    __tablename__ = "trivia_multiple_choice"

    correct_answer: Mapped[str] = mapped_column(Text, nullable=False)
    wrong_answers: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<TriviaMultipleChoice {self.id} ({self.status})>"


class TriviaTrueFalse(Base, IntegerIDMixin, TimestampMixin, SourceQuestionMixin):
    """True/false source question."""

    __tablename__ = "trivia_true_false"

    is_true: Mapped[bool] = mapped_column(Boolean, nullable=False)

    def __repr__(self) -> str:
        return f"<TriviaTrueFalse {self.id} ({self.status})>"


class TriviaWhoAmI(Base, IntegerIDMixin, TimestampMixin, SourceQuestionMixin):
    """Who-am-I source question; `question_text` holds the clues."""

    __tablename__ = "trivia_who_am_i"

    correct_answer: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<TriviaWhoAmI {self.id} ({self.status})>"


class TriviaSetMixin:
    """Columns shared by every trivia set table."""

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str] = mapped_column(String(500), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    theme: Mapped[str | None] = mapped_column(String(255), nullable=True)
    difficulty: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tags: Mapped[list[str] | None] = mapped_column(JSONB, nullable=True)
    question_data: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    question_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    estimated_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)
    visibility: Mapped[str | None] = mapped_column(String(20), default="Private", nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class MultipleChoiceTriviaSet(Base, IntegerIDMixin, TimestampMixin, TriviaSetMixin):
    """Curated multiple choice set."""

    __tablename__ = "sets_trivia_multiple_choice"


class TrueFalseTriviaSet(Base, IntegerIDMixin, TimestampMixin, TriviaSetMixin):
    """Curated true/false set."""

    __tablename__ = "sets_trivia_true_false"


class WhoAmITriviaSet(Base, IntegerIDMixin, TimestampMixin, TriviaSetMixin):
    """Curated who-am-I set."""

    __tablename__ = "sets_trivia_who_am_i"
