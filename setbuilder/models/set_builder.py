"""Automated set builder configuration and its output collection."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from setbuilder.models.base import Base, IntegerIDMixin, TimestampMixin

CONFIG_ROW_ID = 1


class AutomatedSetBuilderConfig(Base, TimestampMixin):
    """Single-row configuration for the scheduled set builder."""

    __tablename__ = "automated_set_builder_config"
    __table_args__ = (CheckConstraint(f"id = {CONFIG_ROW_ID}", name="single_config"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=CONFIG_ROW_ID)
    enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sets_per_day: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    questions_per_set: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    # None means "all themes"
    themes: Mapped[list[str] | None] = mapped_column(JSONB, nullable=True)
    balance_themes: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    cron_schedule: Mapped[str] = mapped_column(String(100), default="0 2 * * *", nullable=False)

    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_run_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    last_run_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<AutomatedSetBuilderConfig enabled={self.enabled}>"


class CollectionTriviaSet(Base, IntegerIDMixin, TimestampMixin):
    """One automatically built set, snapshotted as JSONB for a publish date."""

    __tablename__ = "collection_trivia_sets"

    publish_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    # [{"type": "mc" | "tf" | "wai", "set": {...}}]
    sets: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    set_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    run_status: Mapped[str] = mapped_column(String(50), default="completed", nullable=False)
    run_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<CollectionTriviaSet {self.id} {self.publish_date}>"
