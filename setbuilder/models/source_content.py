"""Ingested source articles that feed the generation collaborator."""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from setbuilder.models.base import Base, IntegerIDMixin, TimestampMixin


class SourceContentIngested(Base, IntegerIDMixin, TimestampMixin):
    """An ingested article; `used_for` records which tracks consumed it."""

    __tablename__ = "source_content_ingested"

    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    content_text: Mapped[str] = mapped_column(Text, nullable=False)
    content_status: Mapped[str] = mapped_column(
        String(20),
        default="active",
        nullable=False,
        index=True,
    )
    used_for: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<SourceContentIngested {self.id} ({self.content_status})>"
