"""Title, slug and descriptive metadata for generated trivia sets."""

from __future__ import annotations

import math
import re
import time
from collections import Counter
from collections.abc import Sequence

from setbuilder.services.trivia_sets.formats import SourceQuestion, TriviaFormat

MAX_TAGS = 10
SECONDS_PER_QUESTION = 30

_NON_SLUG_CHARS = re.compile(r"[^\w\s-]", re.ASCII)
_WHITESPACE = re.compile(r"\s+")
_HYPHEN_RUNS = re.compile(r"-+")


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_title(theme: str, fmt: TriviaFormat) -> str:
    if not theme:
        return fmt.default_title
    return f"{theme} Trivia"


def slugify(text: str) -> str:
    slug = _NON_SLUG_CHARS.sub("", text.lower().strip())
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHEN_RUNS.sub("-", slug)
    return slug.strip("-")


def generate_slug(theme: str, fmt: TriviaFormat) -> str:
    """URL-safe slug for a theme; falls back to a timestamped format slug."""
    slug = slugify(theme)
    if not slug:
        return f"{fmt.slug_prefix}-{now_ms()}"
    return slug


def with_timestamp_suffix(slug: str) -> str:
    return f"{slug}-{now_ms()}"


def generate_description(theme: str, question_count: int, fmt: TriviaFormat) -> str:
    if theme:
        return f"Test your knowledge with {question_count} {theme} {fmt.label} questions."
    return f"Test your knowledge with {question_count} {fmt.label} trivia questions."


def determine_category(questions: Sequence[SourceQuestion]) -> str | None:
    """Most common category among the questions; ties go to the first seen."""
    counts = Counter(q.category for q in questions if q.category)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def extract_tags(questions: Sequence[SourceQuestion], theme: str) -> list[str]:
    tags: dict[str, None] = {}
    if theme:
        tags[theme.lower().strip()] = None
    for question in questions:
        for tag in question.tags:
            normalized = tag.lower().strip()
            if normalized:
                tags[normalized] = None
    return list(tags)[:MAX_TAGS]


def estimate_duration_minutes(question_count: int) -> int:
    return math.ceil(question_count * SECONDS_PER_QUESTION / 60)
