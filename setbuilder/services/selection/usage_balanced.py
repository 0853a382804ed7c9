"""Usage-balanced candidate selection.

Least-used questions are preferred overall, while the budget is spread
evenly across the requested categories so that one well-stocked category
cannot crowd out the others.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from setbuilder.config import settings
from setbuilder.core.deadlines import with_timeout
from setbuilder.repositories.trivia_repository import TriviaRepository
from setbuilder.services.trivia_sets.formats import SourceQuestion, TriviaFormat

logger = logging.getLogger(__name__)


def usage_order_key(question: SourceQuestion) -> tuple[int, int]:
    return (question.global_usage_count, question.id)


def matching_category(question: SourceQuestion, categories: Sequence[str]) -> str | None:
    """First requested category contained (case-insensitively) in the question theme."""
    theme = (question.theme or "").lower()
    for category in categories:
        if category.lower() in theme:
            return category
    return None


def apportion(budget: int, categories: Sequence[str]) -> dict[str, int]:
    """Even shares; the remainder goes one each to the first categories."""
    if not categories:
        return {}
    base, remainder = divmod(budget, len(categories))
    return {
        category: base + (1 if index < remainder else 0)
        for index, category in enumerate(categories)
    }


def balance_by_category(
    pool: Sequence[SourceQuestion],
    categories: Sequence[str],
    budget: int,
    min_per_category: int = 2,
) -> list[SourceQuestion]:
    """Pick up to `budget` questions from a usage-ordered pool.

    Never fails on scarcity; it only returns fewer questions.
    """
    if budget <= 0:
        return []

    ordered = sorted(pool, key=usage_order_key)
    requested = list(dict.fromkeys(c for c in categories if c and c.strip()))
    if len(requested) < 2:
        return ordered[:budget]

    by_category: dict[str, list[SourceQuestion]] = {category: [] for category in requested}
    for question in ordered:
        category = matching_category(question, requested)
        if category is not None:
            by_category[category].append(question)

    selected: list[SourceQuestion] = []
    above_share: list[SourceQuestion] = []
    chosen_ids: set[int] = set()
    for category, share in apportion(budget, requested).items():
        # Small shares are topped up to the floor when the category has stock
        take = max(share, min_per_category)
        for position, question in enumerate(by_category[category][:take]):
            if question.id in chosen_ids:
                continue
            selected.append(question)
            chosen_ids.add(question.id)
            if position >= share:
                above_share.append(question)

    overflow = len(selected) - budget
    if overflow > 0:
        # Only floor top-ups are dropped, most used first, so every share survives
        dropped = {q.id for q in sorted(above_share, key=usage_order_key, reverse=True)[:overflow]}
        selected = [question for question in selected if question.id not in dropped]
        chosen_ids -= dropped

    if len(selected) < budget:
        for question in ordered:
            if len(selected) >= budget:
                break
            if question.id in chosen_ids:
                continue
            selected.append(question)
            chosen_ids.add(question.id)

    selected.sort(key=usage_order_key)
    return selected[:budget]


class UsageBalancedSelector:
    """Fetches a usage-ordered pool from the store and balances it."""

    def __init__(
        self,
        repository: TriviaRepository,
        *,
        pool_multiplier: int | None = None,
        min_per_category: int | None = None,
        call_timeout: float | None = None,
    ) -> None:
        self.repository = repository
        self.pool_multiplier = pool_multiplier or settings.selection_pool_multiplier
        self.min_per_category = (
            settings.min_per_category if min_per_category is None else min_per_category
        )
        self.call_timeout = settings.store_call_timeout_seconds if call_timeout is None else call_timeout

    async def select(
        self,
        fmt: TriviaFormat,
        *,
        categories: Sequence[str] | None,
        budget: int,
        balance: bool = True,
        exclude_ids: Sequence[int] = (),
    ) -> list[SourceQuestion]:
        themes = [category for category in (categories or []) if category and category.strip()]
        pool = await with_timeout(
            self.repository.list_by_usage(
                fmt,
                limit=max(budget, 0) * self.pool_multiplier,
                themes=themes or None,
                exclude_ids=list(exclude_ids),
            ),
            seconds=self.call_timeout,
            operation=f"{fmt.key}.list_by_usage",
        )

        if balance:
            selected = balance_by_category(pool, themes, budget, self.min_per_category)
        else:
            selected = sorted(pool, key=usage_order_key)[:budget]

        logger.info(
            "Usage-balanced selection finished",
            extra={
                "set_type": fmt.key,
                "pool_size": len(pool),
                "budget": budget,
                "selected": len(selected),
                "categories": themes,
                "balanced": balance and len(themes) >= 2,
            },
        )
        return selected
