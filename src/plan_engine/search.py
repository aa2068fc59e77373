"""Candidate filtering for pool lookups."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from plan_engine.models import Candidate, SlotType

logger = logging.getLogger(__name__)

# Meal type aliases: which free-form recipe labels count for each slot type
MEAL_TYPE_MAP = {
    SlotType.BREAKFAST: {"breakfast", "brunch"},
    SlotType.LUNCH: {"lunch", "main course", "soup", "salad"},
    SlotType.DINNER: {"dinner", "main course", "soup", "curry"},
    SlotType.SNACK: {"snack", "appetizer", "dessert", "side", "side dish"},
}


def slot_types_for_label(label: str | None) -> tuple[SlotType, ...]:
    """Map a free-form meal label (e.g. "main course") to the slot types it serves."""
    if not label:
        return ()
    label = label.strip().lower()
    return tuple(t for t, aliases in MEAL_TYPE_MAP.items() if label in aliases)


@dataclass
class CandidateFilter:
    slot_type: SlotType | None = None
    dietary_tag: str | None = None
    min_calories: float | None = None
    max_calories: float | None = None
    query: str | None = None
    max_prep_time: int | None = None
    exclude_ids: frozenset[str] = field(default_factory=frozenset)
    page: int = 1
    limit: int | None = None


@dataclass
class SearchResult:
    items: list[Candidate]
    total: int


def matches_slot_type(candidate: Candidate, slot_type: SlotType | None) -> bool:
    if slot_type is None:
        return True
    return slot_type in candidate.slot_types


def matches_dietary_tag(candidate: Candidate, tag: str | None) -> bool:
    """Check if candidate carries the dietary tag (case-insensitive)."""
    if not tag:
        return True
    return tag.lower() in {t.lower() for t in candidate.dietary_tags}


def matches_query(candidate: Candidate, query: str | None) -> bool:
    """Substring match against name, description and ingredient names."""
    if not query:
        return True
    needle = query.lower()
    haystack = [candidate.name, candidate.description]
    haystack.extend(i.name for i in candidate.ingredients)
    return any(needle in text.lower() for text in haystack if text)


def matches_time(candidate: Candidate, max_time: int | None) -> bool:
    if max_time is None:
        return True
    total_time = candidate.total_time_min
    if total_time is None:
        # Unknown time is not grounds for exclusion
        return True
    return total_time <= max_time


def filter_candidates(
    candidates: Iterable[Candidate], filters: CandidateFilter
) -> SearchResult:
    """Apply filters, then paginate. ``total`` counts matches before paging."""
    matched = []
    for c in candidates:
        if c.placeholder or c.id in filters.exclude_ids:
            continue
        if not matches_slot_type(c, filters.slot_type):
            continue
        if not matches_dietary_tag(c, filters.dietary_tag):
            continue
        if filters.min_calories is not None and c.calories < filters.min_calories:
            continue
        if filters.max_calories is not None and c.calories > filters.max_calories:
            continue
        if not matches_time(c, filters.max_prep_time):
            continue
        if not matches_query(c, filters.query):
            continue
        matched.append(c)

    matched.sort(key=lambda c: (c.name.lower(), c.id))
    total = len(matched)
    if filters.limit is not None:
        if filters.page < 1 or filters.limit < 1:
            raise ValueError("page and limit must be positive")
        start = (filters.page - 1) * filters.limit
        matched = matched[start : start + filters.limit]

    logger.debug("Filter %s matched %d candidates", filters, total)
    return SearchResult(items=matched, total=total)
