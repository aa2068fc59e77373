"""Ingredient reuse scoring used by the scheduler's variety cap."""

from __future__ import annotations

from collections.abc import Iterable, Set
from dataclasses import dataclass

from plan_engine.models import Candidate


@dataclass(frozen=True)
class VarietyScore:
    new_count: int
    reuse_count: int


def normalize_ingredient(name: str) -> str:
    """Case-insensitive comparison key for an ingredient name.

    Only whitespace trimming and lowercasing are applied; "onion" and
    "onions" stay distinct.
    """
    return name.strip().lower()


def ingredient_names(candidate: Candidate) -> frozenset[str]:
    return frozenset(
        normalize_ingredient(i.name) for i in candidate.ingredients if i.name.strip()
    )


def score(candidate: Candidate, running: Set[str]) -> VarietyScore:
    """Count how many of a candidate's ingredients are new vs. already selected.

    ``running`` must hold normalized names. Duplicate ingredients within
    the candidate count once.
    """
    names = ingredient_names(candidate)
    reuse = len(names & running)
    return VarietyScore(new_count=len(names) - reuse, reuse_count=reuse)


def merge_ingredients(running: Iterable[str], candidate: Candidate) -> set[str]:
    """Return a new running set including the candidate's ingredients."""
    merged = set(running)
    merged.update(ingredient_names(candidate))
    return merged
