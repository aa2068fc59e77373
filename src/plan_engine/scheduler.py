"""Greedy plan scheduling across a day x slot grid."""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from plan_engine import nutrition, variety
from plan_engine.errors import InvalidPlanShellError
from plan_engine.models import Candidate, Plan, PlanShell, PlanSlot, SlotType
from plan_engine.search import CandidateFilter, SearchResult

logger = logging.getLogger(__name__)

FetchCandidates = Callable[[SlotType | None, CandidateFilter], list[Candidate]]

FULL_ROTATION = (SlotType.BREAKFAST, SlotType.LUNCH, SlotType.DINNER, SlotType.SNACK)


class CandidateSearch(Protocol):
    def search(self, filters: CandidateFilter) -> SearchResult: ...


def search_fetcher(source: CandidateSearch) -> FetchCandidates:
    """Adapt a search collaborator into a scheduler pool-access function."""

    def fetch(slot_type: SlotType | None, filters: CandidateFilter) -> list[Candidate]:
        filters.slot_type = slot_type
        return source.search(filters).items

    return fetch


def slot_rotation(slots_per_day: int, preferred: tuple[SlotType, ...] = ()) -> list[SlotType]:
    """Slot type for each slot index of a day.

    An explicit ``preferred`` rotation wins and is cycled to length.
    """
    if preferred:
        return [preferred[i % len(preferred)] for i in range(slots_per_day)]
    if slots_per_day == 1:
        return [SlotType.LUNCH]
    if slots_per_day == 2:
        return [SlotType.BREAKFAST, SlotType.DINNER]
    if slots_per_day == 3:
        return [SlotType.BREAKFAST, SlotType.LUNCH, SlotType.DINNER]
    return [FULL_ROTATION[i % len(FULL_ROTATION)] for i in range(slots_per_day)]


def validate_shell(shell: PlanShell) -> None:
    if shell.days < 1:
        raise InvalidPlanShellError(f"days must be at least 1, got {shell.days}")
    if shell.slots_per_day < 1:
        raise InvalidPlanShellError(
            f"slots_per_day must be at least 1, got {shell.slots_per_day}"
        )
    if shell.daily_calories is None or shell.daily_calories < 0:
        raise InvalidPlanShellError(
            f"daily_calories must be non-negative, got {shell.daily_calories}"
        )
    if shell.max_ingredients is not None and shell.max_ingredients < 1:
        raise InvalidPlanShellError(
            f"max_ingredients must be at least 1, got {shell.max_ingredients}"
        )


@dataclass
class ScheduleResult:
    plan: Plan
    messages: list[str] = field(default_factory=list)
    degraded: bool = False


class PlanScheduler:
    """Fills every (day, slot) cell with one candidate.

    Selection is a bounded greedy pass: cap fit, then ingredient reuse,
    then calorie fit. Empty pools yield placeholder slots, so the plan
    always has ``days * slots_per_day`` entries.
    """

    def __init__(self, fetch_candidates: FetchCandidates) -> None:
        self.fetch_candidates = fetch_candidates

    def schedule(self, shell: PlanShell) -> ScheduleResult:
        validate_shell(shell)

        rotation = slot_rotation(shell.slots_per_day, shell.slot_types)
        per_slot_target = shell.daily_calories / shell.slots_per_day
        cap = shell.max_ingredients

        plan = Plan(
            name=shell.name,
            daily_calories=shell.daily_calories,
            days=shell.days,
            slots_per_day=shell.slots_per_day,
            max_ingredients=cap,
            dietary_tag=shell.dietary_tag,
        )
        messages: list[str] = []
        pools: dict[SlotType | None, list[Candidate]] = {}
        running: set[str] = set()
        recent: deque[str] = deque(maxlen=shell.slots_per_day * 2)
        placeholders = 0
        fallback_slots = 0
        cap_exceeded = 0

        for day in range(1, shell.days + 1):
            day_calories = 0.0
            for slot_index, slot_type in enumerate(rotation, start=1):
                pool = self._pool(pools, slot_type, shell.dietary_tag)
                if not pool:
                    pool = self._pool(pools, None, shell.dietary_tag)
                    if pool:
                        fallback_slots += 1
                        logger.warning(
                            "No %s candidates found, using all candidates",
                            slot_type.value,
                        )

                if not pool:
                    placeholders += 1
                    candidate = Candidate.placeholder_for(day, slot_index, slot_type)
                else:
                    candidate, within_cap = self._select(
                        pool, running, set(recent), per_slot_target, cap
                    )
                    if not within_cap:
                        cap_exceeded += 1
                        logger.warning(
                            "Day %d slot %d: no candidate fits the %d-ingredient cap, "
                            "choosing best calorie fit",
                            day,
                            slot_index,
                            cap,
                        )
                    running = variety.merge_ingredients(running, candidate)
                    recent.append(candidate.id)

                day_calories += candidate.calories
                plan.slots.append(
                    PlanSlot(
                        day=day, slot=slot_index, slot_type=slot_type, candidate=candidate
                    )
                )
            logger.debug(
                "Day %d scheduled: %.0f kcal (target %.0f)",
                day,
                day_calories,
                shell.daily_calories,
            )

        total_slots = shell.days * shell.slots_per_day
        degraded = placeholders == total_slots
        if degraded:
            messages.append(
                "Limited recipe selection: no candidates matched any slot; "
                f"all {total_slots} slots are placeholders"
            )
        elif placeholders:
            messages.append(
                f"Limited recipe selection: {placeholders} of {total_slots} slots "
                "could not be filled and hold placeholders"
            )
        if fallback_slots:
            messages.append(
                f"{fallback_slots} slots used candidates from other meal types"
            )
        if cap_exceeded:
            messages.append(
                f"Ingredient cap of {cap} was exceeded in {cap_exceeded} slots"
            )
        if placeholders:
            logger.warning(messages[0])

        logger.info(
            "Scheduled %d slots over %d days (%d distinct ingredients)",
            len(plan.slots),
            plan.days,
            len(running),
        )
        return ScheduleResult(plan=plan, messages=messages, degraded=degraded)

    def _pool(
        self,
        pools: dict[SlotType | None, list[Candidate]],
        slot_type: SlotType | None,
        dietary_tag: str | None,
    ) -> list[Candidate]:
        if slot_type not in pools:
            filters = CandidateFilter(slot_type=slot_type, dietary_tag=dietary_tag)
            pools[slot_type] = [
                c for c in self.fetch_candidates(slot_type, filters) if not c.placeholder
            ]
            logger.debug(
                "Pool for %s: %d candidates",
                slot_type.value if slot_type else "any",
                len(pools[slot_type]),
            )
        return pools[slot_type]

    @staticmethod
    def _select(
        pool: list[Candidate],
        running: set[str],
        recent: set[str],
        target: float,
        cap: int | None,
    ) -> tuple[Candidate, bool]:
        """Pick a candidate; the flag is False when the cap had to be broken."""
        if cap is None:
            best = min(
                pool,
                key=lambda c: (c.id in recent, abs(c.calories - target), c.name, c.id),
            )
            return best, True

        current = len(running)

        def key(c: Candidate) -> tuple:
            s = variety.score(c, running)
            overshoot = max(0, current + s.new_count - cap)
            return (
                overshoot > 0,
                -s.reuse_count if overshoot == 0 else 0,
                abs(c.calories - target),
                c.id in recent,
                c.name,
                c.id,
            )

        best = min(pool, key=key)
        return best, current + variety.score(best, running).new_count <= cap


def format_plan_markdown(plan: Plan) -> str:
    """Format a plan as markdown with one table per day."""
    lines = [
        f"# {plan.name}",
        "",
        f"- Days: {plan.days}",
        f"- Slots per day: {plan.slots_per_day}",
        f"- Daily calorie target: {plan.daily_calories:.0f}",
    ]
    if plan.max_ingredients is not None:
        lines.append(f"- Ingredient cap: {plan.max_ingredients}")
    if plan.protocol:
        lines.append(f"- Fasting protocol: {plan.protocol}")
    lines.append("")

    daily = {d.day: d.totals for d in nutrition.per_day(plan)}
    for day in range(1, plan.days + 1):
        lines.append(f"## Day {day}")
        lines.append("")
        lines.append("| Meal | Recipe | Calories | Protein | Carbs | Fat | Time |")
        lines.append("|------|--------|----------|---------|-------|-----|------|")
        for slot in plan.slots_for_day(day):
            c = slot.candidate
            name = f"*{c.name}*" if c.placeholder else c.name
            when = slot.timing.time if slot.timing else ""
            lines.append(
                f"| {slot.slot_type.value.title()} | {name} "
                f"| {c.calories:.0f} | {c.protein_g:.0f}g "
                f"| {c.carbs_g:.0f}g | {c.fat_g:.0f}g | {when} |"
            )
        t = daily[day]
        lines.append(
            f"| **Total** | | **{t.calories:.0f}** | **{t.protein_g:.0f}g** "
            f"| **{t.carbs_g:.0f}g** | **{t.fat_g:.0f}g** | |"
        )
        lines.append("")

    avg = nutrition.average(plan)
    unique = len({s.candidate.id for s in plan.slots if not s.placeholder})
    lines.append("## Summary")
    lines.append("")
    lines.append(f"- Average calories: {avg.calories:.0f}/day")
    lines.append(f"- Average protein: {avg.protein_g:.0f}g/day")
    lines.append(f"- Unique recipes: {unique}")
    lines.append("")
    return "\n".join(lines)


def format_plan_json(plan: Plan) -> str:
    """Format a plan as a self-contained JSON snapshot."""
    data = plan.to_dict()
    data["nutrition"] = nutrition.summary(plan)
    return json.dumps(data, indent=2)
