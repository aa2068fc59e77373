"""Nutrition totals derived from a plan's slots."""

from __future__ import annotations

from plan_engine.models import Candidate, DayNutrition, NutritionTotals, Plan


def _candidate_totals(candidate: Candidate) -> NutritionTotals:
    return NutritionTotals(
        calories=candidate.calories,
        protein_g=candidate.protein_g,
        carbs_g=candidate.carbs_g,
        fat_g=candidate.fat_g,
    )


def total(plan: Plan) -> NutritionTotals:
    """Sum calories and macros across every slot in the plan."""
    result = NutritionTotals()
    for slot in plan.slots:
        result = result + _candidate_totals(slot.candidate)
    return result


def per_day(plan: Plan) -> list[DayNutrition]:
    """Totals grouped by day index, one entry for each day 1..plan.days."""
    by_day = {d: NutritionTotals() for d in range(1, plan.days + 1)}
    for slot in plan.slots:
        by_day[slot.day] = by_day.get(slot.day, NutritionTotals()) + _candidate_totals(
            slot.candidate
        )
    return [DayNutrition(day=d, totals=t) for d, t in sorted(by_day.items())]


def average(plan: Plan) -> NutritionTotals:
    """Average daily nutrition: plan totals divided by the day count."""
    if plan.days < 1:
        raise ValueError(f"Plan must have at least one day, got {plan.days}")
    return total(plan).scaled(1 / plan.days)


def summary(plan: Plan) -> dict:
    """Rounded totals, per-day and average nutrition for display or JSON."""

    def _rounded(t: NutritionTotals) -> dict:
        return {
            "calories": round(t.calories),
            "protein_g": round(t.protein_g),
            "carbs_g": round(t.carbs_g),
            "fat_g": round(t.fat_g),
        }

    return {
        "total": _rounded(total(plan)),
        "daily": [{"day": d.day, **_rounded(d.totals)} for d in per_day(plan)],
        "average_daily": _rounded(average(plan)),
    }
