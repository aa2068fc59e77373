"""Unit tests for greedy plan scheduling."""

import json

import pytest

from plan_engine.errors import InvalidPlanShellError
from plan_engine.models import PlanShell, SlotType
from plan_engine.scheduler import (
    PlanScheduler,
    format_plan_json,
    format_plan_markdown,
    search_fetcher,
    slot_rotation,
)
from plan_engine.search import CandidateFilter, SearchResult, filter_candidates
from plan_engine.variety import normalize_ingredient


def _fetcher(pool):
    def fetch(slot_type, filters):
        filters.slot_type = slot_type
        return filter_candidates(pool, filters).items

    return fetch


def _distinct_ingredients(plan):
    return {
        normalize_ingredient(i.name)
        for s in plan.slots
        for i in s.candidate.ingredients
    }


class TestSlotRotation:
    def test_single_slot_is_lunch(self):
        assert slot_rotation(1) == [SlotType.LUNCH]

    def test_two_slots(self):
        assert slot_rotation(2) == [SlotType.BREAKFAST, SlotType.DINNER]

    def test_three_slots(self):
        assert slot_rotation(3) == [SlotType.BREAKFAST, SlotType.LUNCH, SlotType.DINNER]

    def test_five_slots_cycle(self):
        assert slot_rotation(5) == [
            SlotType.BREAKFAST,
            SlotType.LUNCH,
            SlotType.DINNER,
            SlotType.SNACK,
            SlotType.BREAKFAST,
        ]

    def test_explicit_rotation_wins(self):
        assert slot_rotation(3, (SlotType.DINNER,)) == [SlotType.DINNER] * 3


class TestShellValidation:
    @pytest.mark.parametrize("days,slots", [(0, 3), (3, 0), (-1, 2)])
    def test_invalid_shell_raises(self, pool_fetcher, days, slots):
        scheduler = PlanScheduler(pool_fetcher)
        with pytest.raises(ValueError, match="must be at least 1"):
            scheduler.schedule(PlanShell(days=days, slots_per_day=slots, daily_calories=2000))

    def test_negative_calories(self, pool_fetcher):
        with pytest.raises(InvalidPlanShellError, match="daily_calories"):
            PlanScheduler(pool_fetcher).schedule(
                PlanShell(days=1, slots_per_day=1, daily_calories=-5)
            )


class TestSlotCount:
    @pytest.mark.parametrize("days,slots", [(1, 1), (3, 2), (7, 3), (2, 5)])
    def test_plan_fills_every_cell(self, pool_fetcher, days, slots):
        result = PlanScheduler(pool_fetcher).schedule(
            PlanShell(days=days, slots_per_day=slots, daily_calories=2000)
        )
        plan = result.plan
        assert len(plan.slots) == days * slots
        assert [(s.day, s.slot) for s in plan.slots] == [
            (d, i) for d in range(1, days + 1) for i in range(1, slots + 1)
        ]

    def test_empty_pool_yields_placeholders(self):
        result = PlanScheduler(lambda slot_type, filters: []).schedule(
            PlanShell(days=3, slots_per_day=2, daily_calories=2000)
        )
        assert len(result.plan.slots) == 6
        assert all(s.placeholder for s in result.plan.slots)
        assert result.degraded
        assert any("Limited recipe selection" in m for m in result.messages)

    def test_partial_placeholders_are_not_degraded(self, make_candidate):
        pool = [make_candidate("Toast", 300, ("bread",), (SlotType.BREAKFAST,))]
        def fetch(slot_type, filters):
            return pool if slot_type == SlotType.BREAKFAST else []

        result = PlanScheduler(fetch).schedule(
            PlanShell(days=2, slots_per_day=2, daily_calories=1000)
        )
        assert len(result.plan.slots) == 4
        assert not result.degraded
        placeholders = [s for s in result.plan.slots if s.placeholder]
        assert len(placeholders) == 2
        assert any("2 of 4 slots" in m for m in result.messages)


class TestSelection:
    def test_best_calorie_fit_without_cap(self, make_candidate):
        pool = [
            make_candidate("Big Bowl", 900, ("rice",)),
            make_candidate("Right Size", 510, ("pasta",)),
            make_candidate("Tiny Plate", 200, ("lettuce",)),
        ]
        result = PlanScheduler(_fetcher(pool)).schedule(
            PlanShell(days=1, slots_per_day=1, daily_calories=500)
        )
        assert result.plan.slots[0].candidate.name == "Right Size"

    def test_recent_picks_are_rotated_without_cap(self, make_candidate):
        pool = [
            make_candidate("Pasta", 500, ("pasta", "tomato", "basil")),
            make_candidate("Rice Bowl", 600, ("rice", "beans")),
            make_candidate("Rice Salad", 610, ("rice", "lettuce")),
        ]
        result = PlanScheduler(_fetcher(pool)).schedule(
            PlanShell(days=3, slots_per_day=1, daily_calories=500)
        )
        names = [s.candidate.name for s in result.plan.slots]
        assert names == ["Pasta", "Rice Bowl", "Rice Salad"]

    def test_cap_respected_when_feasible(self, make_candidate):
        pool = [
            make_candidate("Pasta", 500, ("pasta", "tomato", "basil")),
            make_candidate("Rice Bowl", 600, ("rice", "beans")),
            make_candidate("Rice Salad", 610, ("rice", "lettuce")),
        ]
        result = PlanScheduler(_fetcher(pool)).schedule(
            PlanShell(days=3, slots_per_day=1, daily_calories=500, max_ingredients=2)
        )
        assert len(_distinct_ingredients(result.plan)) <= 2
        assert {s.candidate.name for s in result.plan.slots} == {"Rice Bowl"}
        assert not any("cap" in m for m in result.messages)

    def test_reuse_beats_calorie_fit_under_cap(self, make_candidate):
        pool = [
            make_candidate("Eggs Florentine", 500, ("eggs", "spinach"), (SlotType.BREAKFAST,)),
            make_candidate("Salmon Spinach", 700, ("spinach", "salmon"), (SlotType.DINNER,)),
            make_candidate("Steak Potatoes", 500, ("beef", "potato"), (SlotType.DINNER,)),
        ]
        shell = PlanShell(days=1, slots_per_day=2, daily_calories=1000, max_ingredients=10)
        capped = PlanScheduler(_fetcher(pool)).schedule(shell)
        assert capped.plan.slots[1].candidate.name == "Salmon Spinach"

        shell.max_ingredients = None
        uncapped = PlanScheduler(_fetcher(pool)).schedule(shell)
        assert uncapped.plan.slots[1].candidate.name == "Steak Potatoes"

    def test_infeasible_cap_still_completes(self, make_candidate):
        pool = [
            make_candidate("Curry", 520, ("chickpeas", "coconut milk", "rice")),
            make_candidate("Chili", 700, ("beans", "beef", "tomato")),
        ]
        result = PlanScheduler(_fetcher(pool)).schedule(
            PlanShell(days=2, slots_per_day=1, daily_calories=500, max_ingredients=1)
        )
        assert len(result.plan.slots) == 2
        assert result.plan.slots[0].candidate.name == "Curry"
        assert any("cap of 1 was exceeded" in m for m in result.messages)

    def test_cap_property_over_sample_pool(self, pool_fetcher):
        cap = 9
        result = PlanScheduler(pool_fetcher).schedule(
            PlanShell(days=5, slots_per_day=3, daily_calories=1800, max_ingredients=cap)
        )
        assert len(result.plan.slots) == 15
        assert len(_distinct_ingredients(result.plan)) <= cap

    def test_dietary_tag_filter(self, pool_fetcher):
        result = PlanScheduler(pool_fetcher).schedule(
            PlanShell(days=2, slots_per_day=3, daily_calories=1500, dietary_tag="vegetarian")
        )
        for slot in result.plan.slots:
            if not slot.placeholder:
                assert "vegetarian" in slot.candidate.dietary_tags

    def test_falls_back_to_other_meal_types(self, make_candidate):
        pool = [make_candidate("Soup", 400, ("broth",), (SlotType.LUNCH,))]
        result = PlanScheduler(_fetcher(pool)).schedule(
            PlanShell(days=1, slots_per_day=2, daily_calories=800)
        )
        assert [s.candidate.name for s in result.plan.slots] == ["Soup", "Soup"]
        assert not any(s.placeholder for s in result.plan.slots)
        assert any("other meal types" in m for m in result.messages)


class TestSearchFetcher:
    def test_passes_slot_type_through(self, sample_candidates):
        seen = []

        class Source:
            def search(self, filters):
                seen.append(filters.slot_type)
                return filter_candidates(sample_candidates, filters)

        fetch = search_fetcher(Source())
        result = PlanScheduler(fetch).schedule(
            PlanShell(days=1, slots_per_day=3, daily_calories=1500)
        )
        assert seen == [SlotType.BREAKFAST, SlotType.LUNCH, SlotType.DINNER]
        assert len(result.plan.slots) == 3

    def test_search_result_shape(self, sample_candidates):
        result = filter_candidates(sample_candidates, CandidateFilter(limit=2))
        assert isinstance(result, SearchResult)
        assert result.total == len(sample_candidates)
        assert len(result.items) == 2


class TestPlanOutput:
    def test_to_dict_embeds_candidate_snapshot(self, pool_fetcher):
        plan = PlanScheduler(pool_fetcher).schedule(
            PlanShell(days=1, slots_per_day=2, daily_calories=1200)
        ).plan
        data = plan.to_dict()
        assert data["days"] == 1
        assert data["slots_per_day"] == 2
        slot = data["slots"][0]
        assert slot["day"] == 1
        assert slot["slot"] == 1
        assert slot["slot_type"] == "breakfast"
        assert slot["candidate"]["name"]
        assert slot["candidate"]["ingredients"]
        assert "calories" in slot["candidate"]

    def test_markdown_has_each_day(self, pool_fetcher):
        plan = PlanScheduler(pool_fetcher).schedule(
            PlanShell(days=2, slots_per_day=3, daily_calories=1800)
        ).plan
        md = format_plan_markdown(plan)
        assert "## Day 1" in md
        assert "## Day 2" in md
        assert "Average calories" in md

    def test_json_includes_nutrition(self, pool_fetcher):
        plan = PlanScheduler(pool_fetcher).schedule(
            PlanShell(days=2, slots_per_day=2, daily_calories=1800)
        ).plan
        data = json.loads(format_plan_json(plan))
        assert len(data["slots"]) == 4
        assert len(data["nutrition"]["daily"]) == 2
