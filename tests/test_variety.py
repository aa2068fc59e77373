"""Unit tests for ingredient variety scoring."""

from plan_engine.models import Candidate, Ingredient
from plan_engine.variety import (
    VarietyScore,
    ingredient_names,
    merge_ingredients,
    normalize_ingredient,
    score,
)


def _with_ingredients(*names):
    return Candidate(
        id="c",
        name="Test Dish",
        calories=400,
        protein_g=20,
        carbs_g=40,
        fat_g=10,
        ingredients=tuple(Ingredient(name=n, amount=1) for n in names),
    )


class TestNormalize:
    def test_case_and_whitespace(self):
        assert normalize_ingredient("  Red Onion ") == "red onion"

    def test_no_stemming(self):
        assert normalize_ingredient("Onions") != normalize_ingredient("onion")


class TestScore:
    def test_all_new_on_empty_set(self):
        assert score(_with_ingredients("rice", "beans"), set()) == VarietyScore(2, 0)

    def test_reuse_is_case_insensitive(self):
        result = score(_with_ingredients("Rice", "BEANS", "corn"), {"rice", "beans"})
        assert result == VarietyScore(new_count=1, reuse_count=2)

    def test_duplicates_count_once(self):
        candidate = _with_ingredients("garlic", "Garlic", "oil")
        assert ingredient_names(candidate) == {"garlic", "oil"}
        assert score(candidate, set()).new_count == 2

    def test_does_not_mutate_running_set(self):
        running = {"rice"}
        score(_with_ingredients("rice", "beans"), running)
        assert running == {"rice"}

    def test_deterministic(self):
        candidate = _with_ingredients("a", "b", "c")
        running = frozenset({"b"})
        assert score(candidate, running) == score(candidate, running)

    def test_no_ingredients(self):
        assert score(_with_ingredients(), {"rice"}) == VarietyScore(0, 0)


class TestMerge:
    def test_returns_new_set(self):
        running = {"rice"}
        merged = merge_ingredients(running, _with_ingredients("Beans"))
        assert merged == {"rice", "beans"}
        assert running == {"rice"}
