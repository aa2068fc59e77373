"""Tests for the command line entry point."""

import json
import sys

import pytest

from plan_engine.cli import build_parser, main
from plan_engine.models import plan_from_dict


RECIPE = """\
---
type: recipe
name: {name}
meal_type: {meal}
calories: {calories}
protein_g: 20
carbs_g: 40
fat_g: 10
ingredients:
  - name: {ingredient}
    amount: 1
    unit: cup
---
"""


@pytest.fixture
def recipes_dir(tmp_path):
    recipes = tmp_path / "recipes"
    recipes.mkdir()
    for name, meal, calories, ingredient in [
        ("Oat Bowl", "breakfast", 400, "oats"),
        ("Bean Salad", "lunch", 550, "beans"),
        ("Salmon Plate", "dinner", 650, "salmon"),
    ]:
        slug = name.lower().replace(" ", "-")
        (recipes / f"{slug}.md").write_text(
            RECIPE.format(name=name, meal=meal, calories=calories, ingredient=ingredient)
        )
    return tmp_path


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["plan-engine", *argv])
    main()


class TestParser:
    def test_subcommands(self):
        parser = build_parser()
        args = parser.parse_args(["plan", "--days", "3", "--format", "json"])
        assert args.command == "plan"
        assert args.days == 3
        args = parser.parse_args(["protocol", "cleanse", "--days", "10", "--day", "5"])
        assert args.protocol == "cleanse"
        assert args.day == 5


class TestCommands:
    def test_cleanse_phase_lookup(self, monkeypatch, capsys):
        _run(monkeypatch, "protocol", "cleanse", "--days", "10", "--day", "5")
        assert capsys.readouterr().out.strip() == "Active Cleanse"

    def test_cleanse_out_of_range_exits(self, monkeypatch):
        with pytest.raises(SystemExit) as exc:
            _run(monkeypatch, "protocol", "cleanse", "--days", "10", "--day", "30")
        assert exc.value.code == 2

    def test_fasting_json(self, monkeypatch, capsys):
        _run(monkeypatch, "protocol", "fasting", "--code", "16:8", "--days", "2", "--format", "json")
        days = json.loads(capsys.readouterr().out)
        assert len(days) == 2
        assert days[0]["meals"][0]["slot_type"] == "lunch"

    def test_plan_json(self, monkeypatch, capsys, recipes_dir):
        _run(
            monkeypatch,
            "--base-path", str(recipes_dir),
            "plan", "--days", "2", "--slots", "3", "--calories", "1600", "--format", "json",
        )
        data = json.loads(capsys.readouterr().out)
        assert len(data["slots"]) == 6
        assert data["slots"][0]["candidate"]["name"] == "Oat Bowl"

    def test_plan_then_prep(self, monkeypatch, capsys, recipes_dir, tmp_path):
        out = tmp_path / "plan.json"
        _run(
            monkeypatch,
            "--base-path", str(recipes_dir),
            "plan", "--days", "1", "--format", "json", "--output", str(out),
        )
        assert len(plan_from_dict(json.loads(out.read_text())).slots) == 3
        capsys.readouterr()

        _run(monkeypatch, "prep", "--plan-file", str(out), "--format", "json")
        data = json.loads(capsys.readouterr().out)
        assert {i["item"] for i in data["shopping_list"]} == {"Oats", "Beans", "Salmon"}

    def test_fasting_plan_rejects_slots(self, monkeypatch, capsys, recipes_dir):
        with pytest.raises(SystemExit) as exc:
            _run(
                monkeypatch,
                "--base-path", str(recipes_dir),
                "plan", "--fasting", "16:8", "--slots", "3",
            )
        assert exc.value.code == 2
        assert capsys.readouterr().out == ""

    def test_fasting_plan_has_timing(self, monkeypatch, capsys, recipes_dir):
        _run(
            monkeypatch,
            "--base-path", str(recipes_dir),
            "plan", "--days", "1", "--fasting", "16:8", "--format", "json",
        )
        data = json.loads(capsys.readouterr().out)
        assert data["protocol"] == "16:8"
        assert [s["timing"]["time"] for s in data["slots"]] == ["12:00", "19:00"]
