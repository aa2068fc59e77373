"""Shared data models for the plan engine."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum

from plan_engine.errors import CandidateValidationError

NUTRITION_FIELDS = ("calories", "protein_g", "carbs_g", "fat_g")


class SlotType(Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"

    @classmethod
    def parse(cls, value: str) -> SlotType:
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown slot type '{value}'. Valid: {valid}") from None


@dataclass(frozen=True)
class Ingredient:
    name: str
    amount: float | str | None = None
    unit: str | None = None


def _check_nutrition(candidate_name: str, field_name: str, value: object) -> float:
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CandidateValidationError(
            f"Candidate '{candidate_name}': {field_name} is missing or not a number"
        )
    if math.isnan(value) or math.isinf(value):
        raise CandidateValidationError(
            f"Candidate '{candidate_name}': {field_name} is not a finite number"
        )
    if value < 0:
        raise CandidateValidationError(
            f"Candidate '{candidate_name}': {field_name} must be non-negative, got {value}"
        )
    return float(value)


@dataclass(frozen=True)
class Candidate:
    """A selectable or generatable plan item (usually a recipe).

    Nutrition is per serving and checked on creation: missing, NaN or
    negative values raise CandidateValidationError instead of becoming zero.
    """

    id: str
    name: str
    calories: float
    protein_g: float
    carbs_g: float
    fat_g: float
    slot_types: tuple[SlotType, ...] = ()
    dietary_tags: tuple[str, ...] = ()
    main_ingredient_tags: tuple[str, ...] = ()
    ingredients: tuple[Ingredient, ...] = ()
    description: str = ""
    instructions: tuple[str, ...] = ()
    prep_time_min: int | None = None
    cook_time_min: int | None = None
    servings: int = 1
    image_url: str | None = None
    source: str | None = None
    placeholder: bool = False

    def __post_init__(self) -> None:
        if not self.name or not str(self.name).strip():
            raise CandidateValidationError("Candidate name is required")
        for field_name in NUTRITION_FIELDS:
            value = _check_nutrition(self.name, field_name, getattr(self, field_name))
            object.__setattr__(self, field_name, value)
        # Normalize list inputs so equality and hashing stay tuple-based
        for field_name in ("slot_types", "dietary_tags", "main_ingredient_tags",
                           "ingredients", "instructions"):
            object.__setattr__(self, field_name, tuple(getattr(self, field_name)))

    @property
    def total_time_min(self) -> int | None:
        if self.prep_time_min is None and self.cook_time_min is None:
            return None
        return (self.prep_time_min or 0) + (self.cook_time_min or 0)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["slot_types"] = [t.value for t in self.slot_types]
        data["dietary_tags"] = list(self.dietary_tags)
        data["main_ingredient_tags"] = list(self.main_ingredient_tags)
        data["ingredients"] = [asdict(i) for i in self.ingredients]
        data["instructions"] = list(self.instructions)
        return data

    @classmethod
    def placeholder_for(cls, day: int, slot: int, slot_type: SlotType) -> Candidate:
        return cls(
            id=f"placeholder-{day}-{slot}",
            name="No recipe available",
            calories=0,
            protein_g=0,
            carbs_g=0,
            fat_g=0,
            slot_types=(slot_type,),
            placeholder=True,
        )


@dataclass(frozen=True)
class MealTiming:
    label: str
    slot_type: SlotType
    time: str
    optimal_window: str
    notes: str


@dataclass
class PlanShell:
    days: int
    slots_per_day: int
    daily_calories: float
    max_ingredients: int | None = None
    dietary_tag: str | None = None
    name: str = "Meal Plan"
    slot_types: tuple[SlotType, ...] = ()


@dataclass
class PlanSlot:
    day: int  # 1-indexed
    slot: int  # 1-indexed within the day
    slot_type: SlotType
    candidate: Candidate
    timing: MealTiming | None = None

    @property
    def placeholder(self) -> bool:
        return self.candidate.placeholder

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "slot": self.slot,
            "slot_type": self.slot_type.value,
            "candidate": self.candidate.to_dict(),
            "timing": _timing_dict(self.timing) if self.timing else None,
        }


def _timing_dict(timing: MealTiming) -> dict:
    data = asdict(timing)
    data["slot_type"] = timing.slot_type.value
    return data


@dataclass
class Plan:
    name: str
    daily_calories: float
    days: int
    slots_per_day: int
    max_ingredients: int | None = None
    dietary_tag: str | None = None
    protocol: str | None = None
    slots: list[PlanSlot] = field(default_factory=list)

    def slots_for_day(self, day: int) -> list[PlanSlot]:
        return [s for s in self.slots if s.day == day]

    def day_calories(self, day: int) -> float:
        return sum(s.candidate.calories for s in self.slots_for_day(day))

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "daily_calories": self.daily_calories,
            "days": self.days,
            "slots_per_day": self.slots_per_day,
            "max_ingredients": self.max_ingredients,
            "dietary_tag": self.dietary_tag,
            "protocol": self.protocol,
            "slots": [s.to_dict() for s in self.slots],
        }


@dataclass(frozen=True)
class NutritionTotals:
    calories: float = 0.0
    protein_g: float = 0.0
    carbs_g: float = 0.0
    fat_g: float = 0.0

    def __add__(self, other: NutritionTotals) -> NutritionTotals:
        return NutritionTotals(
            calories=self.calories + other.calories,
            protein_g=self.protein_g + other.protein_g,
            carbs_g=self.carbs_g + other.carbs_g,
            fat_g=self.fat_g + other.fat_g,
        )

    def scaled(self, factor: float) -> NutritionTotals:
        return NutritionTotals(
            calories=self.calories * factor,
            protein_g=self.protein_g * factor,
            carbs_g=self.carbs_g * factor,
            fat_g=self.fat_g * factor,
        )


@dataclass(frozen=True)
class DayNutrition:
    day: int
    totals: NutritionTotals


@dataclass(frozen=True)
class GenerationPreferences:
    """Options steering a generation batch. Every field is optional."""

    meal_types: tuple[str, ...] = ()
    dietary_restrictions: tuple[str, ...] = ()
    target_calories: int | None = None
    main_ingredient: str | None = None
    fitness_goal: str | None = None
    natural_language_prompt: str | None = None
    max_prep_time: int | None = None
    max_calories: int | None = None
    min_protein: int | None = None
    max_protein: int | None = None
    min_carbs: int | None = None
    max_carbs: int | None = None
    min_fat: int | None = None
    max_fat: int | None = None


@dataclass
class ItemOutcome:
    name: str
    success: bool
    error: str | None = None
    error_kind: str | None = None
    stored_id: str | None = None


@dataclass
class GenerationResult:
    success: int
    failed: int
    errors: list[str] = field(default_factory=list)
    items: list[ItemOutcome] = field(default_factory=list)
    total_duration_ms: float = 0.0
    average_time_per_recipe_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "failed": self.failed,
            "errors": list(self.errors),
            "items": [asdict(i) for i in self.items],
            "metrics": {
                "total_duration_ms": round(self.total_duration_ms, 1),
                "average_time_per_recipe_ms": round(self.average_time_per_recipe_ms, 1),
            },
        }


def candidate_from_dict(data: dict) -> Candidate:
    """Rebuild a Candidate from its ``to_dict`` form; validation runs again."""
    return Candidate(
        id=data["id"],
        name=data["name"],
        calories=data.get("calories"),
        protein_g=data.get("protein_g"),
        carbs_g=data.get("carbs_g"),
        fat_g=data.get("fat_g"),
        slot_types=tuple(SlotType(t) for t in data.get("slot_types", [])),
        dietary_tags=tuple(data.get("dietary_tags", [])),
        main_ingredient_tags=tuple(data.get("main_ingredient_tags", [])),
        ingredients=tuple(
            Ingredient(name=i["name"], amount=i.get("amount"), unit=i.get("unit"))
            for i in data.get("ingredients", [])
        ),
        description=data.get("description", ""),
        instructions=tuple(data.get("instructions", [])),
        prep_time_min=data.get("prep_time_min"),
        cook_time_min=data.get("cook_time_min"),
        servings=data.get("servings", 1),
        image_url=data.get("image_url"),
        source=data.get("source"),
        placeholder=data.get("placeholder", False),
    )


def plan_from_dict(data: dict) -> Plan:
    """Rebuild a Plan from the JSON snapshot written by ``Plan.to_dict``."""
    plan = Plan(
        name=data.get("name", "Meal Plan"),
        daily_calories=data["daily_calories"],
        days=data["days"],
        slots_per_day=data["slots_per_day"],
        max_ingredients=data.get("max_ingredients"),
        dietary_tag=data.get("dietary_tag"),
        protocol=data.get("protocol"),
    )
    for s in data.get("slots", []):
        timing = s.get("timing")
        plan.slots.append(
            PlanSlot(
                day=s["day"],
                slot=s["slot"],
                slot_type=SlotType(s["slot_type"]),
                candidate=candidate_from_dict(s["candidate"]),
                timing=MealTiming(
                    label=timing["label"],
                    slot_type=SlotType(timing["slot_type"]),
                    time=timing["time"],
                    optimal_window=timing["optimal_window"],
                    notes=timing["notes"],
                )
                if timing
                else None,
            )
        )
    return plan
