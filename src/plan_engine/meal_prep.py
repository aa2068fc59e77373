"""Shopping list consolidation and batch-prep steps for a scheduled plan."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field

from plan_engine.models import Plan

logger = logging.getLogger(__name__)

CATEGORY_KEYWORDS = {
    "vegetables": [
        "tomato", "onion", "garlic", "carrot", "celery", "bell pepper", "broccoli",
        "spinach", "lettuce", "cucumber", "zucchini", "asparagus", "mushroom",
        "kale", "cabbage", "cauliflower",
    ],
    "proteins": [
        "chicken", "beef", "pork", "fish", "salmon", "tuna", "turkey", "tofu",
        "tempeh", "eggs", "beans", "lentils", "chickpeas",
    ],
    "grains": ["rice", "quinoa", "oats", "pasta", "bread", "barley", "bulgur", "farro"],
    "dairy": ["milk", "cheese", "yogurt", "butter", "cream"],
}

STORAGE = {
    "vegetables": ("Refrigerate in airtight containers", "3-5 days"),
    "proteins": ("Refrigerate (cooked) or freeze (raw portions)",
                 "3-4 days refrigerated, 3 months frozen"),
    "grains": ("Refrigerate in sealed containers", "5-7 days"),
    "dairy": ("Refrigerate", "Use by expiration date"),
    "other": ("Store in pantry or refrigerate as appropriate", "Follow package instructions"),
}


@dataclass
class ShoppingItem:
    item: str
    total_amount: float
    unit: str
    used_in: list[str] = field(default_factory=list)


@dataclass
class PrepStep:
    step: int
    instruction: str
    minutes: int
    ingredients: list[str] = field(default_factory=list)


def classify_ingredient(name: str) -> str:
    """Classify an ingredient into a prep category."""
    name_lower = name.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(kw in name_lower for kw in keywords):
            return category
    return "other"


def _amount(value: object) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        return float(str(value).split()[0])
    except (ValueError, IndexError):
        return 0.0


def build_shopping_list(plan: Plan) -> list[ShoppingItem]:
    """Consolidate ingredients across all slots by lowercase name."""
    agg: dict[str, ShoppingItem] = {}
    for slot in plan.slots:
        if slot.placeholder:
            continue
        recipe = slot.candidate.name
        for ing in slot.candidate.ingredients:
            key = ing.name.strip().lower()
            if not key:
                continue
            if key not in agg:
                agg[key] = ShoppingItem(item=key.capitalize(), total_amount=0.0, unit=ing.unit or "")
            entry = agg[key]
            entry.total_amount += _amount(ing.amount)
            if recipe not in entry.used_in:
                entry.used_in.append(recipe)
    return sorted(agg.values(), key=lambda e: e.item.lower())


def prep_steps(shopping: list[ShoppingItem]) -> list[PrepStep]:
    by_category: dict[str, list[str]] = {}
    for entry in shopping:
        by_category.setdefault(classify_ingredient(entry.item), []).append(entry.item)

    steps: list[PrepStep] = []

    def add(instruction: str, minutes: int, items: list[str]) -> None:
        steps.append(PrepStep(len(steps) + 1, instruction, minutes, items))

    vegetables = by_category.get("vegetables", [])
    if vegetables:
        add(f"Wash and prep vegetables: {', '.join(vegetables)}. Chop, dice, or slice as needed.",
            max(15, len(vegetables) * 5), vegetables)
    proteins = by_category.get("proteins", [])
    if proteins:
        add(f"Prepare proteins: {', '.join(proteins)}. Trim, portion, and marinate if needed.",
            max(20, len(proteins) * 8), proteins)
    grains = by_category.get("grains", [])
    if grains:
        add(f"Cook grains and legumes: {', '.join(grains)}. Store in portions.",
            max(25, len(grains) * 10), grains)
    add("Label and store all prepped ingredients. Clean prep area and wash containers.", 10, [])
    return steps


def storage_instructions(shopping: list[ShoppingItem]) -> list[dict]:
    result = []
    for entry in shopping:
        method, duration = STORAGE[classify_ingredient(entry.item)]
        result.append({"item": entry.item, "method": method, "duration": duration})
    return result


def format_qty(qty: float) -> str:
    if qty == 0:
        return ""
    if qty == int(qty):
        return str(int(qty))
    return f"{qty:.1f}"


def format_prep_markdown(plan: Plan) -> str:
    shopping = build_shopping_list(plan)
    if not shopping:
        logger.warning("Plan has no ingredients to shop for")
    steps = prep_steps(shopping)

    lines = [f"# Meal Prep: {plan.name}", "", "## Shopping List", ""]
    for entry in shopping:
        qty = format_qty(entry.total_amount)
        unit = f" {entry.unit}" if entry.unit and qty else ""
        prefix = f"{qty}{unit} " if qty else ""
        lines.append(f"- [ ] {prefix}{entry.item} ({', '.join(entry.used_in)})")
    lines += ["", "## Prep Steps", ""]
    for step in steps:
        lines.append(f"{step.step}. {step.instruction} (~{step.minutes} min)")
    lines += ["", f"Total prep time: ~{sum(s.minutes for s in steps)} min", "", "## Storage", ""]
    for note in storage_instructions(shopping):
        lines.append(f"- {note['item']}: {note['method']} ({note['duration']})")
    lines.append("")
    return "\n".join(lines)


def format_prep_json(plan: Plan) -> str:
    shopping = build_shopping_list(plan)
    return json.dumps(
        {
            "shopping_list": [asdict(e) for e in shopping],
            "prep_steps": [asdict(s) for s in prep_steps(shopping)],
            "storage": storage_instructions(shopping),
        },
        indent=2,
    )
