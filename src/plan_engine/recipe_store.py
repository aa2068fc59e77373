"""File-backed recipe storage: markdown notes with YAML front matter."""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path

import frontmatter

from plan_engine.errors import CandidateValidationError, StorageError
from plan_engine.image_store import slugify
from plan_engine.models import Candidate, Ingredient, SlotType
from plan_engine.search import CandidateFilter, SearchResult, filter_candidates, slot_types_for_label

logger = logging.getLogger(__name__)

GENERATED_SOURCE = "AI Generated"


def normalize_servings(raw: str | int | float | None) -> int | None:
    """Parse varied servings formats into an integer.

    Handles: "Serves 4", "4", "4 servings", "4 to 6 servings" (midpoint).
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        return int(raw) if raw > 0 else None

    s = str(raw).strip()
    m = re.search(r"(?:serves?|servings?:?)\s*(\d+)", s, re.IGNORECASE)
    if m:
        return int(m.group(1))
    m = re.match(r"(\d+)\s*(?:to|-)\s*(\d+)", s)
    if m:
        return (int(m.group(1)) + int(m.group(2))) // 2
    m = re.match(r"(\d+)", s)
    if m and int(m.group(1)) > 0:
        return int(m.group(1))
    return None


def normalize_time(raw: str | int | float | None) -> int | None:
    """Parse "10 minutes", "1 hour 30 minutes", 15 etc. into minutes."""
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        return int(raw) if raw > 0 else None

    s = str(raw).strip()
    total = 0
    m = re.search(r"(\d+)\s*(?:hours?|hrs?|h)\b", s, re.IGNORECASE)
    if m:
        total += int(m.group(1)) * 60
    m = re.search(r"(\d+)\s*(?:minutes?|mins?|m)\b", s, re.IGNORECASE)
    if m:
        total += int(m.group(1))
    if total > 0:
        return total
    m = re.match(r"(\d+)$", s)
    return int(m.group(1)) if m else None


def _to_number(val: object) -> object:
    """Coerce numeric strings; anything else is passed through for validation."""
    if isinstance(val, str):
        try:
            return float(val)
        except ValueError:
            return val
    return val


def _as_list(val: object) -> list[str]:
    if not val:
        return []
    if isinstance(val, str):
        return [v.strip() for v in val.split(",") if v.strip()]
    return [str(v).strip() for v in val]


def _slot_types(meta: dict) -> tuple[SlotType, ...]:
    labels = _as_list(meta.get("meal_type")) + _as_list(meta.get("categories"))
    found: list[SlotType] = []
    for label in labels:
        for t in slot_types_for_label(label):
            if t not in found:
                found.append(t)
    return tuple(found)


def _ingredients(meta: dict) -> tuple[Ingredient, ...]:
    items: list[Ingredient] = []
    for entry in meta.get("ingredients") or []:
        if isinstance(entry, dict) and entry.get("name"):
            items.append(
                Ingredient(name=str(entry["name"]), amount=entry.get("amount"), unit=entry.get("unit"))
            )
    # Sectioned layout: [{section, items: [{qty, unit, item}]}]
    for section in meta.get("parsed_ingredients") or []:
        if not isinstance(section, dict):
            continue
        for entry in section.get("items", []):
            if isinstance(entry, dict) and entry.get("item"):
                items.append(
                    Ingredient(name=str(entry["item"]), amount=entry.get("qty"), unit=entry.get("unit"))
                )
    return tuple(items)


def parse_recipe_file(file_path: Path) -> Candidate | None:
    """Parse a single recipe markdown file into a Candidate.

    Returns None for notes that are not recipes. Raises
    CandidateValidationError when a recipe's nutrition is missing or invalid.
    """
    try:
        post = frontmatter.load(file_path)
    except Exception as e:
        logger.debug("Unreadable front matter in %s: %s", file_path, e)
        return None

    meta = post.metadata
    if meta.get("type") != "recipe":
        return None

    name = str(meta.get("name") or file_path.stem)
    instructions = meta.get("instructions") or []
    if isinstance(instructions, str):
        instructions = [line.strip() for line in instructions.splitlines() if line.strip()]

    return Candidate(
        id=str(meta.get("id") or file_path.stem),
        name=name,
        calories=_to_number(meta.get("calories")),
        protein_g=_to_number(meta.get("protein_g")),
        carbs_g=_to_number(meta.get("carbs_g")),
        fat_g=_to_number(meta.get("fat_g")),
        slot_types=_slot_types(meta),
        dietary_tags=tuple(_as_list(meta.get("dietary_tags"))),
        main_ingredient_tags=tuple(_as_list(meta.get("main_ingredient"))),
        ingredients=_ingredients(meta),
        description=str(meta.get("description") or ""),
        instructions=tuple(instructions),
        prep_time_min=normalize_time(meta.get("prep_time")),
        cook_time_min=normalize_time(meta.get("cook_time")),
        servings=normalize_servings(meta.get("servings")) or 1,
        image_url=meta.get("image_url"),
        source=meta.get("source"),
    )


def discover_recipe_files(recipes_path: Path, limit: int | None = None) -> list[Path]:
    """Find all .md files in the recipes directory."""
    files = sorted(recipes_path.glob("*.md"))
    if limit:
        files = files[:limit]
    return files


def candidate_to_frontmatter(candidate: Candidate) -> frontmatter.Post:
    metadata = {
        "type": "recipe",
        "id": candidate.id,
        "name": candidate.name,
        "description": candidate.description,
        "meal_type": [t.value for t in candidate.slot_types],
        "dietary_tags": list(candidate.dietary_tags),
        "main_ingredient": list(candidate.main_ingredient_tags),
        "calories": candidate.calories,
        "protein_g": candidate.protein_g,
        "carbs_g": candidate.carbs_g,
        "fat_g": candidate.fat_g,
        "servings": candidate.servings,
        "prep_time": candidate.prep_time_min,
        "cook_time": candidate.cook_time_min,
        "image_url": candidate.image_url,
        "source": candidate.source or GENERATED_SOURCE,
        "approved": False,
        "ingredients": [
            {"name": i.name, "amount": i.amount, "unit": i.unit} for i in candidate.ingredients
        ],
    }
    lines = [f"# {candidate.name}", ""]
    if candidate.description:
        lines += [candidate.description, ""]
    lines += ["## Ingredients", ""]
    for i in candidate.ingredients:
        qty = " ".join(str(p) for p in (i.amount, i.unit) if p not in (None, ""))
        lines.append(f"- {qty} {i.name}" if qty else f"- {i.name}")
    lines += ["", "## Instructions", ""]
    lines += [f"{n}. {step}" for n, step in enumerate(candidate.instructions, start=1)]
    return frontmatter.Post("\n".join(lines), **metadata)


class RecipeStore:
    """Search and persistence over a directory of recipe notes."""

    def __init__(self, recipes_path: Path) -> None:
        self.recipes_path = recipes_path
        self._lock = threading.Lock()
        self._candidates: list[Candidate] | None = None

    def load(self) -> list[Candidate]:
        with self._lock:
            if self._candidates is None:
                self._candidates = self._load_all()
            return list(self._candidates)

    def _load_all(self) -> list[Candidate]:
        candidates = []
        skipped = 0
        for path in discover_recipe_files(self.recipes_path):
            try:
                candidate = parse_recipe_file(path)
            except CandidateValidationError as e:
                skipped += 1
                logger.warning("Skipping %s: %s", path.name, e)
                continue
            if candidate is not None:
                candidates.append(candidate)
        logger.info(
            "Loaded %d recipes from %s (%d skipped)", len(candidates), self.recipes_path, skipped
        )
        return candidates

    def search(self, filters: CandidateFilter) -> SearchResult:
        return filter_candidates(self.load(), filters)

    def create(self, candidate: Candidate) -> str:
        """Write a candidate as a new note; returns the stored id (file stem)."""
        with self._lock:
            try:
                self.recipes_path.mkdir(parents=True, exist_ok=True)
                stem = slugify(candidate.name)
                path = self.recipes_path / f"{stem}.md"
                n = 2
                while path.exists():
                    path = self.recipes_path / f"{stem}-{n}.md"
                    n += 1
                stored_id = path.stem
                post = candidate_to_frontmatter(candidate)
                post.metadata["id"] = stored_id
                with open(path, "x", encoding="utf-8") as f:
                    f.write(frontmatter.dumps(post))
                    f.write("\n")
            except OSError as e:
                raise StorageError(str(e)) from e

            if self._candidates is not None:
                self._candidates.append(parse_recipe_file(path))
        logger.debug("Stored recipe %s at %s", candidate.name, path)
        return stored_id
