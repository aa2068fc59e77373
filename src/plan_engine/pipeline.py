"""Batch recipe generation: rate-limited request, per-item validation, images, storage."""

from __future__ import annotations

import logging
import math
import re
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import Protocol

from plan_engine.cache import ResultCache
from plan_engine.errors import (
    CandidateValidationError,
    GenerationServiceError,
    ImageResolutionError,
    StorageError,
)
from plan_engine.log import stderr_console
from plan_engine.metrics import MetricsCollector
from plan_engine.models import (
    Candidate,
    GenerationPreferences,
    GenerationResult,
    Ingredient,
    ItemOutcome,
    SlotType,
)
from plan_engine.rate_limiter import RateLimiter
from plan_engine.recipe_store import GENERATED_SOURCE

logger = logging.getLogger(__name__)

MACRO_KEYS = {
    "calories": "calories",
    "protein": "protein_g",
    "carbs": "carbs_g",
    "fat": "fat_g",
}


class GenerationService(Protocol):
    def generate_batch(
        self, count: int, preferences: GenerationPreferences | None
    ) -> list[dict]: ...

    def generate_image(self, candidate: Candidate) -> str: ...


class ObjectStore(Protocol):
    def upload(self, temporary_url: str, name: str) -> str: ...


class PersistenceStore(Protocol):
    def create(self, candidate: Candidate) -> str: ...


def image_cache_key(name: str) -> str:
    return "image_s3_" + re.sub(r"\s", "_", name)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _whole_number(value: object) -> int | None:
    """Finite non-negative number as int; anything else is treated as absent."""
    if not _is_number(value) or not math.isfinite(value) or value < 0:
        return None
    return int(value)


def _labels(value: object) -> list[str]:
    """A tag field as a list of strings; a bare string is one tag."""
    if not value:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    raise CandidateValidationError("Invalid tags")


def _slot_types(labels: list[str]) -> tuple[SlotType, ...]:
    found = []
    for label in labels:
        try:
            slot_type = SlotType.parse(label)
        except ValueError:
            continue
        if slot_type not in found:
            found.append(slot_type)
    return tuple(found)


def validate_item(raw: dict) -> Candidate:
    """Turn one generated recipe payload into a Candidate.

    Raises CandidateValidationError with a short reason: missing required
    fields, invalid nutritional information, invalid ingredients, invalid
    instructions or invalid tags.
    """
    if not isinstance(raw, dict):
        raise CandidateValidationError("Missing required fields")
    if not raw.get("name") or not raw.get("ingredients") or not raw.get("instructions"):
        raise CandidateValidationError("Missing required fields")

    nutrition = raw.get("estimatedNutrition")
    if not isinstance(nutrition, dict):
        raise CandidateValidationError("Invalid nutritional information")
    macros = {}
    for key, field_name in MACRO_KEYS.items():
        value = nutrition.get(key)
        if not _is_number(value) or not math.isfinite(value) or value < 0:
            raise CandidateValidationError("Invalid nutritional information")
        macros[field_name] = value

    if not isinstance(raw["ingredients"], list):
        raise CandidateValidationError("Invalid ingredients")
    ingredients = []
    for entry in raw["ingredients"]:
        if (
            not isinstance(entry, dict)
            or not entry.get("name")
            or entry.get("amount") in (None, "")
        ):
            raise CandidateValidationError("Invalid ingredients")
        ingredients.append(
            Ingredient(name=str(entry["name"]), amount=entry["amount"], unit=entry.get("unit"))
        )

    instructions = raw["instructions"]
    if isinstance(instructions, str):
        instructions = [line.strip() for line in instructions.splitlines() if line.strip()]
    elif isinstance(instructions, list):
        instructions = [str(step).strip() for step in instructions if str(step).strip()]
    else:
        raise CandidateValidationError("Invalid instructions")

    servings = _whole_number(raw.get("servings"))

    return Candidate(
        id=f"generated-{uuid.uuid4().hex[:12]}",
        name=str(raw["name"]).strip(),
        description=str(raw.get("description") or ""),
        slot_types=_slot_types(_labels(raw.get("mealTypes"))),
        dietary_tags=tuple(_labels(raw.get("dietaryTags"))),
        main_ingredient_tags=tuple(_labels(raw.get("mainIngredientTags"))),
        ingredients=tuple(ingredients),
        instructions=tuple(instructions),
        prep_time_min=_whole_number(raw.get("prepTimeMinutes")),
        cook_time_min=_whole_number(raw.get("cookTimeMinutes")),
        servings=servings if servings else 1,
        source=GENERATED_SOURCE,
        **macros,
    )


class GenerationPipeline:
    """Generates, validates, illustrates and stores a batch of recipes.

    Collaborators are injected so the limiter, cache and metrics can be
    shared across pipelines or replaced in tests.
    """

    def __init__(
        self,
        service: GenerationService,
        object_store: ObjectStore,
        recipe_store: PersistenceStore,
        limiter: RateLimiter,
        cache: ResultCache,
        metrics: MetricsCollector,
        max_workers: int = 4,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.service = service
        self.object_store = object_store
        self.recipe_store = recipe_store
        self.limiter = limiter
        self.cache = cache
        self.metrics = metrics
        self.max_workers = max_workers
        self._clock = clock

    def _elapsed_ms(self, start: float) -> float:
        return (self._clock() - start) * 1000

    def generate_batch(
        self,
        count: int,
        preferences: GenerationPreferences | None = None,
        show_progress: bool = False,
    ) -> GenerationResult:
        if count < 1:
            raise ValueError(f"count must be at least 1, got {count}")

        start = self._clock()
        try:
            items = self.limiter.submit(
                lambda: self.service.generate_batch(count, preferences)
            ).result()
            if not items:
                raise GenerationServiceError("No recipes were generated in the batch.")
        except Exception as e:
            duration = self._elapsed_ms(start)
            message = f"Recipe generation service failed: {e}"
            logger.error(message)
            self.metrics.record(duration, False, type(e).__name__)
            return GenerationResult(
                success=0,
                failed=count,
                errors=[message],
                total_duration_ms=duration,
                average_time_per_recipe_ms=duration / count,
            )

        logger.info("Processing %d generated recipes", len(items))
        outcomes = self._process_items(items, show_progress)

        success = sum(1 for o in outcomes if o.success)
        failed = len(outcomes) - success
        errors = [o.error for o in outcomes if o.error]
        shortfall = count - len(items)
        if shortfall > 0:
            failed += shortfall
            errors.append(f"Service returned {len(items)} of {count} requested recipes")
        first_kind = next((o.error_kind for o in outcomes if o.error_kind), None)

        duration = self._elapsed_ms(start)
        result = GenerationResult(
            success=success,
            failed=failed,
            errors=errors,
            items=outcomes,
            total_duration_ms=duration,
            average_time_per_recipe_ms=duration / count,
        )
        self.metrics.record(duration, success == count, first_kind)
        logger.info(
            "Done: %d stored, %d failed in %.0fms", success, failed, duration
        )
        return result

    def _process_items(self, items: list[dict], show_progress: bool) -> list[ItemOutcome]:
        """Fan items out to worker threads and wait for every one to settle."""
        from rich.progress import (
            BarColumn,
            MofNCompleteColumn,
            Progress,
            SpinnerColumn,
            TextColumn,
        )

        outcomes: list[ItemOutcome | None] = [None] * len(items)
        ok = fail = 0

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[green]{task.fields[ok]}[/green] ok"),
            TextColumn("[red]{task.fields[fail]}[/red] fail"),
            console=stderr_console,
            disable=not show_progress,
        ) as progress:
            task = progress.add_task("Storing recipes", total=len(items), ok=0, fail=0)

            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                future_to_index = {
                    executor.submit(self.process_item, raw): i for i, raw in enumerate(items)
                }
                for future in as_completed(future_to_index):
                    i = future_to_index[future]
                    outcome = future.result()
                    outcomes[i] = outcome
                    if outcome.success:
                        ok += 1
                        logger.debug("OK: %s (%s)", outcome.name, outcome.stored_id)
                    else:
                        fail += 1
                        logger.warning("FAILED: %s: %s", outcome.name, outcome.error)
                    progress.update(task, advance=1, ok=ok, fail=fail)

        return [o for o in outcomes if o is not None]

    def process_item(self, raw: dict) -> ItemOutcome:
        """Validate, illustrate and store one recipe; never raises."""
        name = str(raw.get("name") or "unnamed recipe") if isinstance(raw, dict) else "unnamed recipe"
        try:
            candidate = validate_item(raw)
        except CandidateValidationError as e:
            return ItemOutcome(name=name, success=False, error=str(e), error_kind=type(e).__name__)
        except (TypeError, ValueError, OverflowError) as e:
            logger.debug("Malformed recipe payload for %s: %s", name, e)
            return ItemOutcome(
                name=name,
                success=False,
                error=f"Malformed recipe data: {e}",
                error_kind=CandidateValidationError.__name__,
            )

        try:
            image_url = self.resolve_image(candidate)
        except Exception as e:
            logger.error("Image generation failed for %s: %s", candidate.name, e)
            return ItemOutcome(
                name=candidate.name,
                success=False,
                error=f"Image generation failed for recipe: {candidate.name}",
                error_kind=ImageResolutionError.__name__,
            )

        try:
            stored_id = self.recipe_store.create(replace(candidate, image_url=image_url))
        except Exception as e:
            return ItemOutcome(
                name=candidate.name,
                success=False,
                error=f'Failed to store recipe "{candidate.name}": {e}',
                error_kind=StorageError.__name__,
            )

        return ItemOutcome(name=candidate.name, success=True, stored_id=stored_id)

    def resolve_image(self, candidate: Candidate) -> str:
        """Permanent image URL for a candidate, generated and uploaded on cache miss."""

        def produce() -> str:
            temporary_url = self.limiter.submit(
                lambda: self.service.generate_image(candidate)
            ).result()
            if not temporary_url:
                raise ImageResolutionError("Did not receive a temporary URL")
            return self.object_store.upload(temporary_url, candidate.name)

        return self.cache.get_or_set(image_cache_key(candidate.name), produce)
