"""Recipe content via the Claude CLI and recipe artwork via an images API."""

from __future__ import annotations

import json
import logging
import os
import subprocess

import httpx

from plan_engine.errors import GenerationServiceError, ImageResolutionError
from plan_engine.models import Candidate, GenerationPreferences

logger = logging.getLogger(__name__)

BATCH_PROMPT = """\
You are an expert nutritionist and professional chef.
Generate a batch of {count} diverse and healthy recipes.

Respond with a single JSON object containing a "recipes" array: {{"recipes": [...]}}.
Each recipe object MUST have these fields:
- "name": string
- "description": string
- "mealTypes": array of strings, e.g. ["breakfast", "snack"]
- "dietaryTags": array of strings, e.g. ["gluten-free", "vegan"]
- "mainIngredientTags": array of strings, e.g. ["chicken", "broccoli"]
- "ingredients": array of {{"name": string, "amount": number, "unit": string}}
- "instructions": string with detailed, step-by-step instructions
- "prepTimeMinutes", "cookTimeMinutes", "servings": numbers
- "estimatedNutrition": {{"calories": number, "protein": number, "carbs": number, "fat": number}}, per serving

Return ONLY valid JSON, no markdown fences, no explanation.

Generate {count} recipes with the following specifications:
{requirements}
"""

IMAGE_PROMPT = """\
An ultra-realistic, high-resolution photograph of "{name}", a {meal} dish. \
It features: {description}. Artfully plated on a clean white ceramic plate on a \
rustic wooden table, soft natural side lighting, shallow depth of field, 45 degree \
camera angle, minimal garnish. Style: photorealistic."""


def _range_text(label: str, low: int | None, high: int | None) -> str | None:
    if not low and not high:
        return None
    if not high:
        return f"at least {low}g {label}"
    return f"{low or 0}-{high}g {label}"


def build_requirements(prefs: GenerationPreferences) -> list[str]:
    """Human-readable requirement lines for the batch prompt."""
    lines = []
    if prefs.natural_language_prompt:
        lines.append(f'User requirements: "{prefs.natural_language_prompt}"')
    if prefs.meal_types:
        lines.append(f"Meal types: {', '.join(prefs.meal_types)}")
    if prefs.dietary_restrictions:
        lines.append(f"Dietary restrictions: {', '.join(prefs.dietary_restrictions)}")
    if prefs.fitness_goal:
        lines.append(f"Fitness goal: {prefs.fitness_goal}")
    if prefs.target_calories:
        lines.append(f"Target calories per recipe: ~{prefs.target_calories}")
    if prefs.max_calories:
        lines.append(f"Maximum calories per recipe: {prefs.max_calories}")
    if prefs.main_ingredient:
        lines.append(f"Main ingredient focus: {prefs.main_ingredient}")
    if prefs.max_prep_time:
        lines.append(f"Maximum prep time: {prefs.max_prep_time} minutes")

    macros = [
        r
        for r in (
            _range_text("protein", prefs.min_protein, prefs.max_protein),
            _range_text("carbs", prefs.min_carbs, prefs.max_carbs),
            _range_text("fat", prefs.min_fat, prefs.max_fat),
        )
        if r
    ]
    if macros:
        lines.append(f"Macro targets per recipe: {', '.join(macros)}")
    return lines


def build_batch_prompt(count: int, prefs: GenerationPreferences | None = None) -> str:
    lines = build_requirements(prefs or GenerationPreferences())
    requirements = (
        "\n".join(lines) if lines else "No specific requirements - create diverse, healthy recipes."
    )
    return BATCH_PROMPT.format(count=count, requirements=requirements)


def strip_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if present."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text[: text.rfind("```")]
        text = text.strip()
    return text


def parse_partial_json(text: str) -> object:
    """Parse JSON, salvaging the complete objects from a truncated response."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    start = text.find("{")
    if start == -1:
        raise GenerationServiceError("No JSON object found in generation response")

    # Walk back from the last closing brace until the prefix parses once the
    # open recipes array and wrapper object are closed.
    end = text.rfind("}")
    while end > start:
        candidate = text[start : end + 1]
        for suffix in ("", "]}", "}"):
            try:
                return json.loads(candidate + suffix)
            except json.JSONDecodeError:
                continue
        end = text.rfind("}", start, end)

    raise GenerationServiceError("Could not repair truncated JSON from generation response")


def extract_recipes(payload: object) -> list[dict]:
    """Pull the recipe list out of a parsed response (wrapped or bare array)."""
    if isinstance(payload, dict):
        recipes = payload.get("recipes", [])
    elif isinstance(payload, list):
        recipes = payload
    else:
        recipes = []
    if not isinstance(recipes, list):
        raise GenerationServiceError("Generation response 'recipes' is not a list")
    return [r for r in recipes if isinstance(r, dict)]


def _call_claude_raw(prompt: str, model: str = "sonnet", timeout: int = 180) -> str:
    """Call Claude via CLI and return raw text output."""
    try:
        result = subprocess.run(
            ["claude", "--model", model, "-p"],
            input=prompt,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise GenerationServiceError(f"claude CLI timed out after {timeout}s") from e
    except FileNotFoundError as e:
        raise GenerationServiceError("'claude' CLI not found. Install it first.") from e

    if result.returncode != 0:
        logger.error("claude CLI error: %s", result.stderr.strip())
        raise GenerationServiceError(
            f"claude CLI exited with status {result.returncode}"
        )
    return strip_fences(result.stdout)


class GenerationClient:
    """External generation service: recipe batches and recipe images.

    Both calls are remote and slow; callers route them through a RateLimiter.
    """

    def __init__(
        self,
        model: str = "sonnet",
        cli_timeout: int = 180,
        image_api_base_url: str = "https://api.openai.com/v1",
        image_model: str = "dall-e-3",
        image_size: str = "1024x1024",
        image_timeout: float = 60.0,
        api_key: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.model = model
        self.cli_timeout = cli_timeout
        self.image_api_base_url = image_api_base_url.rstrip("/")
        self.image_model = image_model
        self.image_size = image_size
        self.api_key = api_key
        self._http = http_client or httpx.Client(timeout=image_timeout)

    @classmethod
    def from_config(cls, config: dict) -> GenerationClient:
        gen = config["generation"]
        return cls(
            model=gen["model"],
            cli_timeout=gen["cli_timeout_seconds"],
            image_api_base_url=gen["image_api_base_url"],
            image_model=gen["image_model"],
            image_size=gen["image_size"],
            image_timeout=gen["image_timeout_seconds"],
            api_key=os.environ.get(gen["api_key_env"]),
        )

    def generate_batch(
        self, count: int, preferences: GenerationPreferences | None = None
    ) -> list[dict]:
        prompt = build_batch_prompt(count, preferences)
        logger.info("Requesting %d recipes from claude (%s)", count, self.model)
        text = _call_claude_raw(prompt, model=self.model, timeout=self.cli_timeout)
        recipes = extract_recipes(parse_partial_json(text))
        if len(recipes) < count:
            logger.warning("Asked for %d recipes, received %d", count, len(recipes))
        return recipes

    def generate_image(self, candidate: Candidate) -> str:
        """Request one image and return its temporary URL."""
        if not self.api_key:
            raise ImageResolutionError("No API key configured for image generation")
        meal = candidate.slot_types[0].value if candidate.slot_types else "healthy"
        prompt = IMAGE_PROMPT.format(
            name=candidate.name,
            meal=meal,
            description=candidate.description or "fresh, colorful ingredients",
        )
        try:
            response = self._http.post(
                f"{self.image_api_base_url}/images/generations",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.image_model,
                    "prompt": prompt,
                    "n": 1,
                    "size": self.image_size,
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ImageResolutionError(f"Image request failed: {e}") from e

        data = response.json().get("data") or []
        url = data[0].get("url") if data else None
        if not url:
            raise ImageResolutionError("Did not receive a temporary URL")
        return url

    def close(self) -> None:
        self._http.close()
