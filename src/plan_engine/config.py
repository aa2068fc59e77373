"""Engine settings loading with defaults and CLI override merging."""

from __future__ import annotations

import copy
import logging
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "plan-engine.yaml"

DEFAULTS = {
    "paths": {
        "recipes_dir": "recipes",
        "images_dir": "images",
        "images_base_url": None,
    },
    "plan": {
        "days": 7,
        "slots_per_day": 3,
        "daily_calories": 2000,
        "max_ingredients": None,
        "dietary_tag": None,
    },
    "generation": {
        "batch_size": 5,
        "max_workers": 4,
        "model": "sonnet",
        "cli_timeout_seconds": 180,
        "image_api_base_url": "https://api.openai.com/v1",
        "image_model": "dall-e-3",
        "image_size": "1024x1024",
        "image_timeout_seconds": 60,
        "api_key_env": "OPENAI_API_KEY",
    },
    "rate_limit": {
        "max_requests": 50,
        "window_seconds": 60,
        "backoff_seconds": 1.0,
    },
    "cache": {
        "ttl_seconds": 3600,
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base, returning a new dict."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(base_path: Path | None = None) -> dict:
    """Load engine settings from plan-engine.yaml, falling back to defaults."""
    if base_path is None:
        return copy.deepcopy(DEFAULTS)

    config_path = base_path / CONFIG_FILENAME
    if not config_path.exists():
        logger.debug("No %s in %s, using defaults", CONFIG_FILENAME, base_path)
        return copy.deepcopy(DEFAULTS)

    with open(config_path) as f:
        user_config = yaml.safe_load(f) or {}
    if not isinstance(user_config, dict):
        raise ValueError(f"{config_path} must contain a mapping at the top level")
    return deep_merge(DEFAULTS, user_config)


def apply_cli_overrides(config: dict, **overrides: object) -> dict:
    """Apply CLI argument overrides to config.

    Supports flat keys that map into nested config:
      days -> plan.days
      slots -> plan.slots_per_day
      calories -> plan.daily_calories
      max_ingredients -> plan.max_ingredients
      dietary_tag -> plan.dietary_tag
      workers -> generation.max_workers
      rate_limit -> rate_limit.max_requests
    """
    mapping = {
        "days": ("plan", "days"),
        "slots": ("plan", "slots_per_day"),
        "calories": ("plan", "daily_calories"),
        "max_ingredients": ("plan", "max_ingredients"),
        "dietary_tag": ("plan", "dietary_tag"),
        "workers": ("generation", "max_workers"),
        "rate_limit": ("rate_limit", "max_requests"),
    }
    for flag, (section, key) in mapping.items():
        if overrides.get(flag) is not None:
            config[section][key] = overrides[flag]

    return config


def resolve_path(base_path: Path, config: dict, key: str) -> Path:
    """Resolve a configured directory relative to the base path."""
    path = Path(config["paths"][key])
    return path if path.is_absolute() else base_path / path
