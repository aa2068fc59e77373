"""CLI entry point for the plan engine."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def get_base_path(args: argparse.Namespace) -> Path:
    return Path(args.base_path) if args.base_path else Path.cwd()


def _load(args: argparse.Namespace, **overrides: object) -> tuple[Path, dict]:
    from plan_engine.config import apply_cli_overrides, load_config

    base = get_base_path(args)
    return base, apply_cli_overrides(load_config(base), **overrides)


def cmd_plan(args: argparse.Namespace) -> None:
    from plan_engine.config import resolve_path
    from plan_engine.models import PlanShell
    from plan_engine.protocols import attach_fasting_schedule, fasting_plan_shell
    from plan_engine.recipe_store import RecipeStore
    from plan_engine.scheduler import (
        PlanScheduler,
        format_plan_json,
        format_plan_markdown,
        search_fetcher,
    )

    if args.fasting and args.slots is not None:
        raise ValueError(
            "--slots cannot be combined with --fasting; the protocol sets the meals per day"
        )

    base, config = _load(
        args,
        days=args.days,
        slots=args.slots,
        calories=args.calories,
        max_ingredients=args.max_ingredients,
        dietary_tag=args.dietary_tag,
    )
    plan_cfg = config["plan"]

    if args.fasting:
        shell = fasting_plan_shell(
            args.fasting,
            days=plan_cfg["days"],
            daily_calories=plan_cfg["daily_calories"],
            max_ingredients=plan_cfg["max_ingredients"],
            dietary_tag=plan_cfg["dietary_tag"],
        )
    else:
        shell = PlanShell(
            days=plan_cfg["days"],
            slots_per_day=plan_cfg["slots_per_day"],
            daily_calories=plan_cfg["daily_calories"],
            max_ingredients=plan_cfg["max_ingredients"],
            dietary_tag=plan_cfg["dietary_tag"],
        )

    store = RecipeStore(resolve_path(base, config, "recipes_dir"))
    result = PlanScheduler(search_fetcher(store)).schedule(shell)
    if args.fasting:
        attach_fasting_schedule(result.plan, args.fasting)

    for message in result.messages:
        logger.warning(message)

    output = (
        format_plan_json(result.plan)
        if args.format == "json"
        else format_plan_markdown(result.plan)
    )
    if args.output:
        Path(args.output).write_text(output)
        print(f"Plan saved to {args.output}", file=sys.stderr)
    else:
        print(output)


def cmd_generate(args: argparse.Namespace) -> None:
    from plan_engine.cache import ResultCache
    from plan_engine.config import resolve_path
    from plan_engine.generation import GenerationClient
    from plan_engine.image_store import LocalImageStore
    from plan_engine.metrics import MetricsCollector
    from plan_engine.models import GenerationPreferences
    from plan_engine.pipeline import GenerationPipeline
    from plan_engine.rate_limiter import RateLimiter
    from plan_engine.recipe_store import RecipeStore

    base, config = _load(args, workers=args.workers)
    limits = config["rate_limit"]
    preferences = GenerationPreferences(
        meal_types=tuple(args.meal_type or ()),
        dietary_restrictions=tuple(args.dietary or ()),
        target_calories=args.target_calories,
        max_calories=args.max_calories,
        main_ingredient=args.main_ingredient,
        fitness_goal=args.goal,
        natural_language_prompt=args.prompt,
        max_prep_time=args.max_prep_time,
        min_protein=args.min_protein,
        max_protein=args.max_protein,
    )

    limiter = RateLimiter(
        max_requests=limits["max_requests"],
        window_seconds=limits["window_seconds"],
        backoff_seconds=limits["backoff_seconds"],
    )
    client = GenerationClient.from_config(config)
    images = LocalImageStore(
        resolve_path(base, config, "images_dir"),
        base_url=config["paths"]["images_base_url"],
    )
    metrics = MetricsCollector()
    pipeline = GenerationPipeline(
        service=client,
        object_store=images,
        recipe_store=RecipeStore(resolve_path(base, config, "recipes_dir")),
        limiter=limiter,
        cache=ResultCache(ttl_seconds=config["cache"]["ttl_seconds"]),
        metrics=metrics,
        max_workers=config["generation"]["max_workers"],
    )
    try:
        result = pipeline.generate_batch(
            args.count or config["generation"]["batch_size"],
            preferences,
            show_progress=True,
        )
    finally:
        limiter.shutdown()
        client.close()
        images.close()

    data = result.to_dict()
    data["collector"] = metrics.get_metrics()
    print(json.dumps(data, indent=2))
    if result.success == 0:
        sys.exit(1)


def cmd_fasting(args: argparse.Namespace) -> None:
    from dataclasses import asdict

    from plan_engine.protocols import fasting_schedule, format_fasting_markdown

    schedule = fasting_schedule(args.code, args.days)
    if args.format == "json":
        days = []
        for entry in schedule:
            window = asdict(entry.window)
            for meal in window["meals"]:
                meal["slot_type"] = meal["slot_type"].value
            days.append({"day": entry.day, **window})
        print(json.dumps(days, indent=2))
    else:
        print(format_fasting_markdown(schedule))


def cmd_cleanse(args: argparse.Namespace) -> None:
    from dataclasses import asdict

    from plan_engine.protocols import (
        CleanseRequest,
        cleanse_daily_schedule,
        cleanse_phases,
        current_phase,
        format_cleanse_markdown,
    )

    request = CleanseRequest(
        duration=args.days,
        intensity=args.intensity,
        experience_level=args.experience,
        supplement_tolerance=args.tolerance,
        medical_conditions=args.condition or [],
        pregnancy_or_breastfeeding=args.pregnant,
        healthcare_provider_consent=args.provider_consent,
    )
    days = cleanse_daily_schedule(request)
    phases = cleanse_phases(args.days)

    if args.day is not None:
        print(current_phase(args.day, phases))
    elif args.format == "json":
        print(
            json.dumps(
                {"phases": [asdict(p) for p in phases], "days": [asdict(d) for d in days]},
                indent=2,
            )
        )
    else:
        print(format_cleanse_markdown(days, phases))


def cmd_prep(args: argparse.Namespace) -> None:
    from plan_engine.meal_prep import format_prep_json, format_prep_markdown
    from plan_engine.models import plan_from_dict

    if args.plan_file:
        with open(args.plan_file) as f:
            data = json.load(f)
    else:
        data = json.load(sys.stdin)
    plan = plan_from_dict(data)
    print(format_prep_json(plan) if args.format == "json" else format_prep_markdown(plan))


def _add_format(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--format", choices=["markdown", "json"], default="markdown")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plan-engine",
        description="Nutrition plan scheduling, recipe generation and protocol timing",
    )
    parser.add_argument(
        "--base-path",
        type=str,
        default=None,
        help="Directory holding plan-engine.yaml, recipes/ and images/ (default: cwd)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default="info",
        help="Logging verbosity (default: info)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write logs to this file",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # plan
    p_plan = sub.add_parser("plan", help="Schedule a multi-day plan from stored recipes")
    p_plan.add_argument("--days", type=int)
    p_plan.add_argument("--slots", type=int, help="Meals per day")
    p_plan.add_argument("--calories", type=int, help="Daily calorie target")
    p_plan.add_argument(
        "--max-ingredients", type=int, help="Cap on distinct ingredients across the plan"
    )
    p_plan.add_argument("--dietary-tag", type=str)
    p_plan.add_argument(
        "--fasting",
        type=str,
        help="Fasting protocol (16:8, 18:6, 20:4, OMAD); sets meals per day",
    )
    p_plan.add_argument("--output", type=str, help="Write the plan to a file")
    _add_format(p_plan)
    p_plan.set_defaults(func=cmd_plan)

    # generate
    p_gen = sub.add_parser("generate", help="Generate, illustrate and store new recipes")
    p_gen.add_argument("--count", type=int)
    p_gen.add_argument("--meal-type", action="append", help="Repeatable")
    p_gen.add_argument("--dietary", action="append", help="Repeatable")
    p_gen.add_argument("--target-calories", type=int)
    p_gen.add_argument("--max-calories", type=int)
    p_gen.add_argument("--main-ingredient", type=str)
    p_gen.add_argument("--goal", type=str, help="Fitness goal")
    p_gen.add_argument("--prompt", type=str, help="Free-form requirements")
    p_gen.add_argument("--max-prep-time", type=int)
    p_gen.add_argument("--min-protein", type=int)
    p_gen.add_argument("--max-protein", type=int)
    p_gen.add_argument("--workers", type=int, help="Parallel item workers")
    p_gen.set_defaults(func=cmd_generate)

    # protocol
    p_proto = sub.add_parser("protocol", help="Fasting and cleanse schedules")
    proto_sub = p_proto.add_subparsers(dest="protocol", required=True)

    p_fast = proto_sub.add_parser("fasting", help="Daily fasting windows")
    p_fast.add_argument("--code", type=str, default=None, help="16:8, 18:6, 20:4, OMAD")
    p_fast.add_argument("--days", type=int, default=7)
    _add_format(p_fast)
    p_fast.set_defaults(func=cmd_fasting)

    p_clean = proto_sub.add_parser("cleanse", help="Phased cleanse schedule")
    p_clean.add_argument("--days", type=int, required=True)
    p_clean.add_argument("--day", type=int, help="Print only the phase for this day")
    p_clean.add_argument(
        "--intensity", choices=["gentle", "moderate", "intensive"], default="moderate"
    )
    p_clean.add_argument(
        "--experience", choices=["first_time", "beginner", "experienced"], default="beginner"
    )
    p_clean.add_argument("--tolerance", choices=["low", "medium", "high"], default="medium")
    p_clean.add_argument("--condition", action="append", help="Medical condition (repeatable)")
    p_clean.add_argument("--pregnant", action="store_true")
    p_clean.add_argument("--provider-consent", action="store_true")
    _add_format(p_clean)
    p_clean.set_defaults(func=cmd_cleanse)

    # prep
    p_prep = sub.add_parser("prep", help="Shopping list and prep steps for a saved plan")
    p_prep.add_argument("--plan-file", type=str, help="Plan JSON (default: stdin)")
    _add_format(p_prep)
    p_prep.set_defaults(func=cmd_prep)

    return parser


def main() -> None:
    from plan_engine.errors import PlanEngineError
    from plan_engine.log import setup_logging

    parser = build_parser()
    args = parser.parse_args()
    log_file = Path(args.log_file) if args.log_file else None
    setup_logging(level=args.log_level, log_file=log_file)
    try:
        args.func(args)
    except (PlanEngineError, ValueError) as e:
        logger.error("%s", e)
        sys.exit(2)


if __name__ == "__main__":
    main()
