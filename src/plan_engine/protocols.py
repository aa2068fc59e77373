"""Day-phase and intra-day timing tables for fasting and cleanse protocols."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from plan_engine.errors import PhaseLookupError, ProtocolError
from plan_engine.models import MealTiming, Plan, PlanShell, SlotType

logger = logging.getLogger(__name__)

NO_FASTING = "none"


@dataclass(frozen=True)
class FastingWindow:
    code: str
    fasting_window: str
    eating_window: str
    meals: tuple[MealTiming, ...]
    exercise_timing: str

    @property
    def meals_per_day(self) -> int:
        return len(self.meals)


@dataclass(frozen=True)
class FastingDay:
    day: int
    window: FastingWindow


FASTING_PROTOCOLS: dict[str, FastingWindow] = {
    "16:8": FastingWindow(
        code="16:8",
        fasting_window="8:00 PM - 12:00 PM next day",
        eating_window="12:00 PM - 8:00 PM",
        meals=(
            MealTiming("lunch", SlotType.LUNCH, "12:00", "12:00-13:00",
                       "Break fast with protein and fiber"),
            MealTiming("dinner", SlotType.DINNER, "19:00", "18:00-19:00",
                       "Light dinner 3 hours before sleep"),
        ),
        exercise_timing="Late morning or early afternoon",
    ),
    "18:6": FastingWindow(
        code="18:6",
        fasting_window="7:00 PM - 1:00 PM next day",
        eating_window="1:00 PM - 7:00 PM",
        meals=(
            MealTiming("lunch", SlotType.LUNCH, "13:00", "13:00-14:00",
                       "Nutrient-dense break-fast meal"),
            MealTiming("dinner", SlotType.DINNER, "18:00", "17:00-18:00",
                       "Early dinner for optimal digestion"),
        ),
        exercise_timing="Mid-afternoon",
    ),
    "20:4": FastingWindow(
        code="20:4",
        fasting_window="6:00 PM - 2:00 PM next day",
        eating_window="2:00 PM - 6:00 PM",
        meals=(
            MealTiming("meal", SlotType.LUNCH, "14:00", "14:00-15:00",
                       "Single highly nutritious meal"),
        ),
        exercise_timing="Just before eating window",
    ),
    "OMAD": FastingWindow(
        code="OMAD",
        fasting_window="23 hours daily",
        eating_window="1 hour",
        meals=(
            MealTiming("meal", SlotType.DINNER, "17:00", "16:00-18:00",
                       "One complete, nutrient-dense meal"),
        ),
        exercise_timing="Just before eating window",
    ),
    NO_FASTING: FastingWindow(
        code=NO_FASTING,
        fasting_window="None",
        eating_window="Throughout day",
        meals=(
            MealTiming("breakfast", SlotType.BREAKFAST, "08:00", "07:00-09:00",
                       "Light protein-rich start"),
            MealTiming("lunch", SlotType.LUNCH, "13:00", "12:00-14:00",
                       "Main meal of the day"),
            MealTiming("dinner", SlotType.DINNER, "19:00", "18:00-19:00",
                       "Light, early dinner"),
        ),
        exercise_timing="Morning or afternoon",
    ),
}


def normalize_fasting_code(code: str | None) -> str:
    if code is None or not code.strip() or code.strip().lower() == NO_FASTING:
        return NO_FASTING
    code = code.strip().upper()
    if code not in FASTING_PROTOCOLS:
        valid = ", ".join(FASTING_PROTOCOLS)
        raise ProtocolError(f"Unknown fasting protocol '{code}'. Valid: {valid}")
    return code


def fasting_window(code: str | None) -> FastingWindow:
    return FASTING_PROTOCOLS[normalize_fasting_code(code)]


def meals_per_day_for_fasting(code: str | None) -> int:
    """1 for 20:4/OMAD, 2 for 16:8/18:6, 3 with no fasting."""
    return fasting_window(code).meals_per_day


def fasting_schedule(code: str | None, duration: int) -> list[FastingDay]:
    """One entry per day; the window is the same every day."""
    if duration < 1:
        raise ProtocolError(f"Protocol duration must be at least 1 day, got {duration}")
    window = fasting_window(code)
    return [FastingDay(day=d, window=window) for d in range(1, duration + 1)]


def fasting_plan_shell(
    code: str | None,
    days: int,
    daily_calories: float,
    max_ingredients: int | None = None,
    dietary_tag: str | None = None,
) -> PlanShell:
    """A plan shell whose slots line up with the protocol's eating window."""
    window = fasting_window(code)
    return PlanShell(
        days=days,
        slots_per_day=window.meals_per_day,
        daily_calories=daily_calories,
        max_ingredients=max_ingredients,
        dietary_tag=dietary_tag,
        name=f"{window.code} Fasting Plan" if window.code != NO_FASTING else "Meal Plan",
        slot_types=tuple(m.slot_type for m in window.meals),
    )


def attach_fasting_schedule(plan: Plan, code: str | None) -> list[FastingDay]:
    """Set meal timing on each slot of a scheduled plan.

    Slots beyond the window's meal count keep no timing.
    """
    window = fasting_window(code)
    if plan.slots_per_day > window.meals_per_day:
        logger.warning(
            "Plan has %d slots per day but %s allows %d meals; extra slots are untimed",
            plan.slots_per_day,
            window.code,
            window.meals_per_day,
        )
    for slot in plan.slots:
        if slot.slot <= len(window.meals):
            slot.timing = window.meals[slot.slot - 1]
    plan.protocol = window.code
    return fasting_schedule(code, plan.days)


# Cleanse protocols


@dataclass(frozen=True)
class ProtocolPhase:
    name: str
    days: str
    focus: str

    @property
    def day_range(self) -> tuple[int, int]:
        try:
            start_s, end_s = self.days.split("-")
            start, end = int(start_s), int(end_s)
        except ValueError:
            raise PhaseLookupError(
                f"Phase '{self.name}' has malformed day range '{self.days}'"
            ) from None
        if start > end:
            raise PhaseLookupError(f"Phase '{self.name}' has inverted day range '{self.days}'")
        return start, end


PREPARATION = "Gentle introduction, dietary changes"
ACTIVE = "Primary anti-parasitic action"

CLEANSE_PHASES: list[tuple[int, tuple[ProtocolPhase, ...]]] = [
    (7, (ProtocolPhase("Active Cleanse", "1-7", ACTIVE),)),
    (14, (
        ProtocolPhase("Preparation", "1-2", PREPARATION),
        ProtocolPhase("Active Cleanse", "3-12", ACTIVE),
        ProtocolPhase("Restoration", "13-14", "Probiotic restoration, gentle foods"),
    )),
    (30, (
        ProtocolPhase("Preparation", "1-3", PREPARATION),
        ProtocolPhase("Active Cleanse Phase 1", "4-14", ACTIVE),
        ProtocolPhase("Maintenance", "15-25", "Sustained cleansing, body adaptation"),
        ProtocolPhase("Restoration", "26-30", "Probiotic restoration, system recovery"),
    )),
    (90, (
        ProtocolPhase("Preparation", "1-7", "System preparation, dietary transition"),
        ProtocolPhase("Active Cleanse Phase 1", "8-30", ACTIVE),
        ProtocolPhase("Rest Period", "31-37", "System rest, gentle detox support"),
        ProtocolPhase("Active Cleanse Phase 2", "38-60", "Secondary cleansing round"),
        ProtocolPhase("Maintenance", "61-80", "Sustained support, lifestyle integration"),
        ProtocolPhase("Restoration", "81-90", "Complete system restoration"),
    )),
]


def cleanse_phases(duration: int) -> list[ProtocolPhase]:
    """Phase table for the duration's bucket (<=7, <=14, <=30, <=90, >90 days).

    Durations past 90 days reuse the 90-day table with the final
    restoration phase stretched to the last day.
    """
    if duration < 1:
        raise ProtocolError(f"Protocol duration must be at least 1 day, got {duration}")
    for limit, phases in CLEANSE_PHASES:
        if duration <= limit:
            return list(phases)
    phases = list(CLEANSE_PHASES[-1][1])
    last = phases[-1]
    phases[-1] = ProtocolPhase(last.name, f"81-{duration}", last.focus)
    return phases


def current_phase(day: int, phases: list[ProtocolPhase]) -> str:
    """Name of the phase containing ``day``.

    Raises PhaseLookupError when no phase covers the day.
    """
    for phase in phases:
        start, end = phase.day_range
        if start <= day <= end:
            return phase.name
    raise PhaseLookupError(f"Day {day} is outside every protocol phase")


@dataclass
class CleanseRequest:
    duration: int
    intensity: str = "moderate"  # gentle | moderate | intensive
    experience_level: str = "beginner"  # first_time | beginner | experienced
    supplement_tolerance: str = "medium"  # low | medium | high
    medical_conditions: list[str] = field(default_factory=list)
    pregnancy_or_breastfeeding: bool = False
    healthcare_provider_consent: bool = False


def validate_cleanse_request(request: CleanseRequest) -> None:
    if request.pregnancy_or_breastfeeding:
        raise ProtocolError(
            "Cleanse protocols are not recommended during pregnancy or breastfeeding"
        )
    if request.medical_conditions and not request.healthcare_provider_consent:
        raise ProtocolError(
            "Healthcare provider consultation required for individuals with medical conditions"
        )
    if request.experience_level == "first_time" and request.intensity == "intensive":
        raise ProtocolError("Intensive protocols not recommended for first-time cleansers")
    if request.duration < 1:
        raise ProtocolError(f"Protocol duration must be at least 1 day, got {request.duration}")


@dataclass(frozen=True)
class TimelineEntry:
    time: str
    activity: str
    details: str


DAILY_CLEANSE_TIMELINE = (
    TimelineEntry("6:30 AM", "Morning cleanse drink",
                  "Lemon water with apple cider vinegar and cayenne"),
    TimelineEntry("7:00 AM", "Supplement protocol",
                  "Follow supplement schedule based on intensity level"),
    TimelineEntry("8:00 AM", "Breakfast", "Include garlic, coconut oil, and pumpkin seeds"),
    TimelineEntry("12:00 PM", "Lunch with elimination support",
                  "High-fiber vegetables and anti-inflammatory foods"),
    TimelineEntry("3:00 PM", "Pineapple and papaya seed snack",
                  "Raw pineapple with 1 tsp papaya seeds"),
    TimelineEntry("6:00 PM", "Light dinner", "Easily digestible ingredients"),
    TimelineEntry("9:00 PM", "Evening elimination support",
                  "Herbal tea blend or magnesium supplement"),
)

BASE_SUPPLEMENTS = (
    ("Garlic Extract", "500-1000mg", "With breakfast"),
    ("Oregano Oil", "2-3 drops in olive oil", "With breakfast"),
    ("Digestive Enzymes", "1-2 capsules", "With lunch"),
    ("Magnesium", "200-400mg", "Before bed"),
)
BLACK_WALNUT = ("Black Walnut Hull", "250-500mg", "Between meals")

HYDRATION_PLAN = {
    "daily_goal": "80-100 oz of fluids",
    "timing": [
        "16-20 oz upon waking",
        "8 oz before each meal",
        "Sip throughout the day",
        "Herbal tea in evening",
    ],
    "avoid": ["Sugary drinks", "Alcohol", "Excessive caffeine"],
}


@dataclass
class CleanseDay:
    day: int
    phase: str
    timeline: tuple[TimelineEntry, ...]
    supplements: list[tuple[str, str, str]]
    hydration: dict


def supplements_for(intensity: str, tolerance: str) -> list[tuple[str, str, str]]:
    supplements = list(BASE_SUPPLEMENTS)
    if tolerance == "high" or intensity == "intensive":
        supplements.insert(2, BLACK_WALNUT)
    return supplements


def cleanse_daily_schedule(request: CleanseRequest) -> list[CleanseDay]:
    """Validate the request and build one timed schedule per day."""
    validate_cleanse_request(request)
    phases = cleanse_phases(request.duration)
    supplements = supplements_for(request.intensity, request.supplement_tolerance)
    days = [
        CleanseDay(
            day=d,
            phase=current_phase(d, phases),
            timeline=DAILY_CLEANSE_TIMELINE,
            supplements=supplements,
            hydration=HYDRATION_PLAN,
        )
        for d in range(1, request.duration + 1)
    ]
    logger.info(
        "Built %d-day cleanse schedule across %d phases", request.duration, len(phases)
    )
    return days


def format_fasting_markdown(schedule: list[FastingDay]) -> str:
    if not schedule:
        return ""
    window = schedule[0].window
    lines = [
        f"# Fasting Protocol: {window.code}",
        "",
        f"- Fasting window: {window.fasting_window}",
        f"- Eating window: {window.eating_window}",
        f"- Meals per day: {window.meals_per_day}",
        f"- Exercise: {window.exercise_timing}",
        f"- Duration: {len(schedule)} days",
        "",
        "| Meal | Time | Optimal window | Notes |",
        "|------|------|----------------|-------|",
    ]
    for meal in window.meals:
        lines.append(f"| {meal.label.title()} | {meal.time} | {meal.optimal_window} | {meal.notes} |")
    lines.append("")
    return "\n".join(lines)


def format_cleanse_markdown(days: list[CleanseDay], phases: list[ProtocolPhase]) -> str:
    lines = [f"# Cleanse Protocol: {len(days)} days", "", "## Phases", ""]
    for phase in phases:
        lines.append(f"- **{phase.name}** (days {phase.days}): {phase.focus}")
    lines.append("")
    if days:
        lines.append("## Daily Timeline")
        lines.append("")
        for entry in days[0].timeline:
            lines.append(f"- {entry.time}: {entry.activity} ({entry.details})")
        lines.append("")
        lines.append("## Supplements")
        lines.append("")
        for name, dosage, timing in days[0].supplements:
            lines.append(f"- {name}: {dosage}, {timing.lower()}")
        lines.append("")
        lines.append("## Days")
        lines.append("")
        for d in days:
            lines.append(f"- Day {d.day}: {d.phase}")
        lines.append("")
    return "\n".join(lines)
