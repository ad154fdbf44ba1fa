"""Stage four: turn the finished week into prep sessions."""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta

from pydantic import BaseModel, Field

from meal_planner.domain.errors import ContractViolationError
from meal_planner.domain.plans import (
    AssemblyStep,
    CoreIngredients,
    DayPlan,
    MealRef,
    PrepSchedule,
    PrepSession,
)
from meal_planner.domain.profile import (
    DAYS_OF_WEEK,
    SELECTABLE_MEAL_TYPES,
    UserProfile,
)
from meal_planner.services.generation import GenerationClient
from meal_planner.services.nutrition_cache import (
    NutritionCacheService,
    serving_reference,
)
from meal_planner.services.planning import collect_usage, has_household_members

_logger = logging.getLogger(__name__)

PROMPT_TYPE = "prep_mode_analysis"

SESSION_TYPES: tuple[str, ...] = (
    "weekly_batch",
    "night_before",
    "day_of_morning",
    "day_of_dinner",
)
PREP_CATEGORIES: tuple[str, ...] = ("sunday_batch", "day_of_quick", "day_of_cooking")
_MEAL_TYPES: tuple[str, ...] = (*SELECTABLE_MEAL_TYPES, "snack")


def _nullable(schema: dict[str, object]) -> dict[str, object]:
    nullable = dict(schema)
    nullable["type"] = [schema["type"], "null"]
    if "enum" in schema:
        nullable["enum"] = [*schema["enum"], None]  # type: ignore[misc]
    return nullable


_STRINGS: dict[str, object] = {"type": "array", "items": {"type": "string"}}

_TASK_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "description": {"type": "string"},
        "detailed_steps": _STRINGS,
        "estimated_minutes": {"type": "integer"},
        "meal_ids": _STRINGS,
        "equipment_needed": _STRINGS,
        "ingredients_to_prep": _STRINGS,
        "tips": _STRINGS,
        "storage": _nullable({"type": "string"}),
        "prep_category": _nullable({"type": "string", "enum": list(PREP_CATEGORIES)}),
        "completed": {"type": "boolean"},
    },
    "required": [
        "id",
        "description",
        "detailed_steps",
        "estimated_minutes",
        "meal_ids",
        "equipment_needed",
        "ingredients_to_prep",
        "tips",
        "storage",
        "prep_category",
        "completed",
    ],
    "additionalProperties": False,
}

PREP_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "prep_sessions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "session_name": {"type": "string"},
                    "session_type": {"type": "string", "enum": list(SESSION_TYPES)},
                    "session_day": _nullable(
                        {"type": "string", "enum": list(DAYS_OF_WEEK)}
                    ),
                    "session_time_of_day": _nullable(
                        {"type": "string", "enum": ["morning", "afternoon", "night"]}
                    ),
                    "prep_for_date": _nullable({"type": "string"}),
                    "estimated_minutes": {"type": "integer"},
                    "display_order": {"type": "integer"},
                    "prep_tasks": {"type": "array", "items": _TASK_SCHEMA},
                },
                "required": [
                    "session_name",
                    "session_type",
                    "session_day",
                    "session_time_of_day",
                    "prep_for_date",
                    "estimated_minutes",
                    "display_order",
                    "prep_tasks",
                ],
                "additionalProperties": False,
            },
        },
        "daily_assembly": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "day": {"type": "string", "enum": list(DAYS_OF_WEEK)},
                    "meal_type": {"type": "string", "enum": list(_MEAL_TYPES)},
                    "time": _nullable({"type": "string"}),
                    "instructions": {"type": "string"},
                },
                "required": ["day", "meal_type", "time", "instructions"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["prep_sessions", "daily_assembly"],
    "additionalProperties": False,
}


class _AssemblyEntry(BaseModel):
    day: str
    meal_type: str
    time: str | None = None
    instructions: str


class PrepReply(BaseModel):
    prep_sessions: list[PrepSession]
    daily_assembly: list[_AssemblyEntry] = Field(default_factory=list)


@dataclass
class PrepSchedulingStage:
    """Produces prep sessions and a daily assembly guide for the week."""

    client: GenerationClient
    nutrition_cache: NutritionCacheService
    max_tokens: int = 64000

    async def schedule(  # noqa: PLR0913
        self,
        days: Sequence[DayPlan],
        core_ingredients: CoreIngredients,
        profile: UserProfile,
        user_id: str,
        *,
        week_start: date | None = None,
        job_id: str | None = None,
    ) -> PrepSchedule:
        servings = self.nutrition_cache.fetch_many(collect_usage(days))
        prompt = build_prompt(
            days,
            core_ingredients,
            profile,
            week_start=week_start,
            reference=serving_reference(servings.values()),
        )
        reply = await self.client.call(
            prompt=prompt,
            schema=PREP_SCHEMA,
            schema_name="generate_prep_sessions",
            response_model=PrepReply,
            prompt_type=PROMPT_TYPE,
            user_id=user_id,
            max_tokens=self.max_tokens,
            job_id=job_id,
        )
        if not reply.prep_sessions:
            raise ContractViolationError("Prep schedule contained no sessions")

        sessions = []
        for session in sorted(reply.prep_sessions, key=lambda s: s.display_order):
            tasks = [
                task.model_copy(update={"feeds": decode_meal_ids(task.meal_ids)})
                for task in session.prep_tasks
            ]
            sessions.append(session.model_copy(update={"prep_tasks": tasks}))

        assembly: dict[str, dict[str, AssemblyStep]] = {}
        for entry in reply.daily_assembly:
            assembly.setdefault(entry.day, {})[entry.meal_type] = AssemblyStep(
                time=entry.time, instructions=entry.instructions
            )
        _logger.info(
            "Scheduled %s prep sessions (%s style) for %s",
            len(sessions),
            profile.prep_style,
            user_id,
        )
        return PrepSchedule(prep_sessions=sessions, daily_assembly=assembly)


def meal_id(day: str, meal_type: str, index: int) -> str:
    return f"meal_{day}_{meal_type}_{index}"


def decode_meal_id(value: str) -> MealRef | None:
    """Decode ``meal_{day}_{type}_{index}`` into the day and meal type it feeds.

    Meal types may themselves contain underscores (``pre_workout``), so the
    day and type are matched against the known names. Returns None for ids
    that do not follow the pattern.
    """
    rest = value.strip().lower().removeprefix("meal_")
    for day in DAYS_OF_WEEK:
        if not rest.startswith(f"{day}_"):
            continue
        remainder = rest[len(day) + 1 :]
        for meal_type in sorted(_MEAL_TYPES, key=len, reverse=True):
            if remainder == meal_type or remainder.startswith(f"{meal_type}_"):
                return MealRef(day=day, meal_type=meal_type)
        return None
    return None


def decode_meal_ids(values: Sequence[str]) -> list[MealRef]:
    feeds = []
    for value in values:
        ref = decode_meal_id(value)
        if ref is None:
            _logger.debug("Ignoring unrecognized meal id %r", value)
            continue
        feeds.append(ref)
    return feeds


def week_dates(week_start: date | None = None) -> dict[str, str]:
    """ISO date for each day, counting from ``week_start`` (default today)."""
    start = week_start or date.today()
    return {
        day: (start + timedelta(days=offset)).isoformat()
        for offset, day in enumerate(DAYS_OF_WEEK)
    }


def meal_summary(days: Sequence[DayPlan]) -> str:
    blocks = []
    for day in days:
        lines = []
        for index, meal in enumerate(day.meals):
            ingredients = ", ".join(
                f"{item.amount} {item.unit} {item.name}" for item in meal.ingredients
            )
            line = (
                f"  - {meal.type} (ID: {meal_id(day.day, meal.type, index)}): "
                f"{meal.name}\n"
                f"      Prep time: {meal.prep_time_minutes}min | "
                f"Protein: {meal.macros.protein:g}g\n"
                f"      Ingredients: {ingredients}"
            )
            if meal.instructions:
                steps = " ".join(
                    f"{number}. {step}"
                    for number, step in enumerate(meal.instructions, start=1)
                )
                line += f"\n      Instructions: {steps}"
            lines.append(line)
        blocks.append(f"{day.day.capitalize()}:\n" + "\n".join(lines))
    return "\n\n".join(blocks)


def _prep_style_section(profile: UserProfile) -> str:
    if profile.prep_style == "traditional_batch":
        return """
## PREP STYLE: Traditional Batch Prep
The user wants to prep as much as possible on Sunday (1.5-2.5 hours), then only assemble or reheat during the week.

Decide for EACH meal whether it can be batch-prepped or must be made day-of:
- BATCH ("weekly_batch" session, prep_category "sunday_batch"): grains, proteins that reheat well, roasted vegetables, sauces, overnight oats, soups, hard-boiled eggs
- DAY-OF ("day_of_morning" or "day_of_dinner" session): fish eaten 3+ days after prep, delicate salads, eggs cooked to order, avocado dishes, yogurt bowls, anything under 10 minutes
- Use prep_category "day_of_quick" for day-of meals under 10 minutes and "day_of_cooking" for longer ones
- Storage instructions are REQUIRED for every batch task
- daily_assembly is REQUIRED: one entry per meal per day telling the user how to assemble or reheat it
- Write ALL quantities for 1 serving only
"""
    return f"""
## PREP STYLE: Day-Of Fresh Cooking
The user cooks fresh for every meal and needs detailed instructions for EVERY meal that involves any cooking or preparation.
- Use "day_of_morning" sessions for breakfast and lunch, "day_of_dinner" for dinner
- Only skip truly grab-and-go items (a banana, a protein bar)
- Write ALL quantities for exactly ONE serving and keep steps day-agnostic
- Consolidate identical meals that repeat across days into one task
- daily_assembly may be empty

User's complexity preferences:
- Breakfast: {profile.breakfast_complexity}
- Lunch: {profile.lunch_complexity}
- Dinner: {profile.dinner_complexity}
"""


def build_prompt(
    days: Sequence[DayPlan],
    core_ingredients: CoreIngredients,
    profile: UserProfile,
    *,
    week_start: date | None = None,
    reference: str = "",
) -> str:
    dates = week_dates(week_start)
    household = ""
    if has_household_members(profile.household_servings):
        household = (
            "\n## HOUSEHOLD SERVINGS NOTE\n"
            "Household sizes vary by day and meal and the app shows scaling "
            "separately. Write clear SINGLE-SERVING instructions only.\n"
        )
    return f"""You are creating a DETAILED prep schedule for an athlete's weekly meal plan. The user needs ACTIONABLE cooking instructions, not just meal descriptions.

## MEAL PLAN WITH FULL DETAILS
{meal_summary(days)}
{reference}
## CORE INGREDIENTS
{json.dumps(core_ingredients.as_prompt_dict(), indent=2)}

## WEEK DATES
{json.dumps(dates, indent=2)}
{household}{_prep_style_section(profile)}
## CRITICAL RULES
1. ONE TASK PER MEAL: each prep task covers one complete meal (or one group of identical meals), never a single ingredient
2. INCLUDE EVERY MEAL: every meal above needs a task, even simple assembly like yogurt with fruit
3. ACTIONABLE STEPS: detailed_steps give real quantities, heat levels, times and the cookware used at each step

## PREP TASK STRUCTURE
- "id": unique task id
- "description": e.g. "Monday Breakfast: Overnight Oats with Berries"
- "meal_ids": the meal IDs this task prepares, exactly as listed above (format meal_[day]_[type]_[index])
- "equipment_needed", "ingredients_to_prep", "tips": lists, may be empty
- "storage": storage instructions, or null when cooked fresh
- "prep_category": one of {", ".join(PREP_CATEGORIES)}, or null for day-of style
- "completed": false

## SESSIONS
- session_type is one of: {", ".join(SESSION_TYPES)}
- prep_for_date uses the WEEK DATES above (e.g. "{dates["monday"]}" for Monday)
- Order sessions chronologically with display_order starting at 1
- When the same meal appears on several days for the same meal type, consolidate it into ONE task listing every meal_id it covers
"""
