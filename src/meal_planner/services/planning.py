"""Pure helpers shared by the generation stages."""

import re
from collections.abc import Iterable, Sequence

from meal_planner.domain.plans import DayPlan, GeneratedMeal, Meal
from meal_planner.domain.profile import (
    BASIC_SEASONINGS,
    CHILD_PORTION_MULTIPLIER,
    DAYS_OF_WEEK,
    HOUSEHOLD_MEAL_BUCKETS,
    HouseholdServings,
    UserProfile,
)

_MEAL_ORDER: tuple[str, ...] = (
    "breakfast",
    "pre_workout",
    "lunch",
    "post_workout",
    "dinner",
)
_TOKEN = re.compile(r"[a-z0-9]+")
MACRO_TOLERANCE = 1.0


def meal_types_for_plan(
    selected_meal_types: Sequence[str], snack_count: int = 0
) -> list[str]:
    """Return the ordered meal slots for one day.

    Snacks go mid-morning (two or more), afternoon (one or more) and evening
    (three or more); a fourth snack goes right before dinner.
    """
    result: list[str] = []
    for meal in _MEAL_ORDER:
        if meal not in selected_meal_types:
            continue
        result.append(meal)
        if snack_count >= 2 and meal == "breakfast":
            result.append("snack")
        if snack_count >= 1 and meal == "lunch":
            result.append("snack")
        if snack_count >= 3 and meal == "dinner":
            result.append("snack")
    if snack_count >= 4:
        if "dinner" in result and result.index("dinner") > 0:
            result.insert(result.index("dinner"), "snack")
        else:
            result.append("snack")
    placed = result.count("snack")
    result.extend("snack" for _ in range(snack_count - placed))
    return result


def serving_multiplier(servings: HouseholdServings, day: str, bucket: str) -> float:
    """Portion multiplier for one meal: the athlete plus household members."""
    serving = servings.get(day, {}).get(bucket)
    if serving is None:
        return 1.0
    return 1 + serving.adults + serving.children * CHILD_PORTION_MULTIPLIER


def has_household_members(servings: HouseholdServings) -> bool:
    return any(
        serving.adults > 0 or serving.children > 0
        for day in DAYS_OF_WEEK
        for serving in servings.get(day, {}).values()
    )


def average_serving_multiplier(servings: HouseholdServings) -> float:
    """Mean multiplier across every day and household meal bucket."""
    total = sum(
        serving_multiplier(servings, day, bucket)
        for day in DAYS_OF_WEEK
        for bucket in HOUSEHOLD_MEAL_BUCKETS
    )
    return total / (len(DAYS_OF_WEEK) * len(HOUSEHOLD_MEAL_BUCKETS))


def household_description(servings: HouseholdServings) -> str:
    adults = 1
    children = 0
    for day in DAYS_OF_WEEK:
        for serving in servings.get(day, {}).values():
            adults = max(adults, 1 + serving.adults)
            children = max(children, serving.children)
    if children > 0:
        return f"{adults} adults and {children} children"
    return "just the athlete" if adults == 1 else f"{adults} adults"


def household_context_section(servings: HouseholdServings) -> str:
    """Prompt section describing who else eats each meal, or empty."""
    if not has_household_members(servings):
        return ""
    lines = []
    for day in DAYS_OF_WEEK:
        summaries = []
        for bucket in HOUSEHOLD_MEAL_BUCKETS:
            serving = servings.get(day, {}).get(bucket)
            if serving is None or (serving.adults == 0 and serving.children == 0):
                continue
            parts = []
            if serving.adults > 0:
                plural = "s" if serving.adults > 1 else ""
                parts.append(f"{serving.adults} additional adult{plural}")
            if serving.children > 0:
                plural = "ren" if serving.children > 1 else ""
                parts.append(f"{serving.children} child{plural}")
            multiplier = serving_multiplier(servings, day, bucket)
            summaries.append(
                f"{bucket}: {' + '.join(parts)} ({multiplier:.1f}x portions)"
            )
        if summaries:
            lines.append(f"- {day.capitalize()}: {', '.join(summaries)}")
    return (
        "\n## HOUSEHOLD SERVINGS (IMPORTANT)\n"
        "The athlete is also cooking for their household. Grocery quantities "
        "and prep batches cover the FULL household, not just the athlete.\n\n"
        "**Household schedule:**\n"
        + "\n".join(lines)
        + "\n\n**Key guidelines:**\n"
        "- The athlete's personal macro targets still drive meal COMPOSITION\n"
        f"- Children count as approximately {CHILD_PORTION_MULTIPLIER}x an adult "
        "portion\n"
        "- Choose meals that scale well and are broadly appealing to children\n"
    )


def _slot_rank(slots: Sequence[str], meal: Meal) -> int:
    positions = [index for index, slot in enumerate(slots) if slot == meal.type]
    if not positions:
        return len(slots)
    number = meal.snack_number or 1
    return positions[min(number - 1, len(positions) - 1)]


def organize_meals_into_days(
    meals: Iterable[GeneratedMeal], slots: Sequence[str]
) -> list[DayPlan]:
    """Group day-tagged meals into seven ordered day plans."""
    by_day: dict[str, list[Meal]] = {day: [] for day in DAYS_OF_WEEK}
    for meal in meals:
        day = meal.day.strip().lower()
        if day not in by_day:
            continue
        by_day[day].append(Meal.model_validate(meal.model_dump(exclude={"day"})))
    return [
        DayPlan.from_meals(
            day, sorted(by_day[day], key=lambda meal: _slot_rank(slots, meal))
        )
        for day in DAYS_OF_WEEK
    ]


def expand_consistent_meals(
    meals: list[GeneratedMeal], profile: UserProfile
) -> list[GeneratedMeal]:
    """Copy meals of consistent types onto every day that lacks them."""
    expanded = list(meals)
    consistent = {
        meal.type
        for meal in meals
        if profile.consistency_for(meal.type) == "consistent"
    }
    for meal_type in consistent:
        templates: dict[int | None, GeneratedMeal] = {}
        present: set[tuple[str, int | None]] = set()
        for meal in meals:
            if meal.type != meal_type:
                continue
            present.add((meal.day.lower(), meal.snack_number))
            templates.setdefault(meal.snack_number, meal)
        for snack_number, template in templates.items():
            for day in DAYS_OF_WEEK:
                if (day, snack_number) in present:
                    continue
                expanded.append(template.model_copy(update={"day": day}, deep=True))
    return expanded


def replicate_day_across_week(day_plan: DayPlan) -> list[DayPlan]:
    """Repeat one day's meals on every day of the week."""
    return [
        DayPlan.from_meals(
            day, [meal.model_copy(deep=True) for meal in day_plan.meals]
        )
        for day in DAYS_OF_WEEK
    ]


def collect_usage(days: Iterable[DayPlan]) -> dict[str, list[str]]:
    """Map each ingredient name to the amounts it is used in across the week."""
    usage: dict[str, list[str]] = {}
    for day in days:
        for meal in day.meals:
            for ingredient in meal.ingredients:
                key = ingredient.name.strip().lower()
                amount = f"{ingredient.amount} {ingredient.unit}"
                usage.setdefault(key, []).append(amount)
    return usage


def _tokens(name: str) -> frozenset[str]:
    tokens = set()
    for token in _TOKEN.findall(name.lower()):
        if len(token) > 3 and token.endswith("ies"):
            token = token[:-3] + "y"
        elif len(token) > 3 and token.endswith(("oes", "ches", "shes", "xes")):
            token = token[:-2]
        elif len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
            token = token[:-1]
        tokens.add(token)
    return frozenset(tokens)


_SEASONING_TOKENS = frozenset(_tokens(name) for name in BASIC_SEASONINGS)


def matches_roster(name: str, allowed: Iterable[str]) -> bool:
    """Whether an ingredient name refers to one of the allowed roster items.

    A name matches when it contains every word of a roster item, ignoring
    case, punctuation and simple plurals. "Grilled chicken breast" matches
    "Chicken breast"; "Potato" does not match "Sweet potato".
    """
    candidate = _tokens(name)
    if not candidate:
        return False
    for allowed_name in allowed:
        reference = _tokens(allowed_name)
        if reference and reference <= candidate:
            return True
    return False


def is_basic_seasoning(name: str) -> bool:
    """Whether ``name`` is exactly one of the always-allowed seasonings."""
    return _tokens(name) in _SEASONING_TOKENS


def find_off_roster_ingredients(
    meals: Iterable[Meal], roster: Sequence[str]
) -> list[tuple[str, str]]:
    """Return (meal name, ingredient name) pairs outside roster and seasonings."""
    return [
        (meal.name, ingredient.name)
        for meal in meals
        for ingredient in meal.ingredients
        if not is_basic_seasoning(ingredient.name)
        and not matches_roster(ingredient.name, roster)
    ]


def meal_macro_mismatches(
    meals: Iterable[Meal], tolerance: float = MACRO_TOLERANCE
) -> list[str]:
    """Describe meals whose totals differ from their ingredient sums."""
    problems = []
    for meal in meals:
        if not meal.ingredients:
            problems.append(f"{meal.name}: no ingredients listed")
            continue
        summed = {"calories": 0.0, "protein": 0.0, "carbs": 0.0, "fat": 0.0}
        for ingredient in meal.ingredients:
            for macro in summed:
                summed[macro] += getattr(ingredient, macro)
        for macro, total in summed.items():
            reported = getattr(meal.macros, macro)
            if abs(reported - total) > tolerance:
                problems.append(
                    f"{meal.name}: {macro} is {reported:g} but ingredients sum "
                    f"to {total:g}"
                )
    return problems
