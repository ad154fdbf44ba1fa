"""Stage two: assemble the week's meals from the roster."""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from meal_planner.domain.errors import MalformedResponseError
from meal_planner.domain.nutrition import NutritionCacheItem, normalize_food_name
from meal_planner.domain.plans import (
    GROCERY_CATEGORIES,
    CoreIngredients,
    GeneratedMealPlan,
)
from meal_planner.domain.profile import (
    BASIC_SEASONINGS,
    DAYS_OF_WEEK,
    DIETARY_LABELS,
    MEAL_COMPLEXITY_LABELS,
    MealTheme,
    Preferences,
    ProteinFocus,
    UserProfile,
    ValidatedMealMacros,
)
from meal_planner.services.generation import GenerationClient
from meal_planner.services.nutrition_cache import (
    NutritionCacheService,
    build_reference_section,
)
from meal_planner.services.planning import (
    expand_consistent_meals,
    find_off_roster_ingredients,
    household_context_section,
    meal_macro_mismatches,
    meal_types_for_plan,
)

_logger = logging.getLogger(__name__)

PROMPT_TYPE = "two_stage_meals_from_ingredients"

_COMPLEXITY_GUIDANCE = {
    "quick_assembly": "Simple ingredient lists, minimal to no cooking.",
    "minimal_prep": "Brief cooking steps, single cooking method.",
    "full_recipe": "Multi-step recipes with detailed instructions are OK.",
}

_MACROS_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "calories": {"type": "number"},
        "protein": {"type": "number"},
        "carbs": {"type": "number"},
        "fat": {"type": "number"},
    },
    "required": ["calories", "protein", "carbs", "fat"],
    "additionalProperties": False,
}

_INGREDIENT_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "amount": {"type": "string"},
        "unit": {"type": "string"},
        "category": {
            "type": "string",
            "enum": list(GROCERY_CATEGORIES),
        },
        "calories": {"type": "number"},
        "protein": {"type": "number"},
        "carbs": {"type": "number"},
        "fat": {"type": "number"},
    },
    "required": [
        "name",
        "amount",
        "unit",
        "category",
        "calories",
        "protein",
        "carbs",
        "fat",
    ],
    "additionalProperties": False,
}


def meals_schema(meal_types: Sequence[str], days: Sequence[str]) -> dict[str, object]:
    """JSON schema for the synthesis reply."""
    return {
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "meals": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "day": {"type": "string", "enum": list(days)},
                        "type": {"type": "string", "enum": sorted(set(meal_types))},
                        "snack_number": {"type": ["integer", "null"]},
                        "name": {"type": "string"},
                        "prep_time_minutes": {"type": "integer"},
                        "ingredients": {"type": "array", "items": _INGREDIENT_SCHEMA},
                        "instructions": {"type": "array", "items": {"type": "string"}},
                        "macros": _MACROS_SCHEMA,
                    },
                    "required": [
                        "day",
                        "type",
                        "snack_number",
                        "name",
                        "prep_time_minutes",
                        "ingredients",
                        "instructions",
                        "macros",
                    ],
                    "additionalProperties": False,
                },
            },
        },
        "required": ["title", "meals"],
        "additionalProperties": False,
    }


@dataclass
class MealSynthesisStage:
    """Asks the oracle for meals built only from roster ingredients."""

    client: GenerationClient
    nutrition_cache: NutritionCacheService
    max_tokens: int = 32000

    async def synthesize(  # noqa: PLR0913
        self,
        profile: UserProfile,
        core_ingredients: CoreIngredients,
        user_id: str,
        *,
        meal_preferences: Preferences | None = None,
        validated_meals: Sequence[ValidatedMealMacros] = (),
        theme: MealTheme | None = None,
        protein_focus: ProteinFocus | None = None,
        single_day: bool = False,
        job_id: str | None = None,
    ) -> GeneratedMealPlan:
        """Return the titled meal list.

        Consistent meal types come back once per day of the week. With
        ``single_day`` only Monday is requested and returned.
        """
        slots = meal_types_for_plan(profile.selected_meal_types, profile.snack_count)
        days = DAYS_OF_WEEK[:1] if single_day else DAYS_OF_WEEK
        roster = core_ingredients.names()
        reference = build_reference_section(self.nutrition_cache.fetch_many(roster))
        prompt = build_prompt(
            profile,
            core_ingredients,
            slots,
            single_day=single_day,
            meal_preferences=meal_preferences,
            validated_meals=validated_meals,
            theme=theme,
            protein_focus=protein_focus,
            nutrition_reference=reference,
        )

        def validate(plan: GeneratedMealPlan) -> None:
            off_roster = find_off_roster_ingredients(plan.meals, roster)
            if off_roster:
                listed = ", ".join(f"{name} in {meal}" for meal, name in off_roster[:5])
                raise MalformedResponseError(
                    f"Ingredients outside the roster: {listed}"
                )
            mismatches = meal_macro_mismatches(plan.meals)
            if mismatches:
                raise MalformedResponseError(
                    "Meal totals differ from ingredient sums: "
                    + "; ".join(mismatches[:5])
                )

        plan = await self.client.call(
            prompt=prompt,
            schema=meals_schema(slots, days),
            schema_name="generate_meals",
            response_model=GeneratedMealPlan,
            prompt_type=PROMPT_TYPE,
            user_id=user_id,
            max_tokens=self.max_tokens,
            job_id=job_id,
            validate=validate,
        )
        if not single_day:
            plan = plan.model_copy(
                update={"meals": expand_consistent_meals(plan.meals, profile)}
            )
        _check_day_coverage(plan, days, len(slots))
        self.nutrition_cache.schedule_cache_many(observed_nutrition(plan))
        _logger.info("Synthesized %s meals for %s", len(plan.meals), user_id)
        return plan


def _check_day_coverage(
    plan: GeneratedMealPlan, days: Sequence[str], per_day: int
) -> None:
    counts = {day: 0 for day in days}
    for meal in plan.meals:
        if meal.day in counts:
            counts[meal.day] += 1
    short = [f"{day}={count}" for day, count in counts.items() if count != per_day]
    if short:
        raise MalformedResponseError(
            f"Expected {per_day} meals per day, got {', '.join(short)}"
        )


def observed_nutrition(plan: GeneratedMealPlan) -> list[NutritionCacheItem]:
    """Unique (name, serving size, unit) macro observations in the plan."""
    items: dict[tuple[str, float, str], NutritionCacheItem] = {}
    for meal in plan.meals:
        for ingredient in meal.ingredients:
            try:
                serving_size = float(ingredient.amount)
            except ValueError:
                serving_size = 1.0
            unit = ingredient.unit or "serving"
            key = (normalize_food_name(ingredient.name), serving_size, unit)
            if key in items:
                continue
            items[key] = NutritionCacheItem(
                name=ingredient.name,
                serving_size=serving_size,
                serving_unit=unit,
                calories=ingredient.calories,
                protein=ingredient.protein,
                carbs=ingredient.carbs,
                fat=ingredient.fat,
                category=ingredient.category,
            )
    return list(items.values())


def build_prompt(  # noqa: PLR0913
    profile: UserProfile,
    core_ingredients: CoreIngredients,
    slots: Sequence[str],
    *,
    single_day: bool = False,
    meal_preferences: Preferences | None = None,
    validated_meals: Sequence[ValidatedMealMacros] = (),
    theme: MealTheme | None = None,
    protein_focus: ProteinFocus | None = None,
    nutrition_reference: str = "",
) -> str:
    dietary = ", ".join(
        DIETARY_LABELS.get(pref, pref) for pref in profile.dietary_prefs
    ) or "No restrictions"
    per_slot = max(len(slots), 1)
    per_day = len(slots)
    if single_day:
        scope = "Monday only"
        total_line = f"**MUST generate exactly {per_day} meals for Monday only**"
        order_line = "All meals are for Monday, ordered by meal slot."
    else:
        scope = "all 7 days"
        total_line = (
            f"**MUST cover exactly {per_day} meals per day across all 7 days**"
        )
        order_line = "Order by day (monday first), then by meal slot."
    roster_json = json.dumps(core_ingredients.as_prompt_dict(), indent=2)

    return f"""You are generating a meal plan for an athlete covering {scope}.

**CRITICAL CONSTRAINT (NON-NEGOTIABLE)**: Use ONLY the ingredients listed under CORE INGREDIENTS. Do NOT add any new ingredient. This rule ranks ABOVE hitting calorie targets.
{_theme_style_section(theme)}{_protein_focus_section(protein_focus)}{_preferences_section(meal_preferences)}{_validated_meals_section(validated_meals)}{household_context_section(profile.household_servings)}
## CORE INGREDIENTS (USE ONLY THESE)
{roster_json}
{nutrition_reference}
## USER MACROS (daily targets)
- Daily Calories: {profile.target_calories} kcal
- Daily Protein: {profile.target_protein}g
- Daily Carbs: {profile.target_carbs}g
- Daily Fat: {profile.target_fat}g
- Dietary Preferences: {dietary}
- Max Prep Time Per Meal: {profile.prep_time} minutes
- Meal slots per day: {", ".join(slots)}

## TARGET MACROS PER MEAL (approximately)
- Calories: ~{round(profile.target_calories / per_slot)} kcal
- Protein: ~{round(profile.target_protein / per_slot)}g
- Carbs: ~{round(profile.target_carbs / per_slot)}g
- Fat: ~{round(profile.target_fat / per_slot)}g

## MEAL CONSISTENCY SETTINGS
{consistency_instructions(profile, slots, single_day=single_day)}
{_complexity_section(profile)}{_snack_section(slots, single_day=single_day)}
## ACCURACY PRIORITIES (highest first)
1. Every ingredient's macros MUST match the nutrition reference or standard USDA values for the stated amount. Never fabricate values.
2. Each meal's macros MUST equal the exact SUM of its ingredients' macros.
3. Daily totals should approach the targets. An honest day that falls short of target is better than fabricated numbers that appear to hit it.

## CRITICAL RULES
- Use ONLY the provided ingredients; basic seasonings are allowed: {", ".join(BASIC_SEASONINGS)}
- Create variety through cooking methods and flavor profiles, not new ingredients
- {total_line}

## RESPONSE FORMAT
Every ingredient includes its own calories, protein, carbs and fat for the stated amount. Write "amount" as a plain number where possible.
Give the plan a short descriptive title{f' that reflects the "{theme.display_name}" theme' if theme else ""}.
{order_line}
"""


def consistency_instructions(
    profile: UserProfile, slots: Sequence[str], *, single_day: bool = False
) -> str:
    """Tell the oracle how many distinct meals to create per meal type."""
    snacks_per_day = slots.count("snack")
    lines = []
    for meal_type in dict.fromkeys(slots):
        label = meal_type.replace("_", " ").capitalize()
        consistent = profile.consistency_for(meal_type) == "consistent"
        if single_day:
            count = snacks_per_day if meal_type == "snack" else 1
            lines.append(f"- {label}: Generate {count} for Monday")
        elif meal_type == "snack" and snacks_per_day > 1:
            if consistent:
                lines.append(
                    f"- Snack: Generate {snacks_per_day} different snacks on monday, "
                    "each eaten the same all 7 days"
                )
            else:
                total = snacks_per_day * 7
                lines.append(
                    f"- Snack: Generate {total} different snacks "
                    f"({snacks_per_day} per day x 7 days)"
                )
        elif consistent:
            lines.append(
                f"- {label}: Generate 1 meal on monday (it will be eaten all 7 days)"
            )
        else:
            lines.append(f"- {label}: Generate 7 different meals (one per day)")
    return "\n".join(lines)


def _complexity_section(profile: UserProfile) -> str:
    lines = []
    for meal_type, complexity in (
        ("Breakfast", profile.breakfast_complexity),
        ("Lunch", profile.lunch_complexity),
        ("Dinner", profile.dinner_complexity),
    ):
        title, time = MEAL_COMPLEXITY_LABELS[complexity]
        lines.append(
            f"- **{meal_type}**: {title} ({time}). {_COMPLEXITY_GUIDANCE[complexity]}"
        )
    return (
        "\n## MEAL COMPLEXITY PREFERENCES\n"
        + "\n".join(lines)
        + "\nMatch prep_time_minutes to the complexity: quick assembly 2-10 min, "
        "minimal prep 10-20 min, full recipe 20-45 min.\n"
    )


def _snack_section(slots: Sequence[str], *, single_day: bool) -> str:
    snacks_per_day = slots.count("snack")
    if snacks_per_day <= 1:
        return ""
    total = snacks_per_day if single_day else snacks_per_day * 7
    return f"""
## IMPORTANT: MULTIPLE SNACKS PER DAY
The user has {snacks_per_day} snack slots per day.
- Label each snack with "snack_number" 1 to {snacks_per_day} so they can be told apart
- Use null for "snack_number" on non-snack meals
- Total snacks needed: {total}
"""


def _preferences_section(preferences: Preferences | None) -> str:
    if preferences is None or preferences.is_empty():
        return ""
    parts = []
    if preferences.liked:
        parts.append(
            "**Meals the user LIKES** (create similar meals): "
            + ", ".join(preferences.liked)
        )
    if preferences.disliked:
        parts.append(
            "**Meals the user DISLIKES** (avoid similar meals): "
            f"{', '.join(preferences.disliked)}"
        )
    return "\n## User Preferences\n" + "\n".join(parts) + "\n"


def _validated_meals_section(validated_meals: Sequence[ValidatedMealMacros]) -> str:
    if not validated_meals:
        return ""
    lines = "\n".join(
        f'- "{meal.meal_name}": {meal.calories} kcal, {meal.protein}g protein, '
        f"{meal.carbs}g carbs, {meal.fat}g fat"
        for meal in validated_meals
    )
    return (
        "\n## User-Validated Meal Nutrition Data\n"
        "When generating these meals or similar ones, use these macro values:\n"
        f"{lines}\n"
    )


def _theme_style_section(theme: MealTheme | None) -> str:
    if theme is None:
        return ""
    naming = ""
    if theme.meal_name_style:
        naming = f"\n### Meal Naming\n{theme.meal_name_style}\n"
    return f"""
## THEME STYLING: {theme.display_name} {theme.emoji or ""}

### Cooking Style
{theme.cooking_style_guidance}
{naming}
- All meal names should clearly reflect the "{theme.display_name}" theme
- Cooking methods and flavor combinations should be cohesive with the theme
"""


def _protein_focus_section(focus: ProteinFocus | None) -> str:
    if focus is None:
        return ""
    variety = ""
    if focus.vary_cuisines:
        variety = "\n- Prepare it in a different cuisine style each time"
    return f"""
## PROTEIN FOCUS
- Use {focus.protein} as the primary protein for {focus.meal_type} ({focus.count} of the week's {focus.meal_type}s){variety}
"""
