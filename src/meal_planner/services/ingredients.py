"""Stage one: choose the weekly ingredient roster."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from pydantic import RootModel

from meal_planner.domain.errors import ContractViolationError
from meal_planner.domain.plans import (
    CORE_BUCKETS,
    CoreIngredientItem,
    CoreIngredients,
    normalize_core_ingredients,
)
from meal_planner.domain.profile import (
    DIETARY_LABELS,
    MealTheme,
    Preferences,
    ProteinFocus,
    UserProfile,
)
from meal_planner.services.generation import GenerationClient
from meal_planner.services.nutrition_cache import (
    NutritionCacheService,
    build_reference_section,
)

_logger = logging.getLogger(__name__)

PROMPT_TYPE = "two_stage_core_ingredients"

COMMON_INGREDIENTS: tuple[str, ...] = (
    "chicken breast",
    "ground beef",
    "salmon",
    "eggs",
    "greek yogurt",
    "broccoli",
    "spinach",
    "sweet potato",
    "bell peppers",
    "rice",
    "quinoa",
    "oats",
    "avocado",
    "olive oil",
    "almonds",
    "banana",
)

_RECENT_MEAL_LIMIT = 30

# Protein focus count -> (meals, pounds to buy).
_FOCUS_QUANTITIES: dict[str, tuple[str, str]] = {
    "all": ("7", "2-2.5"),
    "5-7": ("5-7", "1.5-2"),
    "3-4": ("3-4", "1"),
}


class RosterReply(RootModel[dict[str, list[str | CoreIngredientItem]]]):
    """Roster as returned by the oracle, before bucket normalization."""


def core_ingredients_schema(counts: dict[str, int]) -> dict[str, object]:
    """JSON schema requiring exactly ``counts[bucket]`` names per bucket."""
    return {
        "type": "object",
        "properties": {
            bucket: {
                "type": "array",
                "items": {"type": "string"},
                "minItems": counts[bucket],
                "maxItems": counts[bucket],
            }
            for bucket in CORE_BUCKETS
        },
        "required": list(CORE_BUCKETS),
        "additionalProperties": False,
    }


@dataclass
class IngredientSelectionStage:
    """Asks the oracle for a fixed-size roster that meets the weekly budget."""

    client: GenerationClient
    nutrition_cache: NutritionCacheService
    max_tokens: int = 16000

    async def select(  # noqa: PLR0913
        self,
        profile: UserProfile,
        user_id: str,
        *,
        recent_meal_names: Sequence[str] = (),
        meal_preferences: Preferences | None = None,
        ingredient_preferences: Preferences | None = None,
        theme: MealTheme | None = None,
        protein_focus: ProteinFocus | None = None,
        job_id: str | None = None,
    ) -> CoreIngredients:
        """Return a roster whose bucket sizes match the profile's request."""
        counts = profile.ingredient_variety.as_dict()
        reference = build_reference_section(
            self.nutrition_cache.fetch_many(COMMON_INGREDIENTS)
        )
        prompt = build_prompt(
            profile,
            counts,
            recent_meal_names=recent_meal_names,
            meal_preferences=meal_preferences,
            ingredient_preferences=ingredient_preferences,
            theme=theme,
            protein_focus=protein_focus,
            nutrition_reference=reference,
        )
        reply = await self.client.call(
            prompt=prompt,
            schema=core_ingredients_schema(counts),
            schema_name="select_core_ingredients",
            response_model=RosterReply,
            prompt_type=PROMPT_TYPE,
            user_id=user_id,
            max_tokens=self.max_tokens,
            job_id=job_id,
        )
        roster = normalize_core_ingredients(reply.model_dump())
        actual = roster.counts()
        wrong = {
            bucket: (actual[bucket], counts[bucket])
            for bucket in CORE_BUCKETS
            if actual[bucket] != counts[bucket]
        }
        if wrong:
            details = ", ".join(
                f"{bucket} has {got} (expected {want})"
                for bucket, (got, want) in wrong.items()
            )
            raise ContractViolationError(f"Roster size mismatch: {details}")
        _logger.info(
            "Selected %s core ingredients for %s", sum(actual.values()), user_id
        )
        return roster


def build_prompt(  # noqa: PLR0913
    profile: UserProfile,
    counts: dict[str, int],
    *,
    recent_meal_names: Sequence[str] = (),
    meal_preferences: Preferences | None = None,
    ingredient_preferences: Preferences | None = None,
    theme: MealTheme | None = None,
    protein_focus: ProteinFocus | None = None,
    nutrition_reference: str = "",
) -> str:
    dietary = ", ".join(
        DIETARY_LABELS.get(pref, pref) for pref in profile.dietary_prefs
    ) or "No restrictions"
    prep_complexity = "moderate"
    if profile.prep_time <= 15:
        prep_complexity = "minimal"
    elif profile.prep_time >= 45:
        prep_complexity = "extensive"
    weekly_calories = profile.target_calories * 7
    weekly_protein = profile.target_protein * 7

    return f"""You are a meal planning assistant for athletes. Select a focused set of core ingredients for one week of meals that MEETS THE USER'S CALORIE AND MACRO TARGETS.
{_theme_section(theme)}{_protein_focus_section(protein_focus)}{_exclusions_section(recent_meal_names)}{_meal_preferences_section(meal_preferences)}{_ingredient_preferences_section(ingredient_preferences)}
## CRITICAL: WEEKLY CALORIE TARGET
The user needs approximately {weekly_calories} calories for the week ({profile.target_calories} per day).
- Weekly Protein Target: {weekly_protein}g ({profile.target_protein}g/day)
- Weekly Carbs Target: {profile.target_carbs * 7}g ({profile.target_carbs}g/day)
- Weekly Fat Target: {profile.target_fat * 7}g ({profile.target_fat}g/day)

## USER CONTEXT
- Meal prep time available: {prep_complexity} ({profile.prep_time} minutes per meal max)
- Dietary preferences: {dietary}
- Meals per day: {profile.meals_per_day}

## INGREDIENT COUNTS REQUESTED BY USER
- Proteins: {counts["proteins"]} different options (eggs count as a protein)
- Vegetables: {counts["vegetables"]} different options
- Fruits: {counts["fruits"]} different options
- Grains/Starches: {counts["grains"]} different options (legumes count here)
- Healthy Fats: {counts["fats"]} different options
- Dairy: {counts["dairy"]} different options
{nutrition_reference}
## INSTRUCTIONS
Select ingredients that:
1. Together can provide approximately {weekly_calories} calories and {weekly_protein}g protein for the week
2. Are versatile and can be prepared multiple ways
3. Are commonly available at grocery stores
4. Work well for batch cooking
5. Match the user's dietary preferences

## CONSTRAINTS
- Select EXACTLY the number of items requested per category
- Prioritize ingredients that can be used in multiple meals
- Only recommend whole foods that are unprocessed or minimally processed
- Return ONLY the ingredient name for each item (e.g. "Chicken breast", "Broccoli"), with no quantities or macros
"""


def _exclusions_section(recent_meal_names: Sequence[str]) -> str:
    if not recent_meal_names:
        return ""
    recent = ", ".join(recent_meal_names[:_RECENT_MEAL_LIMIT])
    return f"""
## CRITICAL: Ingredient Variety (based on the user's last 3 meal plans)

### Recent Meals to Avoid Recreating
{recent}

Select ingredients that enable different cuisines, different protein preparations, different flavor bases and different vegetable families from these recent meals.
"""


def _meal_preferences_section(preferences: Preferences | None) -> str:
    if preferences is None or preferences.is_empty():
        return ""
    section = "\n## User Meal Preferences (Use to Guide Ingredient Selection)\n"
    if preferences.liked:
        section += (
            f"\n**Meals the user LIKES**: {', '.join(preferences.liked)}\n"
            "- Choose ingredients that enable similar flavor profiles and meal styles\n"
        )
    if preferences.disliked:
        section += (
            f"\n**Meals the user DISLIKES**: {', '.join(preferences.disliked)}\n"
            "- AVOID ingredients strongly associated with these meals\n"
        )
    return section


def _ingredient_preferences_section(preferences: Preferences | None) -> str:
    if preferences is None or preferences.is_empty():
        return ""
    section = "\n## User Ingredient Preferences (CRITICAL - MUST FOLLOW)\n"
    if preferences.liked:
        liked = "\n".join(f"- {name}" for name in preferences.liked)
        section += f"\n**Ingredients the user LIKES** (prioritize these):\n{liked}\n"
    if preferences.disliked:
        disliked = "\n".join(f"- {name}" for name in preferences.disliked)
        section += (
            "\n**Ingredients the user DISLIKES** (NEVER include these):\n"
            f"{disliked}\n\n"
            "STRICT RULE: Do NOT include any disliked ingredient in your selection.\n"
        )
    return section


def _theme_section(theme: MealTheme | None) -> str:
    if theme is None:
        return ""
    guidance = theme.ingredient_guidance
    return f"""
## THIS WEEK'S THEME: {theme.display_name} {theme.emoji or ""}

**CRITICAL: You MUST select ingredients that fit this theme.**

### Theme Description
{theme.description}

### Theme Flavor Profile
{guidance.flavor_profile}

### Suggested Ingredients by Category
Use these as your PRIMARY selection pool:

**Proteins**: {", ".join(guidance.proteins)}
**Vegetables**: {", ".join(guidance.vegetables)}
**Fruits**: {", ".join(guidance.fruits)}
**Grains**: {", ".join(guidance.grains)}
**Healthy Fats**: {", ".join(guidance.fats)}
**Key Seasonings**: {", ".join(guidance.seasonings)}

### Selection Rules
1. At least 70% of proteins should come from the theme's suggested list
2. At least 60% of vegetables should come from the theme's suggested list
3. Seasonings should heavily favor the theme's flavor profile
"""


def _protein_focus_section(focus: ProteinFocus | None) -> str:
    if focus is None:
        return ""
    meals, pounds = _FOCUS_QUANTITIES.get(focus.count, _FOCUS_QUANTITIES["3-4"])
    section = f"""
## PROTEIN FOCUS CONSTRAINT (CRITICAL)

The user wants to focus on **{focus.protein.upper()}** for their **{focus.meal_type}s** this week.

**Requirements:**
- You MUST include "{focus.protein}" as one of the selected proteins
- It should be the PRIMARY protein for {meals} {focus.meal_type} meals
- Select enough for {meals} {focus.meal_type} servings (approximately {pounds} lbs)
- Other proteins should complement the remaining meal types
"""
    if focus.vary_cuisines:
        section += f"""
**Cuisine Variety Required:**
Also select ingredients that let {focus.protein} be prepared Asian, Mexican/Latin, Mediterranean and American/Southern style so the {focus.meal_type}s feel distinct.
"""
    return section
