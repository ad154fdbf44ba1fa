"""Stage three: consolidate the week's ingredients into a shopping list."""

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from pydantic import BaseModel

from meal_planner.domain.generation import LlmCallRecord
from meal_planner.domain.plans import (
    GROCERY_CATEGORIES,
    CoreIngredients,
    DayPlan,
    GroceryItem,
)
from meal_planner.domain.profile import UserProfile
from meal_planner.services.audit import LlmAuditService
from meal_planner.services.generation import GenerationClient
from meal_planner.services.nutrition_cache import (
    NutritionCacheService,
    serving_reference,
)
from meal_planner.services.planning import (
    average_serving_multiplier,
    collect_usage,
    has_household_members,
    household_description,
)

_logger = logging.getLogger(__name__)

PROMPT_TYPE = "two_stage_grocery_list"
VALIDATION_PROMPT_TYPE = "grocery_list_validation"

# Weekly maximum and its unit per ingredient, matched as a substring of the
# item name.
MAX_QUANTITIES: dict[str, tuple[float, str]] = {
    "bell pepper": (12, "whole"),
    "avocado": (14, "whole"),
    "orange": (18, "whole"),
    "apple": (18, "whole"),
    "banana": (14, "whole"),
    "lemon": (10, "whole"),
    "lime": (10, "whole"),
    "onion": (8, "whole"),
    "zucchini": (10, "whole"),
    "cucumber": (8, "whole"),
    "tomato": (12, "whole"),
    "sweet potato": (10, "whole"),
    "chicken": (8, "lb"),
    "beef": (6, "lb"),
    "salmon": (5, "lb"),
    "fish": (5, "lb"),
    "turkey": (6, "lb"),
    "pork": (5, "lb"),
    "shrimp": (3, "lb"),
}

# How many of each unit make one cap unit.
_UNIT_FACTORS: dict[str, dict[str, float]] = {
    "whole": {"": 1, "whole": 1, "each": 1, "count": 1, "piece": 1, "pieces": 1},
    "lb": {
        "lb": 1,
        "lbs": 1,
        "pound": 1,
        "pounds": 1,
        "oz": 16,
        "ounce": 16,
        "ounces": 16,
    },
}

_WHOLE_LIMIT = 20
_WHOLE_CAP = 15
_POUND_LIMIT = 10
_POUND_CAP = 8

GROCERY_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "grocery_list": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "amount": {"type": "string"},
                    "unit": {"type": "string"},
                    "category": {"type": "string", "enum": list(GROCERY_CATEGORIES)},
                },
                "required": ["name", "amount", "unit", "category"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["grocery_list"],
    "additionalProperties": False,
}


class GroceryReply(BaseModel):
    grocery_list: list[GroceryItem]


@dataclass
class GroceryConsolidationStage:
    """Builds a household-scaled grocery list from the finished week."""

    client: GenerationClient
    audit: LlmAuditService
    nutrition_cache: NutritionCacheService
    max_tokens: int = 12000

    async def consolidate(
        self,
        core_ingredients: CoreIngredients,
        days: Sequence[DayPlan],
        profile: UserProfile,
        user_id: str,
        job_id: str | None = None,
    ) -> list[GroceryItem]:
        """Return the shopping list with absurd quantities capped."""
        servings = self.nutrition_cache.fetch_many(collect_usage(days))
        prompt = build_prompt(
            core_ingredients, days, profile, serving_reference(servings.values())
        )
        reply = await self.client.call(
            prompt=prompt,
            schema=GROCERY_SCHEMA,
            schema_name="generate_grocery_list",
            response_model=GroceryReply,
            prompt_type=PROMPT_TYPE,
            user_id=user_id,
            max_tokens=self.max_tokens,
            job_id=job_id,
        )
        items, warnings = cap_grocery_quantities(reply.grocery_list)
        if warnings:
            _logger.warning("Grocery list quantities capped: %s", "; ".join(warnings))
            self.audit.record(
                LlmCallRecord(
                    user_id=user_id,
                    prompt_type=VALIDATION_PROMPT_TYPE,
                    model="validation",
                    prompt="QUANTITY_CAPPED",
                    output="; ".join(warnings),
                    job_id=job_id,
                )
            )
        return items


def cap_grocery_quantities(
    items: Iterable[GroceryItem],
) -> tuple[list[GroceryItem], list[str]]:
    """Clamp quantities that cannot be right for one week.

    Returns the adjusted list and one warning per capped item. Amounts that
    are not plain numbers are left alone.
    """
    capped: list[GroceryItem] = []
    warnings: list[str] = []
    for item in items:
        try:
            amount = float(item.amount)
        except ValueError:
            capped.append(item)
            continue
        limit = _cap_for(item, amount)
        if limit is None:
            capped.append(item)
            continue
        warnings.append(f"Capped {item.name}: {amount:g} -> {limit:g} {item.unit}")
        capped.append(item.model_copy(update={"amount": f"{limit:g}"}))
    return capped, warnings


def _cap_for(item: GroceryItem, amount: float) -> float | None:
    """Return the capped amount in ``item.unit``, or None when within limits.

    Caps apply only when the item's unit converts to the cap's unit; an
    amount in an unrelated unit such as cups or bags is left alone.
    """
    name = item.name.lower()
    for ingredient, (maximum, cap_unit) in MAX_QUANTITIES.items():
        if ingredient in name:
            return _capped(amount, item.unit, maximum, cap_unit)
    if "egg" in name:
        return None
    whole = _capped(amount, item.unit, _WHOLE_CAP, "whole", _WHOLE_LIMIT)
    if whole is not None:
        return whole
    return _capped(amount, item.unit, _POUND_CAP, "lb", _POUND_LIMIT)


def _capped(
    amount: float,
    unit: str,
    maximum: float,
    cap_unit: str,
    limit: float | None = None,
) -> float | None:
    factor = _UNIT_FACTORS[cap_unit].get(unit.strip().lower())
    if factor is None:
        return None
    threshold = maximum if limit is None else limit
    if amount / factor <= threshold:
        return None
    return maximum * factor


def usage_summary(days: Iterable[DayPlan]) -> str:
    return "\n".join(
        f"{name}: used {len(amounts)} times ({', '.join(amounts)})"
        for name, amounts in collect_usage(days).items()
    )


def _scaling_section(profile: UserProfile) -> tuple[str, str]:
    servings = profile.household_servings
    if not has_household_members(servings):
        section = (
            "\n## SCALING NOTE\n"
            "This meal plan is for a SINGLE PERSON (the athlete only). No household "
            "scaling needed.\n"
            "Simply consolidate the ingredient usage into practical shopping "
            "quantities.\n"
        )
        reminder = (
            "The usage data shows athlete-only portions. Round up slightly for "
            "shopping convenience."
        )
        return section, reminder
    multiplier = average_serving_multiplier(servings)
    section = f"""
## HOUSEHOLD SCALING - READ CAREFULLY
The ingredient usage above shows ATHLETE-ONLY portions (1 person).
The household has {household_description(servings)}, which means an average of {multiplier:.1f}x portions per meal.

**YOUR TASK**: Multiply the total ingredient amounts by approximately {multiplier:.1f}x to account for the full household, THEN consolidate into practical shopping quantities.

Example: If the athlete uses "chicken breast: 8 oz x 7 meals = 56 oz (3.5 lb)" for the week,
the household ({multiplier:.1f}x) needs approximately {3.5 * multiplier:.1f} lb total.
"""
    reminder = (
        "The usage data above shows ATHLETE-ONLY portions. You MUST apply the "
        f"{multiplier:.1f}x household multiplier when calculating totals, then "
        "consolidate into practical shopping units."
    )
    return section, reminder


def build_prompt(
    core_ingredients: CoreIngredients,
    days: Sequence[DayPlan],
    profile: UserProfile,
    reference: str = "",
) -> str:
    scaling, reminder = _scaling_section(profile)
    roster_json = json.dumps(core_ingredients.as_prompt_dict(), indent=2)
    return f"""You are creating a practical grocery shopping list from a meal plan's core ingredients.

## CORE INGREDIENTS
{roster_json}

## INGREDIENT USAGE IN MEALS
{usage_summary(days)}
{reference}{scaling}
## CRITICAL: REASONABLENESS CHECKS
Before finalizing quantities, validate that they make sense for ONE WEEK of meals.

**Red flags that indicate you're calculating wrong:**
- More than 15 of any single fruit or vegetable (e.g., 40 bell peppers is WRONG)
- More than 20 of any citrus or small fruit
- More than 12 avocados (unless used in every single meal)
- More than 5 lbs of any single vegetable
- More than 8 lbs total protein for a household of 2-4 people

**Realistic weekly quantities for a household of 3-4 people:**
- Proteins: 4-6 lbs total
- Leafy greens: 1-2 bags spinach, 1 bunch kale
- Vegetables: 6-10 bell peppers MAX, 4-6 zucchini, 3-5 lbs broccoli
- Fruits: 6-8 bananas, 6-12 oranges, 6-10 avocados
- Grains: 2-3 lbs rice, 1-2 bags of oats

If your quantities exceed these by 2x or more, you're scaling incorrectly.

## INSTRUCTIONS
Convert these core ingredients into a practical grocery shopping list with realistic quantities.

**SCALING REMINDER:**
{reminder}

Use practical shopping quantities:
- Use "whole" or count for items bought individually (e.g., "6" bell peppers, NOT "40")
- Use "lb" or "oz" for meats and proteins
- Use "bag" for items typically sold in bags
- Use "bunch" for herbs and leafy greens
- Use "container" or "package" for yogurt, tofu, etc.
- Round up modestly to ensure enough food, but stay realistic

## RESPONSE FORMAT
Sort by category: {", ".join(GROCERY_CATEGORIES)}.
"""
