"""Tests for meal synthesis."""

import asyncio

import pytest

from meal_planner.domain.errors import MalformedResponseError
from meal_planner.domain.plans import CoreIngredients, GeneratedMealPlan
from meal_planner.domain.profile import UserProfile, ValidatedMealMacros
from meal_planner.services.background import BackgroundTasks
from meal_planner.services.generation import GenerationClient
from meal_planner.services.meals import (
    MealSynthesisStage,
    consistency_instructions,
    observed_nutrition,
)
from meal_planner.services.nutrition_cache import NutritionCacheService
from meal_planner.services.planning import meal_types_for_plan

from tests.conftest import (
    ROSTER,
    FakeOracle,
    InMemoryIngredientRepository,
    make_profile,
    meal_payload,
    reply,
    week_meals_payload,
)

SCHEMA_NAME = "generate_meals"


@pytest.fixture
def stage(
    generation_client: GenerationClient, nutrition_cache: NutritionCacheService
) -> MealSynthesisStage:
    return MealSynthesisStage(generation_client, nutrition_cache)


@pytest.fixture
def roster() -> CoreIngredients:
    return CoreIngredients.model_validate(ROSTER)


def test_synthesize_returns_full_week(
    stage: MealSynthesisStage,
    oracle: FakeOracle,
    profile: UserProfile,
    roster: CoreIngredients,
) -> None:
    oracle.queue(SCHEMA_NAME, reply(week_meals_payload(profile)))

    plan = asyncio.run(stage.synthesize(profile, roster, "user-1"))

    assert plan.title == "Lean Week"
    assert len(plan.meals) == 21
    prompt = oracle.prompts(SCHEMA_NAME)[0]
    assert "CRITICAL CONSTRAINT (NON-NEGOTIABLE)" in prompt
    assert '"Chicken breast"' in prompt
    assert "covering all 7 days" in prompt
    assert "Calories: ~667 kcal" in prompt


def test_observed_nutrition_is_cached_in_background(
    stage: MealSynthesisStage,
    oracle: FakeOracle,
    profile: UserProfile,
    roster: CoreIngredients,
    ingredient_repository: InMemoryIngredientRepository,
    background: BackgroundTasks,
) -> None:
    oracle.queue(SCHEMA_NAME, reply(week_meals_payload(profile)))

    async def run() -> None:
        await stage.synthesize(profile, roster, "user-1")
        await background.drain()

    asyncio.run(run())

    names = {record.name for record in ingredient_repository.ingredients.values()}
    assert names == {
        "Greek yogurt",
        "Oats",
        "Blueberries",
        "Chicken breast",
        "Brown rice",
        "Broccoli",
        "Salmon",
        "Olive oil",
    }


def test_off_roster_ingredient_triggers_retry(
    stage: MealSynthesisStage,
    oracle: FakeOracle,
    profile: UserProfile,
    roster: CoreIngredients,
) -> None:
    bad = week_meals_payload(profile)
    meals = bad["meals"]
    assert isinstance(meals, list)
    meals[0]["ingredients"][0]["name"] = "Bacon"
    oracle.queue(SCHEMA_NAME, reply(bad), reply(week_meals_payload(profile)))

    plan = asyncio.run(stage.synthesize(profile, roster, "user-1"))

    assert len(oracle.calls) == 2
    assert all(
        ingredient.name != "Bacon"
        for meal in plan.meals
        for ingredient in meal.ingredients
    )


def test_seasonings_and_plural_names_stay_on_roster(
    stage: MealSynthesisStage,
    oracle: FakeOracle,
    profile: UserProfile,
    roster: CoreIngredients,
) -> None:
    payload = week_meals_payload(profile)
    meals = payload["meals"]
    assert isinstance(meals, list)
    meals[1]["ingredients"].append(
        {
            "name": "Garlic powder",
            "amount": "1",
            "unit": "tsp",
            "category": "pantry",
            "calories": 0,
            "protein": 0,
            "carbs": 0,
            "fat": 0,
        }
    )
    meals[2]["ingredients"][0]["name"] = "Salmon fillets"
    oracle.queue(SCHEMA_NAME, reply(payload))

    asyncio.run(stage.synthesize(profile, roster, "user-1"))

    assert len(oracle.calls) == 1


def test_macro_mismatch_triggers_retry(
    stage: MealSynthesisStage,
    oracle: FakeOracle,
    profile: UserProfile,
    roster: CoreIngredients,
) -> None:
    bad = week_meals_payload(profile)
    meals = bad["meals"]
    assert isinstance(meals, list)
    meals[0]["macros"]["protein"] += 20
    oracle.queue(SCHEMA_NAME, reply(bad), reply(week_meals_payload(profile)))

    asyncio.run(stage.synthesize(profile, roster, "user-1"))

    assert len(oracle.calls) == 2


def test_consistent_meal_types_are_expanded_to_every_day(
    stage: MealSynthesisStage, oracle: FakeOracle, roster: CoreIngredients
) -> None:
    profile = make_profile(meal_consistency={"breakfast": "consistent"})
    payload = week_meals_payload(profile)
    meals = payload["meals"]
    assert isinstance(meals, list)
    payload["meals"] = [
        meal
        for meal in meals
        if meal["type"] != "breakfast" or meal["day"] == "monday"
    ]
    oracle.queue(SCHEMA_NAME, reply(payload))

    plan = asyncio.run(stage.synthesize(profile, roster, "user-1"))

    breakfasts = [meal for meal in plan.meals if meal.type == "breakfast"]
    assert len(breakfasts) == 7
    assert {meal.name for meal in breakfasts} == {"Monday breakfast"}
    assert "Breakfast: Generate 1 meal on monday" in oracle.prompts(SCHEMA_NAME)[0]


def test_missing_meals_fail_without_retry(
    stage: MealSynthesisStage,
    oracle: FakeOracle,
    profile: UserProfile,
    roster: CoreIngredients,
) -> None:
    payload = week_meals_payload(profile)
    meals = payload["meals"]
    assert isinstance(meals, list)
    payload["meals"] = [meal for meal in meals if meal["day"] != "sunday"]
    oracle.queue(SCHEMA_NAME, reply(payload))

    with pytest.raises(MalformedResponseError, match="sunday=0"):
        asyncio.run(stage.synthesize(profile, roster, "user-1"))
    assert len(oracle.calls) == 1


def test_single_day_requests_monday_only(
    stage: MealSynthesisStage,
    oracle: FakeOracle,
    profile: UserProfile,
    roster: CoreIngredients,
) -> None:
    oracle.queue(SCHEMA_NAME, reply(week_meals_payload(profile, ("monday",))))

    plan = asyncio.run(stage.synthesize(profile, roster, "user-1", single_day=True))

    assert {meal.day for meal in plan.meals} == {"monday"}
    prompt = oracle.prompts(SCHEMA_NAME)[0]
    assert "Monday only" in prompt
    schema = oracle.calls[0]["schema"]
    assert isinstance(schema, dict)
    day_enum = schema["properties"]["meals"]["items"]["properties"]["day"]["enum"]
    assert day_enum == ["monday"]


def test_snack_slots_are_labelled(
    stage: MealSynthesisStage, oracle: FakeOracle, roster: CoreIngredients
) -> None:
    profile = make_profile(snack_count=2)
    oracle.queue(SCHEMA_NAME, reply(week_meals_payload(profile)))

    plan = asyncio.run(stage.synthesize(profile, roster, "user-1"))

    assert len(plan.meals) == 35
    prompt = oracle.prompts(SCHEMA_NAME)[0]
    assert "MULTIPLE SNACKS PER DAY" in prompt
    assert "Total snacks needed: 14" in prompt


def test_validated_meals_are_listed_in_prompt(
    stage: MealSynthesisStage,
    oracle: FakeOracle,
    profile: UserProfile,
    roster: CoreIngredients,
) -> None:
    oracle.queue(SCHEMA_NAME, reply(week_meals_payload(profile)))

    asyncio.run(
        stage.synthesize(
            profile,
            roster,
            "user-1",
            validated_meals=[ValidatedMealMacros("Power Bowl", 640, 45, 60, 20)],
        )
    )

    assert '"Power Bowl": 640 kcal, 45g protein' in oracle.prompts(SCHEMA_NAME)[0]


def test_consistency_instructions_for_varied_snacks() -> None:
    profile = make_profile(snack_count=2)
    slots = meal_types_for_plan(profile.selected_meal_types, profile.snack_count)

    text = consistency_instructions(profile, slots)

    assert "Breakfast: Generate 7 different meals" in text
    assert "Snack: Generate 14 different snacks (2 per day x 7 days)" in text


def test_observed_nutrition_deduplicates_by_name_and_serving() -> None:
    plan = GeneratedMealPlan.model_validate(
        {
            "title": "Test",
            "meals": [
                meal_payload("monday", "lunch"),
                meal_payload("tuesday", "lunch"),
                meal_payload("monday", "dinner"),
            ],
        }
    )

    items = observed_nutrition(plan)

    names = sorted(item.name for item in items)
    assert names == [
        "Broccoli",
        "Brown rice",
        "Chicken breast",
        "Olive oil",
        "Salmon",
    ]
