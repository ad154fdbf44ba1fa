"""Canned plan returned in fixture mode without contacting the oracle."""

from meal_planner.domain.plans import (
    CoreIngredients,
    DayPlan,
    GeneratedPlan,
    GroceryItem,
    Macros,
    Meal,
    MealIngredient,
    PrepSchedule,
)
from meal_planner.domain.profile import DAYS_OF_WEEK

FIXTURE_TITLE = "Fixture Meal Plan"

FIXTURE_CORE_INGREDIENTS = CoreIngredients(
    proteins=["Chicken breast", "Salmon", "Protein powder", "Greek yogurt"],
    vegetables=["Broccoli", "Asparagus", "Sweet potato"],
    fruits=["Mixed berries", "Banana", "Apple"],
    grains=["Brown rice", "Granola"],
    fats=["Olive oil", "Almond butter", "Peanut butter"],
    dairy=["Greek yogurt", "Almond milk"],
)

_GROCERY_ROWS: tuple[tuple[str, str, str, str], ...] = (
    ("Chicken breast", "2.5", "lb", "protein"),
    ("Salmon fillets", "2.5", "lb", "protein"),
    ("Protein powder", "1", "container", "protein"),
    ("Mixed berries", "2", "containers", "produce"),
    ("Bananas", "7", "whole", "produce"),
    ("Broccoli", "2", "heads", "produce"),
    ("Sweet potatoes", "7", "whole", "produce"),
    ("Asparagus", "2", "bunches", "produce"),
    ("Apples", "7", "whole", "produce"),
    ("Greek yogurt", "2", "containers", "dairy"),
    ("Almond milk", "1", "carton", "dairy"),
    ("Brown rice", "1", "bag", "grains"),
    ("Granola", "1", "bag", "grains"),
    ("Olive oil", "1", "bottle", "pantry"),
    ("Almond butter", "1", "jar", "pantry"),
    ("Peanut butter", "1", "jar", "pantry"),
    ("Honey", "1", "jar", "other"),
)


def _ingredient(name: str, amount: str, unit: str, category: str) -> MealIngredient:
    return MealIngredient(name=name, amount=amount, unit=unit, category=category)


def _fixture_day_meals() -> list[Meal]:
    return [
        Meal(
            name="Greek Yogurt Parfait",
            type="breakfast",
            prep_time_minutes=5,
            ingredients=[
                _ingredient("Greek yogurt", "1", "cup", "dairy"),
                _ingredient("Mixed berries", "0.5", "cup", "produce"),
                _ingredient("Granola", "0.25", "cup", "grains"),
                _ingredient("Honey", "1", "tbsp", "other"),
            ],
            instructions=[
                "Layer Greek yogurt in a bowl",
                "Top with mixed berries",
                "Sprinkle granola on top",
                "Drizzle with honey",
            ],
            macros=Macros(calories=350, protein=25, carbs=45, fat=8),
        ),
        Meal(
            name="Protein Smoothie",
            type="snack",
            snack_number=1,
            prep_time_minutes=3,
            ingredients=[
                _ingredient("Protein powder", "1", "scoop", "protein"),
                _ingredient("Banana", "1", "whole", "produce"),
                _ingredient("Almond milk", "1", "cup", "dairy"),
                _ingredient("Peanut butter", "1", "tbsp", "pantry"),
            ],
            instructions=[
                "Combine all ingredients in blender",
                "Blend until smooth",
                "Pour into glass and serve",
            ],
            macros=Macros(calories=280, protein=30, carbs=28, fat=9),
        ),
        Meal(
            name="Grilled Chicken Bowl",
            type="lunch",
            prep_time_minutes=20,
            ingredients=[
                _ingredient("Chicken breast", "6", "oz", "protein"),
                _ingredient("Brown rice", "1", "cup", "grains"),
                _ingredient("Broccoli", "1", "cup", "produce"),
                _ingredient("Olive oil", "1", "tbsp", "pantry"),
            ],
            instructions=[
                "Season and grill chicken breast until cooked through",
                "Cook brown rice according to package directions",
                "Steam broccoli until tender",
                "Assemble bowl with rice, chicken, and broccoli",
                "Drizzle with olive oil",
            ],
            macros=Macros(calories=550, protein=50, carbs=52, fat=14),
        ),
        Meal(
            name="Apple with Almond Butter",
            type="snack",
            snack_number=2,
            prep_time_minutes=2,
            ingredients=[
                _ingredient("Apple", "1", "whole", "produce"),
                _ingredient("Almond butter", "2", "tbsp", "pantry"),
            ],
            instructions=[
                "Slice apple into wedges",
                "Serve with almond butter for dipping",
            ],
            macros=Macros(calories=240, protein=6, carbs=28, fat=14),
        ),
        Meal(
            name="Salmon with Sweet Potato",
            type="dinner",
            prep_time_minutes=30,
            ingredients=[
                _ingredient("Salmon fillet", "6", "oz", "protein"),
                _ingredient("Sweet potato", "1", "whole", "produce"),
                _ingredient("Asparagus", "1", "cup", "produce"),
                _ingredient("Olive oil", "1", "tbsp", "pantry"),
            ],
            instructions=[
                "Bake sweet potato at 400F for 45 minutes",
                "Season salmon with salt, pepper, and garlic",
                "Bake salmon at 400F for 12-15 minutes",
                "Roast asparagus with olive oil at 400F for 10-12 minutes",
                "Serve together",
            ],
            macros=Macros(calories=580, protein=42, carbs=48, fat=22),
        ),
    ]


def fixture_plan() -> GeneratedPlan:
    """A complete seven-day plan with an empty prep schedule."""
    return GeneratedPlan(
        title=FIXTURE_TITLE,
        days=[DayPlan.from_meals(day, _fixture_day_meals()) for day in DAYS_OF_WEEK],
        grocery_list=[
            GroceryItem(name=name, amount=amount, unit=unit, category=category)
            for name, amount, unit, category in _GROCERY_ROWS
        ],
        core_ingredients=FIXTURE_CORE_INGREDIENTS.model_copy(deep=True),
        prep_schedule=PrepSchedule(),
    )
