"""User profile and generation input models."""

from dataclasses import dataclass, field
from typing import Literal

DAYS_OF_WEEK: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

SELECTABLE_MEAL_TYPES: tuple[str, ...] = (
    "breakfast",
    "pre_workout",
    "lunch",
    "post_workout",
    "dinner",
)

HOUSEHOLD_MEAL_BUCKETS: tuple[str, ...] = ("breakfast", "lunch", "dinner", "snacks")

CHILD_PORTION_MULTIPLIER = 0.6

DIETARY_LABELS: dict[str, str] = {
    "no_restrictions": "No Restrictions",
    "paleo": "Paleo",
    "vegetarian": "Vegetarian",
    "gluten_free": "Gluten-Free",
    "dairy_free": "Dairy-Free",
}

MEAL_COMPLEXITY_LABELS: dict[str, tuple[str, str]] = {
    "quick_assembly": ("Quick Assembly", "2-10 min"),
    "minimal_prep": ("Minimal Prep", "10-20 min"),
    "full_recipe": ("Full Recipe", "20-45 min"),
}

BASIC_SEASONINGS: tuple[str, ...] = (
    "salt",
    "pepper",
    "black pepper",
    "garlic",
    "garlic powder",
    "onion",
    "onion powder",
    "herbs",
    "spices",
    "paprika",
    "cumin",
    "chili powder",
    "oregano",
    "basil",
    "thyme",
    "rosemary",
    "cinnamon",
    "ginger",
    "parsley",
    "cilantro",
    "lemon juice",
    "lime juice",
    "vinegar",
    "soy sauce",
    "water",
    "cooking spray",
)

MealConsistency = Literal["consistent", "varied"]
MealComplexity = Literal["quick_assembly", "minimal_prep", "full_recipe"]
PrepStyle = Literal["day_of", "traditional_batch"]


@dataclass(frozen=True)
class IngredientVarietyPrefs:
    """Requested number of ingredients per roster bucket."""

    proteins: int = 3
    vegetables: int = 5
    fruits: int = 2
    grains: int = 2
    fats: int = 3
    dairy: int = 2

    def as_dict(self) -> dict[str, int]:
        return {
            "proteins": self.proteins,
            "vegetables": self.vegetables,
            "fruits": self.fruits,
            "grains": self.grains,
            "fats": self.fats,
            "dairy": self.dairy,
        }


@dataclass(frozen=True)
class HouseholdServing:
    """Additional people eating one meal bucket on one day."""

    adults: int = 0
    children: int = 0


HouseholdServings = dict[str, dict[str, HouseholdServing]]


@dataclass(frozen=True)
class UserProfile:
    """Immutable input describing what a user wants from a meal plan."""

    id: str
    target_calories: int
    target_protein: int
    target_carbs: int
    target_fat: int
    dietary_prefs: tuple[str, ...] = ("no_restrictions",)
    selected_meal_types: tuple[str, ...] = ("breakfast", "lunch", "dinner")
    snack_count: int = 0
    prep_time: int = 30
    meal_consistency: dict[str, MealConsistency] = field(default_factory=dict)
    breakfast_complexity: MealComplexity = "minimal_prep"
    lunch_complexity: MealComplexity = "minimal_prep"
    dinner_complexity: MealComplexity = "full_recipe"
    ingredient_variety: IngredientVarietyPrefs = field(
        default_factory=IngredientVarietyPrefs
    )
    household_servings: HouseholdServings = field(default_factory=dict)
    prep_style: PrepStyle = "day_of"

    def consistency_for(self, meal_type: str) -> MealConsistency:
        return self.meal_consistency.get(meal_type, "varied")

    @property
    def meals_per_day(self) -> int:
        return len(self.selected_meal_types) + self.snack_count


@dataclass(frozen=True)
class ThemeIngredientGuidance:
    """Suggested ingredient pools for a weekly theme."""

    flavor_profile: str
    proteins: tuple[str, ...] = ()
    vegetables: tuple[str, ...] = ()
    fruits: tuple[str, ...] = ()
    grains: tuple[str, ...] = ()
    fats: tuple[str, ...] = ()
    seasonings: tuple[str, ...] = ()


@dataclass(frozen=True)
class MealTheme:
    """A weekly cuisine or style theme."""

    display_name: str
    description: str
    ingredient_guidance: ThemeIngredientGuidance
    cooking_style_guidance: str = ""
    meal_name_style: str | None = None
    emoji: str | None = None


@dataclass(frozen=True)
class ProteinFocus:
    """Request that one protein dominates one meal type for the week."""

    protein: str
    meal_type: str
    count: Literal["all", "5-7", "3-4"] = "all"
    vary_cuisines: bool = False


@dataclass(frozen=True)
class Preferences:
    """Liked and disliked names, for meals or ingredients."""

    liked: tuple[str, ...] = ()
    disliked: tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not self.liked and not self.disliked


@dataclass(frozen=True)
class ValidatedMealMacros:
    """Macros the user confirmed for a meal they have eaten."""

    meal_name: str
    calories: int
    protein: int
    carbs: int
    fat: int


@dataclass(frozen=True)
class GenerationOptions:
    """Optional inputs to a generation run."""

    recent_meal_names: tuple[str, ...] = ()
    meal_preferences: Preferences | None = None
    ingredient_preferences: Preferences | None = None
    validated_meals: tuple[ValidatedMealMacros, ...] = ()
    theme: MealTheme | None = None
    protein_focus: ProteinFocus | None = None
    job_id: str | None = None
