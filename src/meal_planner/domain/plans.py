"""Models for generated meal plans and stage outputs."""

from pydantic import BaseModel, Field, field_validator

from meal_planner.domain.errors import ContractViolationError

CORE_BUCKETS: tuple[str, ...] = (
    "proteins",
    "vegetables",
    "fruits",
    "grains",
    "fats",
    "dairy",
)

# Labels older prompts and stored plans still use.
_BUCKET_ALIASES: dict[str, str] = {
    "protein": "proteins",
    "vegetable": "vegetables",
    "veggies": "vegetables",
    "fruit": "fruits",
    "grain": "grains",
    "starches": "grains",
    "grains_starches": "grains",
    "fat": "fats",
    "healthy_fats": "fats",
    "pantry": "dairy",
}


class Macros(BaseModel):
    """Calories and macronutrients in grams."""

    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0

    def __add__(self, other: "Macros") -> "Macros":
        return Macros(
            calories=self.calories + other.calories,
            protein=self.protein + other.protein,
            carbs=self.carbs + other.carbs,
            fat=self.fat + other.fat,
        )


class MealIngredient(BaseModel):
    """One ingredient line with its own macro snapshot."""

    name: str
    amount: str
    unit: str
    category: str = "other"
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_as_text(cls, value: object) -> object:
        if isinstance(value, int | float):
            return f"{value:g}"
        return value

    def macros(self) -> Macros:
        return Macros(
            calories=self.calories,
            protein=self.protein,
            carbs=self.carbs,
            fat=self.fat,
        )


class Meal(BaseModel):
    """A meal placed in a day plan."""

    name: str
    type: str
    prep_time_minutes: int = 0
    ingredients: list[MealIngredient] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    macros: Macros = Field(default_factory=Macros)
    snack_number: int | None = None


class GeneratedMeal(Meal):
    """A meal as returned by synthesis, tagged with its day."""

    day: str


class GeneratedMealPlan(BaseModel):
    """Raw output of meal synthesis."""

    title: str
    meals: list[GeneratedMeal]


class DayPlan(BaseModel):
    """One day of meals and its totals."""

    day: str
    meals: list[Meal] = Field(default_factory=list)
    daily_totals: Macros = Field(default_factory=Macros)

    @classmethod
    def from_meals(cls, day: str, meals: list[Meal]) -> "DayPlan":
        totals = Macros()
        for meal in meals:
            totals = totals + meal.macros
        return cls(day=day, meals=meals, daily_totals=totals)


class CoreIngredientItem(BaseModel):
    """A roster entry, optionally flagged as substituted by the user."""

    name: str
    substituted: bool = False


class CoreIngredients(BaseModel):
    """Weekly ingredient roster grouped into six buckets."""

    proteins: list[CoreIngredientItem] = Field(default_factory=list)
    vegetables: list[CoreIngredientItem] = Field(default_factory=list)
    fruits: list[CoreIngredientItem] = Field(default_factory=list)
    grains: list[CoreIngredientItem] = Field(default_factory=list)
    fats: list[CoreIngredientItem] = Field(default_factory=list)
    dairy: list[CoreIngredientItem] = Field(default_factory=list)

    @field_validator(*CORE_BUCKETS, mode="before")
    @classmethod
    def _items_from_strings(cls, value: object) -> object:
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value

    def bucket(self, name: str) -> list[CoreIngredientItem]:
        return getattr(self, name)

    def names(self) -> list[str]:
        return [item.name for bucket in CORE_BUCKETS for item in self.bucket(bucket)]

    def counts(self) -> dict[str, int]:
        return {bucket: len(self.bucket(bucket)) for bucket in CORE_BUCKETS}

    def as_prompt_dict(self) -> dict[str, list[str]]:
        return {
            bucket: [item.name for item in self.bucket(bucket)]
            for bucket in CORE_BUCKETS
        }


GROCERY_CATEGORIES: tuple[str, ...] = (
    "produce",
    "protein",
    "dairy",
    "grains",
    "pantry",
    "frozen",
    "other",
)


class GroceryItem(BaseModel):
    """Shopping list line."""

    name: str
    amount: str
    unit: str
    category: str = "other"

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_as_text(cls, value: object) -> object:
        if isinstance(value, int | float):
            return f"{value:g}"
        return value


class MealRef(BaseModel):
    """Day and meal type a prep task feeds."""

    day: str
    meal_type: str


class PrepTask(BaseModel):
    """A single prep task, usually one complete meal."""

    id: str
    description: str
    detailed_steps: list[str] = Field(default_factory=list)
    estimated_minutes: int = 0
    meal_ids: list[str] = Field(default_factory=list)
    equipment_needed: list[str] = Field(default_factory=list)
    ingredients_to_prep: list[str] = Field(default_factory=list)
    tips: list[str] = Field(default_factory=list)
    storage: str | None = None
    prep_category: str | None = None
    completed: bool = False
    feeds: list[MealRef] = Field(default_factory=list)


class PrepSession(BaseModel):
    """A block of prep work done at one time."""

    session_name: str
    session_type: str
    session_day: str | None = None
    session_time_of_day: str | None = None
    prep_for_date: str | None = None
    estimated_minutes: int = 0
    display_order: int = 0
    prep_tasks: list[PrepTask] = Field(default_factory=list)


class AssemblyStep(BaseModel):
    """How to put one meal together on the day it is eaten."""

    time: str | None = None
    instructions: str


class PrepSchedule(BaseModel):
    """Prep sessions plus the per-day assembly guide."""

    prep_sessions: list[PrepSession] = Field(default_factory=list)
    daily_assembly: dict[str, dict[str, AssemblyStep]] = Field(default_factory=dict)


class GeneratedPlan(BaseModel):
    """Assembled result of one generation run."""

    title: str
    days: list[DayPlan]
    grocery_list: list[GroceryItem]
    core_ingredients: CoreIngredients
    prep_schedule: PrepSchedule


def normalize_core_ingredients(
    raw: object, *, lenient: bool = False
) -> CoreIngredients:
    """Map a raw roster payload onto the six canonical buckets.

    Legacy labels are folded into their canonical bucket. Unknown labels and
    missing buckets raise ContractViolationError unless ``lenient`` is set, in
    which case unknown labels are dropped and missing buckets stay empty.
    """
    if not isinstance(raw, dict):
        if lenient:
            return CoreIngredients()
        raise ContractViolationError(
            f"Core ingredients must be an object, got {type(raw).__name__}"
        )

    buckets: dict[str, list[object]] = {}
    for label, items in raw.items():
        key = str(label).strip().lower()
        canonical = key if key in CORE_BUCKETS else _BUCKET_ALIASES.get(key)
        if canonical is None:
            if lenient:
                continue
            raise ContractViolationError(f"Unrecognized ingredient category {label!r}")
        if not isinstance(items, list):
            if lenient:
                continue
            raise ContractViolationError(f"Category {label!r} must be a list")
        buckets.setdefault(canonical, []).extend(items)

    missing = [bucket for bucket in CORE_BUCKETS if bucket not in buckets]
    if missing and not lenient:
        raise ContractViolationError(
            f"Missing ingredient categories: {', '.join(missing)}"
        )
    try:
        return CoreIngredients.model_validate(buckets)
    except ValueError as exc:
        raise ContractViolationError(f"Invalid core ingredients: {exc}") from exc


class StoredMealPlan(BaseModel):
    """A persisted plan as read back for follow-up work.

    ``core_ingredients`` is the raw stored roster, which may predate the
    current bucket layout.
    """

    id: str
    user_id: str
    title: str = ""
    days: list[DayPlan] = Field(default_factory=list)
    core_ingredients: object = None
