"""Shared test fixtures."""

import json
import threading
from datetime import UTC, datetime
from dataclasses import dataclass, field, replace
from uuid import uuid4

import pytest

from meal_planner.config import Settings
from meal_planner.containers import AppContainer
from meal_planner.domain.errors import IngredientConflictError
from meal_planner.domain.generation import (
    GenerationJob,
    JobStatus,
    LlmCallRecord,
    OracleReply,
)
from meal_planner.domain.nutrition import (
    IngredientRecord,
    NutritionCacheEntry,
    normalize_food_name,
)
from meal_planner.domain.plans import GeneratedPlan, PrepSchedule, StoredMealPlan
from meal_planner.domain.profile import (
    DAYS_OF_WEEK,
    Preferences,
    UserProfile,
    ValidatedMealMacros,
)
from meal_planner.services.audit import LlmAuditService, LlmLogRepository
from meal_planner.services.background import BackgroundTasks
from meal_planner.services.generation import GenerationClient, OracleClient
from meal_planner.services.grocery import GroceryConsolidationStage
from meal_planner.services.ingredients import IngredientSelectionStage
from meal_planner.services.jobs import GenerationJobService, JobRepository
from meal_planner.services.meals import MealSynthesisStage
from meal_planner.services.modes import GenerationMode, select_mode
from meal_planner.services.nutrition_cache import (
    IngredientRepository,
    NutritionCacheService,
)
from meal_planner.services.orchestrator import (
    MealPlanOrchestrator,
    MealPlanRepository,
    ProfileRepository,
)
from meal_planner.services.planning import meal_types_for_plan
from meal_planner.services.plans import MealPlanService, PreferenceRepository
from meal_planner.services.prep import PrepSchedulingStage

ROSTER: dict[str, list[str]] = {
    "proteins": ["Chicken breast", "Salmon", "Eggs"],
    "vegetables": ["Broccoli", "Spinach", "Bell peppers", "Zucchini", "Asparagus"],
    "fruits": ["Banana", "Blueberries"],
    "grains": ["Brown rice", "Oats"],
    "fats": ["Olive oil", "Avocado", "Almonds"],
    "dairy": ["Greek yogurt", "Cottage cheese"],
}

# name -> (amount, unit, category, calories, protein, carbs, fat)
_PORTIONS: dict[str, tuple[str, str, str, float, float, float, float]] = {
    "Chicken breast": ("6", "oz", "protein", 280, 52, 0, 6),
    "Salmon": ("6", "oz", "protein", 350, 38, 0, 21),
    "Eggs": ("2", "whole", "protein", 140, 12, 1, 10),
    "Broccoli": ("1", "cup", "produce", 30, 2.5, 6, 0.3),
    "Brown rice": ("1", "cup", "grains", 215, 5, 45, 1.8),
    "Oats": ("0.5", "cup", "grains", 150, 5, 27, 3),
    "Olive oil": ("1", "tbsp", "pantry", 120, 0, 0, 14),
    "Greek yogurt": ("1", "cup", "dairy", 130, 23, 9, 0),
    "Blueberries": ("0.5", "cup", "produce", 42, 0.5, 11, 0.2),
}

_SLOT_RECIPES: dict[str, tuple[str, ...]] = {
    "breakfast": ("Greek yogurt", "Oats", "Blueberries"),
    "pre_workout": ("Oats", "Blueberries"),
    "lunch": ("Chicken breast", "Brown rice", "Broccoli"),
    "post_workout": ("Greek yogurt", "Blueberries"),
    "dinner": ("Salmon", "Brown rice", "Olive oil"),
    "snack": ("Eggs", "Blueberries"),
}


def ingredient_payload(name: str) -> dict[str, object]:
    amount, unit, category, calories, protein, carbs, fat = _PORTIONS[name]
    return {
        "name": name,
        "amount": amount,
        "unit": unit,
        "category": category,
        "calories": calories,
        "protein": protein,
        "carbs": carbs,
        "fat": fat,
    }


def meal_payload(
    day: str,
    meal_type: str,
    ingredient_names: tuple[str, ...] | None = None,
    *,
    snack_number: int | None = None,
    name: str | None = None,
) -> dict[str, object]:
    """A meal whose macros are exactly the sum of its ingredients."""
    ingredients = [
        ingredient_payload(item)
        for item in ingredient_names or _SLOT_RECIPES[meal_type]
    ]
    totals = {
        macro: round(sum(float(item[macro]) for item in ingredients), 2)
        for macro in ("calories", "protein", "carbs", "fat")
    }
    return {
        "day": day,
        "type": meal_type,
        "snack_number": snack_number,
        "name": name or f"{day.capitalize()} {meal_type.replace('_', ' ')}",
        "prep_time_minutes": 15,
        "ingredients": ingredients,
        "instructions": ["Prepare the ingredients", "Cook and serve"],
        "macros": totals,
    }


def week_meals_payload(
    profile: UserProfile, days: tuple[str, ...] = DAYS_OF_WEEK
) -> dict[str, object]:
    slots = meal_types_for_plan(profile.selected_meal_types, profile.snack_count)
    meals = []
    for day in days:
        snack_number = 0
        for slot in slots:
            number = None
            if slot == "snack":
                snack_number += 1
                number = snack_number
            meals.append(meal_payload(day, slot, snack_number=number))
    return {"title": "Lean Week", "meals": meals}


def grocery_payload() -> dict[str, object]:
    rows = [
        ("Chicken breast", "3", "lb", "protein"),
        ("Salmon", "2", "lb", "protein"),
        ("Broccoli", "2", "heads", "produce"),
        ("Brown rice", "1", "bag", "grains"),
    ]
    return {
        "grocery_list": [
            {"name": name, "amount": amount, "unit": unit, "category": category}
            for name, amount, unit, category in rows
        ]
    }


def prep_payload() -> dict[str, object]:
    return {
        "prep_sessions": [
            {
                "session_name": "Monday Morning Prep",
                "session_type": "day_of_morning",
                "session_day": "monday",
                "session_time_of_day": "morning",
                "prep_for_date": "2026-10-19",
                "estimated_minutes": 20,
                "display_order": 1,
                "prep_tasks": [
                    {
                        "id": "task_monday_breakfast",
                        "description": "Monday Breakfast: Yogurt Bowl",
                        "detailed_steps": ["Scoop yogurt", "Top with oats"],
                        "estimated_minutes": 5,
                        "meal_ids": ["meal_monday_breakfast_0"],
                        "equipment_needed": ["Bowl"],
                        "ingredients_to_prep": ["1 cup Greek yogurt"],
                        "tips": [],
                        "storage": None,
                        "prep_category": None,
                        "completed": False,
                    }
                ],
            }
        ],
        "daily_assembly": [],
    }


def reply(
    payload: dict[str, object] | None,
    *,
    stop_reason: str | None = "completed",
    output_tokens: int | None = 100,
) -> OracleReply:
    return OracleReply(
        payload=payload,
        stop_reason=stop_reason,
        output_tokens=output_tokens,
        raw_output=json.dumps(payload),
    )


def make_profile(**overrides: object) -> UserProfile:
    profile = UserProfile(
        id="user-1",
        target_calories=2000,
        target_protein=150,
        target_carbs=200,
        target_fat=70,
    )
    return replace(profile, **overrides)


@dataclass
class FakeOracle(OracleClient):
    """Scripted oracle keyed by schema name."""

    replies: dict[str, list[OracleReply | Exception]] = field(default_factory=dict)
    calls: list[dict[str, object]] = field(default_factory=list)

    def queue(self, schema_name: str, *items: OracleReply | Exception) -> None:
        self.replies.setdefault(schema_name, []).extend(items)

    async def invoke(  # noqa: PLR0913
        self,
        *,
        model: str,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
        max_tokens: int,
        reasoning_effort: str | None,
        store: bool,
    ) -> OracleReply:
        self.calls.append(
            {
                "model": model,
                "prompt": prompt,
                "schema": schema,
                "schema_name": schema_name,
                "max_tokens": max_tokens,
            }
        )
        pending = self.replies.get(schema_name)
        if not pending:
            raise AssertionError(f"No scripted reply for {schema_name}")
        item = pending.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def prompts(self, schema_name: str) -> list[str]:
        return [
            str(call["prompt"])
            for call in self.calls
            if call["schema_name"] == schema_name
        ]


@dataclass
class InMemoryLlmLogRepository(LlmLogRepository):
    """In-memory LLM log repository for tests."""

    entries: list[LlmCallRecord] = field(default_factory=list)

    def create_entry(self, record: LlmCallRecord) -> None:
        self.entries.append(record)

    def list_entries(
        self, limit: int, prompt_type: str | None = None
    ) -> list[dict[str, object]]:
        rows = [
            {
                "prompt_type": entry.prompt_type,
                "model": entry.model,
                "error": entry.error,
            }
            for entry in reversed(self.entries)
            if prompt_type is None or entry.prompt_type == prompt_type
        ]
        return rows[:limit]

    def of_type(self, prompt_type: str) -> list[LlmCallRecord]:
        return [entry for entry in self.entries if entry.prompt_type == prompt_type]


@dataclass
class InMemoryIngredientRepository(IngredientRepository):
    """Thread-safe in-memory ingredient repository with a unique name index."""

    ingredients: dict[str, IngredientRecord] = field(default_factory=dict)
    nutrition: dict[tuple[str, int, str], dict[str, object]] = field(
        default_factory=dict
    )
    fail_lookups: bool = False
    insert_attempts: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def fetch_nutrition(self, names_normalized: list[str]) -> list[NutritionCacheEntry]:
        if self.fail_lookups:
            raise RuntimeError("database unavailable")
        with self._lock:
            entries = []
            for (ingredient_id, size, unit), row in self.nutrition.items():
                record = self.ingredients[ingredient_id]
                if record.deleted_at is not None:
                    continue
                if record.name_normalized not in names_normalized:
                    continue
                entries.append(
                    NutritionCacheEntry(
                        ingredient_id=ingredient_id,
                        name=record.name,
                        name_normalized=record.name_normalized,
                        serving_size=size,
                        serving_unit=unit,
                        calories=float(row["calories"]),
                        protein=float(row["protein"]),
                        carbs=float(row["carbs"]),
                        fat=float(row["fat"]),
                        source=str(row["source"]),
                        confidence_score=float(row["confidence_score"]),
                    )
                )
            return entries

    def find_active_ingredient(self, name_normalized: str) -> IngredientRecord | None:
        with self._lock:
            for record in self.ingredients.values():
                if record.name_normalized == name_normalized and not record.deleted_at:
                    return record
        return None

    def find_deleted_ingredient(self, name_normalized: str) -> IngredientRecord | None:
        with self._lock:
            for record in self.ingredients.values():
                if record.name_normalized == name_normalized and record.deleted_at:
                    return record
        return None

    def insert_ingredient(
        self, name: str, name_normalized: str, category: str
    ) -> IngredientRecord:
        with self._lock:
            self.insert_attempts += 1
            for record in self.ingredients.values():
                if record.name_normalized == name_normalized and not record.deleted_at:
                    raise IngredientConflictError(name_normalized)
            record = IngredientRecord(
                id=str(uuid4()),
                name=name,
                name_normalized=name_normalized,
                category=category,
            )
            self.ingredients[record.id] = record
            return record

    def upsert_nutrition(  # noqa: PLR0913
        self,
        ingredient_id: str,
        serving_size: int,
        serving_unit: str,
        calories: int,
        protein: int,
        carbs: int,
        fat: int,
        source: str,
        confidence_score: float,
    ) -> None:
        with self._lock:
            self.nutrition.setdefault(
                (ingredient_id, serving_size, serving_unit),
                {
                    "calories": calories,
                    "protein": protein,
                    "carbs": carbs,
                    "fat": fat,
                    "source": source,
                    "confidence_score": confidence_score,
                },
            )

    def set_ingredient_deleted(self, ingredient_id: str, deleted: bool) -> bool:
        with self._lock:
            record = self.ingredients.get(ingredient_id)
            if record is None:
                return False
            self.ingredients[ingredient_id] = replace(
                record, deleted_at=datetime.now(tz=UTC) if deleted else None
            )
            return True

    def add(self, name: str, *, deleted: bool = False) -> IngredientRecord:
        record = self.insert_ingredient(name, normalize_food_name(name), "other")
        if deleted:
            self.set_ingredient_deleted(record.id, True)
        return self.ingredients[record.id]


@dataclass
class InMemoryProfileRepository(ProfileRepository):
    profiles: dict[str, UserProfile] = field(default_factory=dict)

    def get_profile(self, user_id: str) -> UserProfile | None:
        return self.profiles.get(user_id)


@dataclass
class InMemoryPreferenceRepository(PreferenceRepository):
    meal_preferences: Preferences = field(default_factory=Preferences)
    ingredient_preferences: Preferences = field(default_factory=Preferences)
    validated_meals: list[ValidatedMealMacros] = field(default_factory=list)

    def get_meal_preferences(self, user_id: str) -> Preferences:
        return self.meal_preferences

    def get_ingredient_preferences(self, user_id: str) -> Preferences:
        return self.ingredient_preferences

    def list_validated_meals(self, user_id: str) -> list[ValidatedMealMacros]:
        return list(self.validated_meals)


@dataclass
class InMemoryMealPlanRepository(MealPlanRepository):
    stored: dict[str, StoredMealPlan] = field(default_factory=dict)
    created: dict[str, GeneratedPlan] = field(default_factory=dict)
    theme_names: dict[str, str | None] = field(default_factory=dict)
    prep_updates: dict[str, PrepSchedule] = field(default_factory=dict)
    recent_names: list[str] = field(default_factory=list)

    def get_owned_plan(self, plan_id: str, user_id: str) -> StoredMealPlan | None:
        plan = self.stored.get(plan_id)
        if plan is None or plan.user_id != user_id:
            return None
        return plan

    def create_plan(
        self, user_id: str, plan: GeneratedPlan, theme_name: str | None = None
    ) -> str:
        plan_id = str(uuid4())
        self.created[plan_id] = plan
        self.theme_names[plan_id] = theme_name
        return plan_id

    def update_prep_schedule(self, plan_id: str, schedule: PrepSchedule) -> None:
        self.prep_updates[plan_id] = schedule

    def list_recent_meal_names(self, user_id: str, plan_limit: int) -> list[str]:
        return list(self.recent_names)


@dataclass
class InMemoryJobRepository(JobRepository):
    jobs: dict[str, GenerationJob] = field(default_factory=dict)
    history: list[tuple[str, JobStatus]] = field(default_factory=list)

    def create_job(self, user_id: str) -> GenerationJob:
        job = GenerationJob(id=str(uuid4()), user_id=user_id, status=JobStatus.PENDING)
        self.jobs[job.id] = job
        return job

    def update_job(  # noqa: PLR0913
        self,
        job_id: str,
        *,
        status: JobStatus,
        progress_message: str | None = None,
        meal_plan_id: str | None = None,
        error_message: str | None = None,
    ) -> None:
        job = self.jobs[job_id]
        self.jobs[job_id] = replace(
            job,
            status=status,
            progress_message=progress_message or job.progress_message,
            meal_plan_id=meal_plan_id or job.meal_plan_id,
            error_message=error_message or job.error_message,
        )
        self.history.append((job_id, status))

    def get_job(self, job_id: str) -> GenerationJob | None:
        return self.jobs.get(job_id)


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="eyJhbGciOiJIUzI1NiJ9.eyJyb2xlIjoic2VydmljZSJ9.sig",
        admin_token="admin-token",
        service_token="service-token",
        openai_api_key="openai-key",
    )


@pytest.fixture
def profile() -> UserProfile:
    return make_profile()


@pytest.fixture
def mode() -> GenerationMode:
    return select_mode("production", test_model="gpt-5-mini")


@pytest.fixture
def background() -> BackgroundTasks:
    return BackgroundTasks()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def llm_logs() -> InMemoryLlmLogRepository:
    return InMemoryLlmLogRepository()


@pytest.fixture
def ingredient_repository() -> InMemoryIngredientRepository:
    return InMemoryIngredientRepository()


@pytest.fixture
def audit_service(
    llm_logs: InMemoryLlmLogRepository, background: BackgroundTasks
) -> LlmAuditService:
    return LlmAuditService(repository=llm_logs, background=background)


@pytest.fixture
def nutrition_cache(
    ingredient_repository: InMemoryIngredientRepository, background: BackgroundTasks
) -> NutritionCacheService:
    return NutritionCacheService(
        repository=ingredient_repository, background=background
    )


@pytest.fixture
def generation_client(
    oracle: FakeOracle, audit_service: LlmAuditService, mode: GenerationMode
) -> GenerationClient:
    return GenerationClient(
        oracle=oracle,
        audit=audit_service,
        mode=mode,
        model="gpt-5.2",
        max_retries=2,
        backoff_seconds=0.0,
        sleep=_no_sleep,
    )


@pytest.fixture
def plan_repository() -> InMemoryMealPlanRepository:
    return InMemoryMealPlanRepository()


@pytest.fixture
def profile_repository(profile: UserProfile) -> InMemoryProfileRepository:
    return InMemoryProfileRepository(profiles={profile.id: profile})


@pytest.fixture
def orchestrator(
    generation_client: GenerationClient,
    nutrition_cache: NutritionCacheService,
    audit_service: LlmAuditService,
    mode: GenerationMode,
    plan_repository: InMemoryMealPlanRepository,
    profile_repository: InMemoryProfileRepository,
) -> MealPlanOrchestrator:
    return MealPlanOrchestrator(
        ingredients=IngredientSelectionStage(generation_client, nutrition_cache),
        meals=MealSynthesisStage(generation_client, nutrition_cache),
        grocery=GroceryConsolidationStage(
            generation_client, audit_service, nutrition_cache
        ),
        prep=PrepSchedulingStage(generation_client, nutrition_cache),
        mode=mode,
        plans=plan_repository,
        profiles=profile_repository,
    )


@pytest.fixture
def meal_plan_service(
    orchestrator: MealPlanOrchestrator,
    profile_repository: InMemoryProfileRepository,
    plan_repository: InMemoryMealPlanRepository,
) -> MealPlanService:
    return MealPlanService(
        orchestrator=orchestrator,
        profiles=profile_repository,
        plans=plan_repository,
        preferences=InMemoryPreferenceRepository(),
    )


@pytest.fixture
def job_repository() -> InMemoryJobRepository:
    return InMemoryJobRepository()


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    mode: GenerationMode,
    background: BackgroundTasks,
    audit_service: LlmAuditService,
    nutrition_cache: NutritionCacheService,
    orchestrator: MealPlanOrchestrator,
    meal_plan_service: MealPlanService,
    job_repository: InMemoryJobRepository,
) -> AppContainer:
    job_service = GenerationJobService(
        plans=meal_plan_service, repository=job_repository, background=background
    )

    async def close_resources() -> None:
        await background.drain()

    return AppContainer(
        settings=settings,
        mode=mode,
        background=background,
        audit_service=audit_service,
        nutrition_cache=nutrition_cache,
        orchestrator=orchestrator,
        meal_plan_service=meal_plan_service,
        job_service=job_service,
        close_resources=close_resources,
    )
