"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from meal_planner.adapters.openai_generation_client import OpenAIGenerationClient
from meal_planner.adapters.supabase_ingredient_repository import (
    SupabaseIngredientRepository,
)
from meal_planner.adapters.supabase_job_repository import SupabaseJobRepository
from meal_planner.adapters.supabase_llm_log_repository import SupabaseLlmLogRepository
from meal_planner.adapters.supabase_meal_plan_repository import (
    SupabaseMealPlanRepository,
)
from meal_planner.adapters.supabase_profile_repository import (
    SupabasePreferenceRepository,
    SupabaseProfileRepository,
)
from meal_planner.config import Settings, parse_test_mode
from meal_planner.services.audit import LlmAuditService
from meal_planner.services.background import BackgroundTasks
from meal_planner.services.cache import NutritionMemo
from meal_planner.services.generation import GenerationClient
from meal_planner.services.grocery import GroceryConsolidationStage
from meal_planner.services.ingredients import IngredientSelectionStage
from meal_planner.services.jobs import GenerationJobService
from meal_planner.services.meals import MealSynthesisStage
from meal_planner.services.modes import GenerationMode, select_mode
from meal_planner.services.nutrition_cache import NutritionCacheService
from meal_planner.services.orchestrator import MealPlanOrchestrator
from meal_planner.services.plans import MealPlanService
from meal_planner.services.prep import PrepSchedulingStage


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    mode: GenerationMode
    background: BackgroundTasks
    audit_service: LlmAuditService
    nutrition_cache: NutritionCacheService
    orchestrator: MealPlanOrchestrator
    meal_plan_service: MealPlanService
    job_service: GenerationJobService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    mode = select_mode(
        parse_test_mode(resolved_settings.meal_plan_test_mode),
        test_model=resolved_settings.openai_test_model,
    )
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    background = BackgroundTasks()
    audit_service = LlmAuditService(
        repository=SupabaseLlmLogRepository(supabase_client),
        background=background,
    )
    nutrition_cache = NutritionCacheService(
        repository=SupabaseIngredientRepository(supabase_client),
        background=background,
        memo=NutritionMemo(),
    )
    openai_client = OpenAIGenerationClient.create(resolved_settings.openai_api_key)
    generation_client = GenerationClient(
        oracle=openai_client,
        audit=audit_service,
        mode=mode,
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
        max_retries=resolved_settings.generation_max_retries,
        backoff_seconds=resolved_settings.generation_backoff_seconds,
    )
    plan_repository = SupabaseMealPlanRepository(supabase_client)
    profile_repository = SupabaseProfileRepository(supabase_client)
    orchestrator = MealPlanOrchestrator(
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
    meal_plan_service = MealPlanService(
        orchestrator=orchestrator,
        profiles=profile_repository,
        plans=plan_repository,
        preferences=SupabasePreferenceRepository(supabase_client),
    )
    job_service = GenerationJobService(
        plans=meal_plan_service,
        repository=SupabaseJobRepository(supabase_client),
        background=background,
    )

    async def close_resources() -> None:
        await background.drain()
        await openai_client.close()

    return AppContainer(
        settings=resolved_settings,
        mode=mode,
        background=background,
        audit_service=audit_service,
        nutrition_cache=nutrition_cache,
        orchestrator=orchestrator,
        meal_plan_service=meal_plan_service,
        job_service=job_service,
        close_resources=close_resources,
    )
