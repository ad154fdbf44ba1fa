"""Runs the generation stages in order and assembles the plan."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Protocol

from meal_planner.domain.errors import (
    GenerationError,
    PlanNotFoundError,
    ProfileNotFoundError,
)
from meal_planner.domain.generation import ProgressEvent, RunStage
from meal_planner.domain.plans import (
    GeneratedPlan,
    PrepSchedule,
    StoredMealPlan,
    normalize_core_ingredients,
)
from meal_planner.domain.profile import GenerationOptions, UserProfile
from meal_planner.services.fixtures import fixture_plan
from meal_planner.services.grocery import GroceryConsolidationStage
from meal_planner.services.ingredients import IngredientSelectionStage
from meal_planner.services.meals import MealSynthesisStage
from meal_planner.services.modes import GenerationMode
from meal_planner.services.planning import (
    meal_types_for_plan,
    organize_meals_into_days,
    replicate_day_across_week,
)
from meal_planner.services.prep import PrepSchedulingStage

_logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class MealPlanRepository(Protocol):
    """Persistence interface for generated meal plans."""

    def get_owned_plan(self, plan_id: str, user_id: str) -> StoredMealPlan | None:
        """Return the plan if it exists and belongs to the user."""

    def create_plan(
        self, user_id: str, plan: GeneratedPlan, theme_name: str | None = None
    ) -> str:
        """Persist a generated plan and return its id."""

    def update_prep_schedule(self, plan_id: str, schedule: PrepSchedule) -> None:
        """Replace the stored prep schedule of a plan."""

    def list_recent_meal_names(self, user_id: str, plan_limit: int) -> list[str]:
        """Return meal names from the user's most recent plans."""


class ProfileRepository(Protocol):
    """Read access to user profiles."""

    def get_profile(self, user_id: str) -> UserProfile | None:
        """Return the user's profile, if any."""


@dataclass
class MealPlanOrchestrator:
    """Drives one run: ingredients, meals, then grocery and prep together."""

    ingredients: IngredientSelectionStage
    meals: MealSynthesisStage
    grocery: GroceryConsolidationStage
    prep: PrepSchedulingStage
    mode: GenerationMode
    plans: MealPlanRepository
    profiles: ProfileRepository

    async def run_generation(
        self,
        profile: UserProfile,
        user_id: str,
        options: GenerationOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> GeneratedPlan:
        """Generate a full plan, or the recorded fixture in fixture mode.

        Any stage failure emits ``failed`` and propagates unchanged.
        """
        options = options or GenerationOptions()

        def emit(stage: RunStage, message: str) -> None:
            if on_progress is not None:
                on_progress(ProgressEvent(stage=stage, message=message))

        if self.mode.use_fixture:
            _logger.info("Fixture mode: returning recorded plan for %s", user_id)
            plan = fixture_plan()
            emit(RunStage.DONE, "Meal plan ready!")
            return plan

        theme = options.theme
        try:
            emit(
                RunStage.INGREDIENTS,
                f"Selecting {theme.display_name} ingredients..."
                if theme
                else "Selecting ingredients based on your macros...",
            )
            core_ingredients = await self.ingredients.select(
                profile,
                user_id,
                recent_meal_names=options.recent_meal_names,
                meal_preferences=options.meal_preferences,
                ingredient_preferences=options.ingredient_preferences,
                theme=theme,
                protein_focus=options.protein_focus,
                job_id=options.job_id,
            )
            emit(RunStage.INGREDIENTS_DONE, "Ingredients selected!")

            emit(
                RunStage.MEALS,
                f"Creating your {theme.display_name} meal plan..."
                if theme
                else "Creating your 7-day meal plan...",
            )
            generated = await self.meals.synthesize(
                profile,
                core_ingredients,
                user_id,
                meal_preferences=options.meal_preferences,
                validated_meals=options.validated_meals,
                theme=theme,
                protein_focus=options.protein_focus,
                single_day=not self.mode.full_week,
                job_id=options.job_id,
            )
            emit(RunStage.MEALS_DONE, "Meals created!")

            slots = meal_types_for_plan(
                profile.selected_meal_types, profile.snack_count
            )
            days = organize_meals_into_days(generated.meals, slots)
            if not self.mode.full_week:
                _logger.info("Repeating Monday meals across the week")
                days = replicate_day_across_week(days[0])

            emit(RunStage.FINALIZING, "Building grocery list and prep schedule...")
            if self.mode.skip_prep:
                grocery_list = await self.grocery.consolidate(
                    core_ingredients, days, profile, user_id, job_id=options.job_id
                )
                prep_schedule = PrepSchedule()
            else:
                grocery_list, prep_schedule = await asyncio.gather(
                    self.grocery.consolidate(
                        core_ingredients, days, profile, user_id, job_id=options.job_id
                    ),
                    self.prep.schedule(
                        days, core_ingredients, profile, user_id, job_id=options.job_id
                    ),
                )
            emit(RunStage.FINALIZING_DONE, "Almost done!")
        except Exception as exc:
            reason = exc.reason if isinstance(exc, GenerationError) else str(exc)
            _logger.error("Meal plan generation failed for %s: %s", user_id, exc)
            emit(RunStage.FAILED, reason)
            raise

        plan = GeneratedPlan(
            title=generated.title,
            days=days,
            grocery_list=grocery_list,
            core_ingredients=core_ingredients,
            prep_schedule=prep_schedule,
        )
        emit(RunStage.DONE, "Meal plan ready!")
        return plan

    async def regenerate_prep_for_existing_plan(
        self, plan_id: str, user_id: str, *, week_start: date | None = None
    ) -> PrepSchedule:
        """Rebuild the prep schedule of a stored plan the user owns."""
        stored = self.plans.get_owned_plan(plan_id, user_id)
        if stored is None:
            raise PlanNotFoundError("Meal plan not found")
        profile = self.profiles.get_profile(user_id)
        if profile is None:
            raise ProfileNotFoundError("User profile not found")
        core_ingredients = normalize_core_ingredients(
            stored.core_ingredients, lenient=True
        )
        return await self.prep.schedule(
            stored.days, core_ingredients, profile, user_id, week_start=week_start
        )
