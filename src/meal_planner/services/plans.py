"""Meal plan generation for a stored user, with persistence."""

import logging
from dataclasses import dataclass
from typing import Protocol

from meal_planner.domain.errors import ProfileNotFoundError
from meal_planner.domain.plans import GeneratedPlan, PrepSchedule
from meal_planner.domain.profile import (
    GenerationOptions,
    MealTheme,
    Preferences,
    ProteinFocus,
    ValidatedMealMacros,
)
from meal_planner.services.orchestrator import (
    MealPlanOrchestrator,
    MealPlanRepository,
    ProfileRepository,
    ProgressCallback,
)

_logger = logging.getLogger(__name__)

RECENT_PLAN_LIMIT = 3


class PreferenceRepository(Protocol):
    """Read access to a user's likes, dislikes and confirmed macros."""

    def get_meal_preferences(self, user_id: str) -> Preferences:
        """Return liked and disliked meal names."""

    def get_ingredient_preferences(self, user_id: str) -> Preferences:
        """Return liked and disliked ingredient names."""

    def list_validated_meals(self, user_id: str) -> list[ValidatedMealMacros]:
        """Return meals whose macros the user confirmed."""


@dataclass
class MealPlanService:
    orchestrator: MealPlanOrchestrator
    profiles: ProfileRepository
    plans: MealPlanRepository
    preferences: PreferenceRepository

    def load_options(  # noqa: PLR0913
        self,
        user_id: str,
        *,
        theme: MealTheme | None = None,
        protein_focus: ProteinFocus | None = None,
        job_id: str | None = None,
    ) -> GenerationOptions:
        """Collect the user's history and preferences for a run."""
        recent = self.plans.list_recent_meal_names(user_id, RECENT_PLAN_LIMIT)
        meal_preferences = self.preferences.get_meal_preferences(user_id)
        ingredient_preferences = self.preferences.get_ingredient_preferences(user_id)
        return GenerationOptions(
            recent_meal_names=tuple(dict.fromkeys(recent)),
            meal_preferences=None if meal_preferences.is_empty() else meal_preferences,
            ingredient_preferences=(
                None if ingredient_preferences.is_empty() else ingredient_preferences
            ),
            validated_meals=tuple(self.preferences.list_validated_meals(user_id)),
            theme=theme,
            protein_focus=protein_focus,
            job_id=job_id,
        )

    async def generate(  # noqa: PLR0913
        self,
        user_id: str,
        *,
        theme: MealTheme | None = None,
        protein_focus: ProteinFocus | None = None,
        job_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> tuple[str, GeneratedPlan]:
        """Run generation for the user and persist the plan on success."""
        profile = self.profiles.get_profile(user_id)
        if profile is None:
            raise ProfileNotFoundError("User profile not found")
        options = self.load_options(
            user_id, theme=theme, protein_focus=protein_focus, job_id=job_id
        )
        plan = await self.orchestrator.run_generation(
            profile, user_id, options, on_progress
        )
        plan_id = self.plans.create_plan(
            user_id, plan, theme.display_name if theme else None
        )
        _logger.info("Saved meal plan %s for %s", plan_id, user_id)
        return plan_id, plan

    async def regenerate_prep(self, plan_id: str, user_id: str) -> PrepSchedule:
        """Rebuild and store the prep schedule of an existing plan."""
        schedule = await self.orchestrator.regenerate_prep_for_existing_plan(
            plan_id, user_id
        )
        self.plans.update_prep_schedule(plan_id, schedule)
        return schedule
