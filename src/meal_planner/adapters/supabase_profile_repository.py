"""Supabase repositories for user profiles and preferences."""

from dataclasses import dataclass

from supabase import Client

from meal_planner.domain.profile import (
    HouseholdServing,
    HouseholdServings,
    IngredientVarietyPrefs,
    Preferences,
    UserProfile,
    ValidatedMealMacros,
)
from meal_planner.services.orchestrator import ProfileRepository
from meal_planner.services.plans import PreferenceRepository


@dataclass
class SupabaseProfileRepository(ProfileRepository):
    """Supabase-backed profile repository."""

    client: Client

    def get_profile(self, user_id: str) -> UserProfile | None:
        response = (
            self.client.table("user_profiles")
            .select("*")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return profile_from_row(response.data[0])


@dataclass
class SupabasePreferenceRepository(PreferenceRepository):
    """Supabase-backed meal and ingredient preference repository."""

    client: Client

    def get_meal_preferences(self, user_id: str) -> Preferences:
        response = (
            self.client.table("meal_preferences")
            .select("meal_name, preference")
            .eq("user_id", user_id)
            .execute()
        )
        return _split_preferences(response.data or [], "meal_name")

    def get_ingredient_preferences(self, user_id: str) -> Preferences:
        response = (
            self.client.table("ingredient_preferences_with_details")
            .select("ingredient_name, preference")
            .eq("user_id", user_id)
            .execute()
        )
        return _split_preferences(response.data or [], "ingredient_name")

    def list_validated_meals(self, user_id: str) -> list[ValidatedMealMacros]:
        response = (
            self.client.table("validated_meals_by_user")
            .select("meal_name, calories, protein, carbs, fat")
            .eq("user_id", user_id)
            .execute()
        )
        return [
            ValidatedMealMacros(
                meal_name=str(row["meal_name"]),
                calories=int(row.get("calories") or 0),
                protein=int(row.get("protein") or 0),
                carbs=int(row.get("carbs") or 0),
                fat=int(row.get("fat") or 0),
            )
            for row in response.data or []
        ]


def _split_preferences(rows: list[dict[str, object]], name_key: str) -> Preferences:
    liked = [str(row[name_key]) for row in rows if row.get("preference") == "liked"]
    disliked = [
        str(row[name_key]) for row in rows if row.get("preference") == "disliked"
    ]
    return Preferences(liked=tuple(liked), disliked=tuple(disliked))


def profile_from_row(row: dict[str, object]) -> UserProfile:
    """Build a profile from a ``user_profiles`` row, defaulting missing prefs."""
    variety = row.get("ingredient_variety_prefs")
    consistency = row.get("meal_consistency_prefs")
    meal_types = row.get("selected_meal_types")
    dietary = row.get("dietary_prefs")
    return UserProfile(
        id=str(row["id"]),
        target_calories=int(row.get("target_calories") or 0),
        target_protein=int(row.get("target_protein") or 0),
        target_carbs=int(row.get("target_carbs") or 0),
        target_fat=int(row.get("target_fat") or 0),
        dietary_prefs=(
            tuple(dietary) if isinstance(dietary, list) else ("no_restrictions",)
        ),
        selected_meal_types=(
            tuple(meal_types)
            if isinstance(meal_types, list)
            else ("breakfast", "lunch", "dinner")
        ),
        snack_count=int(row.get("snack_count") or 0),
        prep_time=int(row.get("prep_time") or 30),
        meal_consistency=dict(consistency) if isinstance(consistency, dict) else {},
        breakfast_complexity=row.get("breakfast_complexity") or "minimal_prep",
        lunch_complexity=row.get("lunch_complexity") or "minimal_prep",
        dinner_complexity=row.get("dinner_complexity") or "full_recipe",
        ingredient_variety=_variety_from_row(variety),
        household_servings=_household_from_row(row.get("household_servings")),
        prep_style=row.get("prep_style") or "day_of",
    )


def _variety_from_row(raw: object) -> IngredientVarietyPrefs:
    defaults = IngredientVarietyPrefs().as_dict()
    if not isinstance(raw, dict):
        return IngredientVarietyPrefs()
    counts = {key: int(raw[key]) for key in defaults if raw.get(key) is not None}
    return IngredientVarietyPrefs(**counts)


def _household_from_row(raw: object) -> HouseholdServings:
    if not isinstance(raw, dict):
        return {}
    servings: HouseholdServings = {}
    for day, buckets in raw.items():
        if not isinstance(buckets, dict):
            continue
        servings[str(day)] = {
            str(bucket): HouseholdServing(
                adults=int(value.get("adults") or 0),
                children=int(value.get("children") or 0),
            )
            for bucket, value in buckets.items()
            if isinstance(value, dict)
        }
    return servings
