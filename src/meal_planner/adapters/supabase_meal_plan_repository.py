"""Supabase repository for generated meal plans."""

from dataclasses import dataclass

from supabase import Client

from meal_planner.domain.plans import (
    DayPlan,
    GeneratedPlan,
    PrepSchedule,
    StoredMealPlan,
)
from meal_planner.services.orchestrator import MealPlanRepository


@dataclass
class SupabaseMealPlanRepository(MealPlanRepository):
    """Stores each plan as one ``meal_plans`` row with JSON columns."""

    client: Client

    def get_owned_plan(self, plan_id: str, user_id: str) -> StoredMealPlan | None:
        response = (
            self.client.table("meal_plans")
            .select("id, user_id, title, plan_data, core_ingredients")
            .eq("id", plan_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return StoredMealPlan(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=str(row.get("title") or ""),
            days=[DayPlan.model_validate(day) for day in row.get("plan_data") or []],
            core_ingredients=row.get("core_ingredients"),
        )

    def create_plan(
        self, user_id: str, plan: GeneratedPlan, theme_name: str | None = None
    ) -> str:
        payload = plan.model_dump(mode="json")
        response = (
            self.client.table("meal_plans")
            .insert(
                {
                    "user_id": user_id,
                    "title": plan.title,
                    "theme_name": theme_name,
                    "plan_data": payload["days"],
                    "grocery_list": payload["grocery_list"],
                    "core_ingredients": payload["core_ingredients"],
                    "prep_schedule": payload["prep_schedule"],
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError(f"Meal plan insert returned no row for user {user_id}")
        return str(response.data[0]["id"])

    def update_prep_schedule(self, plan_id: str, schedule: PrepSchedule) -> None:
        self.client.table("meal_plans").update(
            {"prep_schedule": schedule.model_dump(mode="json")}
        ).eq("id", plan_id).execute()

    def list_recent_meal_names(self, user_id: str, plan_limit: int) -> list[str]:
        """Meal names from the newest plans, newest first, with repeats."""
        response = (
            self.client.table("meal_plans")
            .select("plan_data")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(plan_limit)
            .execute()
        )
        names: list[str] = []
        for row in response.data or []:
            for day in row.get("plan_data") or []:
                names.extend(meal["name"] for meal in day.get("meals", []))
        return names
