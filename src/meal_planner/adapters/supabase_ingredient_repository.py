"""Supabase repository for canonical ingredients and cached nutrition."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client, PostgrestAPIError

from meal_planner.domain.errors import IngredientConflictError
from meal_planner.domain.nutrition import IngredientRecord, NutritionCacheEntry
from meal_planner.services.nutrition_cache import IngredientRepository

_UNIQUE_VIOLATION = "23505"
_INGREDIENT_COLUMNS = "id, name, name_normalized, category, deleted_at"


@dataclass
class SupabaseIngredientRepository(IngredientRepository):
    """Supabase-backed ingredient and nutrition repository."""

    client: Client

    def fetch_nutrition(self, names_normalized: list[str]) -> list[NutritionCacheEntry]:
        """Return nutrition rows for active ingredients with these names."""
        if not names_normalized:
            return []
        response = (
            self.client.table("ingredient_nutrition_with_details")
            .select("*")
            .in_("name_normalized", names_normalized)
            .order("confidence_score", desc=True)
            .execute()
        )
        return [_nutrition_from_row(row) for row in response.data or []]

    def find_active_ingredient(self, name_normalized: str) -> IngredientRecord | None:
        """Return the non-deleted ingredient with this name."""
        response = (
            self.client.table("ingredients")
            .select(_INGREDIENT_COLUMNS)
            .eq("name_normalized", name_normalized)
            .is_("deleted_at", "null")
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _ingredient_from_row(response.data[0])

    def find_deleted_ingredient(self, name_normalized: str) -> IngredientRecord | None:
        """Return a soft-deleted ingredient with this name."""
        response = (
            self.client.table("ingredients")
            .select(_INGREDIENT_COLUMNS)
            .eq("name_normalized", name_normalized)
            .not_.is_("deleted_at", "null")
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _ingredient_from_row(response.data[0])

    def insert_ingredient(
        self, name: str, name_normalized: str, category: str
    ) -> IngredientRecord:
        """Insert an ingredient row."""
        try:
            response = (
                self.client.table("ingredients")
                .insert(
                    {
                        "name": name,
                        "name_normalized": name_normalized,
                        "category": category,
                    }
                )
                .execute()
            )
        except PostgrestAPIError as exc:
            if exc.code == _UNIQUE_VIOLATION:
                raise IngredientConflictError(name_normalized) from exc
            raise
        if not response.data:
            raise RuntimeError(f"Ingredient insert returned no row for {name!r}")
        return _ingredient_from_row(response.data[0])

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
        """Insert a nutrition row unless one exists for the same serving."""
        self.client.table("ingredient_nutrition").upsert(
            {
                "ingredient_id": ingredient_id,
                "serving_size": serving_size,
                "serving_unit": serving_unit,
                "calories": calories,
                "protein": protein,
                "carbs": carbs,
                "fat": fat,
                "source": source,
                "confidence_score": confidence_score,
            },
            on_conflict="ingredient_id,serving_size,serving_unit",
            ignore_duplicates=True,
        ).execute()

    def set_ingredient_deleted(self, ingredient_id: str, deleted: bool) -> bool:
        """Set or clear the soft-delete marker."""
        deleted_at = datetime.now(tz=UTC).isoformat() if deleted else None
        response = (
            self.client.table("ingredients")
            .update({"deleted_at": deleted_at})
            .eq("id", ingredient_id)
            .execute()
        )
        return bool(response.data)


def _ingredient_from_row(row: dict[str, object]) -> IngredientRecord:
    deleted_at = row.get("deleted_at")
    return IngredientRecord(
        id=str(row["id"]),
        name=str(row.get("name", "")),
        name_normalized=str(row.get("name_normalized", "")),
        category=row.get("category"),
        deleted_at=(
            datetime.fromisoformat(deleted_at)
            if isinstance(deleted_at, str) and deleted_at
            else None
        ),
    )


def _nutrition_from_row(row: dict[str, object]) -> NutritionCacheEntry:
    confidence = row.get("confidence_score")
    return NutritionCacheEntry(
        ingredient_id=str(row["ingredient_id"]),
        name=str(row.get("ingredient_name") or row.get("name_normalized", "")),
        name_normalized=str(row["name_normalized"]),
        serving_size=float(row.get("serving_size") or 0),
        serving_unit=str(row.get("serving_unit") or "serving"),
        calories=float(row.get("calories") or 0),
        protein=float(row.get("protein") or 0),
        carbs=float(row.get("carbs") or 0),
        fat=float(row.get("fat") or 0),
        source=str(row.get("source") or "llm_estimated"),
        confidence_score=float(confidence) if confidence is not None else None,
    )
