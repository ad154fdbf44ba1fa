"""Shared nutrition cache backed by the ingredient dimension table."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from meal_planner.domain.errors import IngredientConflictError
from meal_planner.domain.nutrition import (
    IngredientRecord,
    NutritionCacheEntry,
    NutritionCacheItem,
    normalize_food_name,
)
from meal_planner.services.background import BackgroundTasks
from meal_planner.services.cache import NutritionMemo

_logger = logging.getLogger(__name__)


class IngredientRepository(Protocol):
    """Persistence interface for canonical ingredients and their nutrition."""

    def fetch_nutrition(self, names_normalized: list[str]) -> list[NutritionCacheEntry]:
        """Return nutrition rows for active ingredients with these names."""

    def find_active_ingredient(self, name_normalized: str) -> IngredientRecord | None:
        """Return the non-deleted ingredient with this name, if any."""

    def find_deleted_ingredient(self, name_normalized: str) -> IngredientRecord | None:
        """Return a soft-deleted ingredient with this name, if any."""

    def insert_ingredient(
        self, name: str, name_normalized: str, category: str
    ) -> IngredientRecord:
        """Insert an ingredient; raise IngredientConflictError on a duplicate."""

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
        """Insert a nutrition row, ignoring an existing row with the same key."""

    def set_ingredient_deleted(self, ingredient_id: str, deleted: bool) -> bool:
        """Soft delete or restore an ingredient. Return False when not found."""


@dataclass
class NutritionCacheService:
    """Batched nutrition lookups and best-effort cache writes."""

    repository: IngredientRepository
    background: BackgroundTasks
    memo: NutritionMemo = field(default_factory=NutritionMemo)
    source: str = "llm_estimated"
    confidence_score: float = 0.7

    def fetch_many(self, names: Iterable[str]) -> dict[str, NutritionCacheEntry]:
        """Return cached entries keyed by normalized name; misses are absent."""
        normalized = list(
            dict.fromkeys(normalize_food_name(name) for name in names if name.strip())
        )
        hits, missing = self.memo.lookup(normalized)
        if not missing:
            return hits

        try:
            rows = self.repository.fetch_nutrition(missing)
        except Exception:
            _logger.exception(
                "Nutrition cache lookup failed for %s names", len(missing)
            )
            return hits
        fetched: dict[str, NutritionCacheEntry] = {}
        for row in rows:
            fetched.setdefault(row.name_normalized, row)
        self.memo.remember(fetched.values())
        return {**hits, **fetched}

    def cache_many(self, items: Iterable[NutritionCacheItem]) -> int:
        """Write nutrition rows for ``items``; return how many were written.

        Each item is handled independently. Failures are logged and skipped.
        """
        written = 0
        seen: set[tuple[str, int, str]] = set()
        for item in items:
            key = (
                normalize_food_name(item.name),
                round(item.serving_size),
                item.serving_unit,
            )
            if key in seen:
                continue
            seen.add(key)
            try:
                if self._write_item(item):
                    written += 1
            except Exception:
                _logger.exception("Failed to cache nutrition for %s", item.name)
        return written

    def schedule_cache_many(self, items: list[NutritionCacheItem]) -> None:
        """Write ``items`` on a worker thread without blocking the caller."""
        if not items:
            return
        self.background.run_sync(
            lambda: self.cache_many(items), label=f"nutrition_cache:{len(items)}"
        )

    def resolve_or_create_ingredient(
        self, name: str, category: str | None = None
    ) -> str | None:
        """Return the active ingredient id for ``name``, creating it if new.

        Returns None when the name was soft-deleted; such names are never
        recreated.
        """
        name_normalized = normalize_food_name(name)
        existing = self.repository.find_active_ingredient(name_normalized)
        if existing is not None:
            return existing.id
        if self.repository.find_deleted_ingredient(name_normalized) is not None:
            _logger.info("Skipping soft-deleted ingredient %s", name_normalized)
            return None
        try:
            created = self.repository.insert_ingredient(
                name.strip(), name_normalized, category or "other"
            )
        except IngredientConflictError:
            retry = self.repository.find_active_ingredient(name_normalized)
            return retry.id if retry is not None else None
        return created.id

    def soft_delete_ingredient(self, ingredient_id: str) -> bool:
        """Mark an ingredient deleted so the pipeline never recreates it."""
        deleted = self.repository.set_ingredient_deleted(ingredient_id, True)
        if deleted:
            self.memo.clear()
        return deleted

    def restore_ingredient(self, ingredient_id: str) -> bool:
        """Clear the soft-delete marker on an ingredient."""
        restored = self.repository.set_ingredient_deleted(ingredient_id, False)
        if restored:
            self.memo.clear()
        return restored

    def _write_item(self, item: NutritionCacheItem) -> bool:
        ingredient_id = self.resolve_or_create_ingredient(item.name, item.category)
        if ingredient_id is None:
            return False
        self.repository.upsert_nutrition(
            ingredient_id=ingredient_id,
            serving_size=round(item.serving_size),
            serving_unit=item.serving_unit,
            calories=round(item.calories),
            protein=round(item.protein),
            carbs=round(item.carbs),
            fat=round(item.fat),
            source=self.source,
            confidence_score=self.confidence_score,
        )
        return True


def build_reference_section(entries: dict[str, NutritionCacheEntry]) -> str:
    """Render cache hits as a prompt section of anchoring reference values."""
    if not entries:
        return ""
    lines = [
        f"- {entry.name}: {entry.calories:g} cal, {entry.protein:g}g protein, "
        f"{entry.carbs:g}g carbs, {entry.fat:g}g fat per "
        f"{entry.serving_size:g} {entry.serving_unit}"
        for entry in entries.values()
    ]
    return (
        "\n## NUTRITION REFERENCE (use these exact values)\n"
        "The following ingredients have validated nutrition data. "
        "Use these exact values when calculating macros:\n"
        + "\n".join(lines)
        + "\n"
    )


def serving_reference(entries: Iterable[NutritionCacheEntry]) -> str:
    """Render cached serving sizes so quantities line up with known portions."""
    lines = [
        f"- {entry.name}: one serving is {entry.serving_size:g} {entry.serving_unit}"
        for entry in entries
    ]
    if not lines:
        return ""
    return "\n## KNOWN SERVING SIZES\n" + "\n".join(lines) + "\n"
