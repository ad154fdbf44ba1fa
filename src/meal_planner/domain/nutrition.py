"""Nutrition cache domain models."""

import re
from dataclasses import dataclass
from datetime import datetime

_WHITESPACE = re.compile(r"\s+")


def normalize_food_name(name: str) -> str:
    """Lower-case, trim and collapse whitespace in a food name."""
    return _WHITESPACE.sub(" ", name.strip().lower())


@dataclass(frozen=True)
class IngredientRecord:
    """Canonical ingredient row."""

    id: str
    name: str
    name_normalized: str
    category: str | None = None
    deleted_at: datetime | None = None


@dataclass(frozen=True)
class NutritionCacheEntry:
    """Cached macros for one ingredient at one serving granularity."""

    ingredient_id: str
    name: str
    name_normalized: str
    serving_size: float
    serving_unit: str
    calories: float
    protein: float
    carbs: float
    fat: float
    source: str = "llm_estimated"
    confidence_score: float | None = None


@dataclass(frozen=True)
class NutritionCacheItem:
    """Observed ingredient macros waiting to be written to the cache."""

    name: str
    serving_size: float
    serving_unit: str
    calories: float
    protein: float
    carbs: float
    fat: float
    category: str | None = None

    @property
    def key(self) -> tuple[str, float, str]:
        return (normalize_food_name(self.name), self.serving_size, self.serving_unit)
