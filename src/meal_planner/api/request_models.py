"""Request bodies for the generation endpoints."""

from typing import Literal

from pydantic import BaseModel

from meal_planner.domain.profile import MealTheme, ProteinFocus, ThemeIngredientGuidance


class ThemeGuidanceBody(BaseModel):
    flavor_profile: str
    proteins: list[str] = []
    vegetables: list[str] = []
    fruits: list[str] = []
    grains: list[str] = []
    fats: list[str] = []
    seasonings: list[str] = []


class ThemeBody(BaseModel):
    display_name: str
    description: str
    ingredient_guidance: ThemeGuidanceBody
    cooking_style_guidance: str = ""
    meal_name_style: str | None = None
    emoji: str | None = None

    def to_domain(self) -> MealTheme:
        guidance = self.ingredient_guidance
        return MealTheme(
            display_name=self.display_name,
            description=self.description,
            ingredient_guidance=ThemeIngredientGuidance(
                flavor_profile=guidance.flavor_profile,
                proteins=tuple(guidance.proteins),
                vegetables=tuple(guidance.vegetables),
                fruits=tuple(guidance.fruits),
                grains=tuple(guidance.grains),
                fats=tuple(guidance.fats),
                seasonings=tuple(guidance.seasonings),
            ),
            cooking_style_guidance=self.cooking_style_guidance,
            meal_name_style=self.meal_name_style,
            emoji=self.emoji,
        )


class ProteinFocusBody(BaseModel):
    protein: str
    meal_type: str
    count: Literal["all", "5-7", "3-4"] = "all"
    vary_cuisines: bool = False

    def to_domain(self) -> ProteinFocus:
        return ProteinFocus(
            protein=self.protein,
            meal_type=self.meal_type,
            count=self.count,
            vary_cuisines=self.vary_cuisines,
        )


class GenerateMealPlanRequest(BaseModel):
    """Optional steering for one generation run."""

    theme: ThemeBody | None = None
    protein_focus: ProteinFocusBody | None = None
