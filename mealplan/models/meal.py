from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ALLOWED_MEAL_TYPES = ("breakfast", "lunch", "dinner", "snack")
DEFAULT_MEALS_PER_DAY = ["breakfast", "lunch", "dinner"]


def normalize_meal_type(value) -> str:
    return str(value or "").strip().lower()


class MemberConstraintProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    member_id: str
    name: str = "Member"
    age: Optional[int] = None
    allergens: List[str] = Field(default_factory=list, description="Allergen codes, hard-excluded")
    diets: List[str] = Field(default_factory=list)
    conditions: List[str] = Field(default_factory=list)
    calorie_target: Optional[float] = None
    protein_target_g: Optional[float] = None
    carbs_target_g: Optional[float] = None
    fat_target_g: Optional[float] = None


class RecipeCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    meal_type: Optional[str] = Field(None, description="None means the recipe fits any meal")
    cuisine: Optional[str] = None
    calories: float = 0
    protein_g: float = 0
    carbs_g: float = 0
    fat_g: float = 0
    cook_time_minutes: Optional[int] = None
    allergens: List[str] = Field(default_factory=list)
    diets: List[str] = Field(default_factory=list)

    @field_validator("meal_type", mode="before")
    @classmethod
    def _normalize_meal_type(cls, v):
        v = normalize_meal_type(v)
        return v or None


class CatalogFilters(BaseModel):
    model_config = ConfigDict(frozen=True)

    exclude_ids: List[str] = Field(default_factory=list)
    max_cook_time_minutes: Optional[int] = None
    cuisine_ids: List[str] = Field(default_factory=list)
    exclude_allergens: List[str] = Field(default_factory=list, description="Lower-case allergen codes")
    limit: int = 150


class PlanGenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    members: List[MemberConstraintProfile]
    recipes: List[RecipeCandidate]
    start_date: date
    end_date: date
    meals_per_day: List[str]
    budget_amount: Optional[float] = None
    budget_currency: Optional[str] = None
    max_cook_time: Optional[int] = None
    preferred_cuisines: List[str] = Field(default_factory=list)
    exclude_recipe_ids: List[str] = Field(default_factory=list)

    def slot_count(self) -> int:
        days = (self.end_date - self.start_date).days + 1
        return max(0, days) * len(self.meals_per_day)


class MealAssignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    meal_type: str
    recipe_id: str
    servings: int = Field(1, ge=1)
    estimated_cost: Optional[float] = None
    rationale: str = ""


class PlanResult(BaseModel):
    assignments: List[MealAssignment]
    total_estimated_cost: Optional[float] = None
    summary: str
    fallback_used: bool = False
    cuisine_fallback_applied: bool = False
    model: Optional[str] = None
    generation_time_ms: Optional[int] = None


class SwapSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    recipe_id: str
    servings: int = Field(1, ge=1)
    estimated_cost: Optional[float] = None
    reasoning: str = "Alternative suggestion"


class SwapContext(BaseModel):
    """The slot being swapped and who it is cooked for."""

    model_config = ConfigDict(frozen=True)

    current_recipe_id: str
    current_recipe_title: str = "Unknown"
    meal_date: date
    meal_type: str = "dinner"
    members: List[MemberConstraintProfile] = Field(default_factory=list)


# ---------- caller inputs ----------

class PlanPreferences(BaseModel):
    max_cook_time: Optional[int] = Field(None, gt=0)
    cuisines: List[str] = Field(default_factory=list)
    exclude_recipe_ids: List[str] = Field(default_factory=list)


class GeneratePlanInput(BaseModel):
    start_date: date
    end_date: date
    member_ids: List[str] = Field(..., min_length=1)
    budget_amount: Optional[float] = Field(None, gt=0)
    budget_currency: Optional[str] = Field(None, min_length=3, max_length=3)
    meals_per_day: List[str] = Field(default_factory=lambda: list(DEFAULT_MEALS_PER_DAY), min_length=1)
    preferences: PlanPreferences = Field(default_factory=PlanPreferences)

    @field_validator("meals_per_day")
    @classmethod
    def _check_meal_types(cls, v: List[str]) -> List[str]:
        out = [normalize_meal_type(m) for m in v]
        bad = [m for m in out if m not in ALLOWED_MEAL_TYPES]
        if bad:
            raise ValueError(f"Unsupported meal types: {bad}")
        return out

    @model_validator(mode="after")
    def _check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class SwapMealInput(BaseModel):
    current_recipe_id: str
    current_recipe_title: str = "Unknown"
    meal_date: date
    meal_type: str = "dinner"
    member_ids: List[str] = Field(default_factory=list)
    plan_recipe_ids: List[str] = Field(default_factory=list, description="Recipes already in the plan")
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("meal_type")
    @classmethod
    def _check_meal_type(cls, v: str) -> str:
        v = normalize_meal_type(v)
        if v not in ALLOWED_MEAL_TYPES:
            raise ValueError(f"Unsupported meal type: {v}")
        return v
