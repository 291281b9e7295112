# mealplan/services/fallback_planner.py
from datetime import date, timedelta
from typing import List, Optional, Sequence

from mealplan.models.meal import MealAssignment, PlanGenerationRequest, PlanResult, RecipeCandidate, SwapSuggestion

FALLBACK_RATIONALE = "Rule-based fallback selection"


def dates_in_range(start: date, end: date) -> List[date]:
    out = []
    current = start
    while current <= end:
        out.append(current)
        current += timedelta(days=1)
    return out


def candidates_for_meal_type(recipes: Sequence[RecipeCandidate], meal_type: str) -> List[RecipeCandidate]:
    """Exact meal-type matches first, then meal-type-agnostic recipes; the whole catalog if both are empty."""
    exact = [r for r in recipes if r.meal_type == meal_type]
    neutral = [r for r in recipes if not r.meal_type]
    pool = exact + neutral
    return pool if pool else list(recipes)


def _pick(pool: Sequence[RecipeCandidate], cursor: int, used: set) -> RecipeCandidate:
    start = cursor % len(pool)
    for offset in range(len(pool)):
        candidate = pool[(start + offset) % len(pool)]
        if candidate.id not in used:
            return candidate
    return pool[start]


def build_fallback_plan(request: PlanGenerationRequest, reason: str) -> PlanResult:
    """
    Fill every (date, meal type) slot from the request's catalog without any network call.

    Selection walks a round-robin cursor over each slot's pool and prefers recipes
    not yet used in this plan, so identical inputs always give identical plans.
    Slots whose pool is empty are left out.
    """
    assignments: List[MealAssignment] = []
    used: set = set()
    cursor = 0

    for day in dates_in_range(request.start_date, request.end_date):
        for meal_type in request.meals_per_day:
            pool = candidates_for_meal_type(request.recipes, meal_type)
            if not pool:
                continue

            chosen = _pick(pool, cursor, used)
            cursor += 1
            used.add(chosen.id)

            assignments.append(MealAssignment(
                date=day,
                meal_type=meal_type,
                recipe_id=chosen.id,
                servings=1,
                estimated_cost=None,
                rationale=FALLBACK_RATIONALE,
            ))

    return PlanResult(
        assignments=assignments,
        total_estimated_cost=None,
        summary=f"Generated with fallback planner because AI planner was unavailable ({reason}).",
        fallback_used=True,
    )


def build_swap_fallback(alternatives: Sequence[RecipeCandidate], current_recipe_id: str,
                        reason: Optional[str] = None) -> SwapSuggestion:
    if not alternatives:
        raise ValueError("alternatives must not be empty")

    chosen = next((r for r in alternatives if r.id != current_recipe_id), alternatives[0])
    if reason:
        reasoning = f"Rule-based swap fallback used while AI was unavailable ({reason})."
    else:
        reasoning = "Rule-based swap fallback used while AI was unavailable."
    return SwapSuggestion(recipe_id=chosen.id, servings=1, estimated_cost=None, reasoning=reasoning)
