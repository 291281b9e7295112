# mealplan/services/swap_selector.py
from typing import Optional, Sequence

from mealplan.logging_utils import get_logger
from mealplan.models.meal import MealAssignment, RecipeCandidate, SwapContext, SwapSuggestion
from mealplan.services.errors import MealPlanError
from mealplan.services.fallback_planner import build_swap_fallback
from mealplan.services.grounded_planner import GroundedPlanner

logger = get_logger(__name__)


class SwapSelector:
    def __init__(self, planner: GroundedPlanner):
        self.planner = planner

    def suggest(self, current: SwapContext, alternatives: Sequence[RecipeCandidate],
                reason: Optional[str] = None) -> SwapSuggestion:
        try:
            return self.planner.swap(
                current_recipe_id=current.current_recipe_id,
                current_recipe_title=current.current_recipe_title,
                meal_date=current.meal_date,
                meal_type=current.meal_type,
                members=current.members,
                alternatives=alternatives,
                reason=reason,
            )
        except MealPlanError as e:
            logger.warning("Using rule-based swap fallback: %s", e)
            return build_swap_fallback(alternatives, current.current_recipe_id, e.message or "LLM unavailable")

    def select(self, current: SwapContext, alternatives: Sequence[RecipeCandidate],
               reason: Optional[str] = None) -> MealAssignment:
        suggestion = self.suggest(current, alternatives, reason)
        return MealAssignment(
            date=current.meal_date,
            meal_type=current.meal_type,
            recipe_id=suggestion.recipe_id,
            servings=suggestion.servings,
            estimated_cost=suggestion.estimated_cost,
            rationale=suggestion.reasoning,
        )
