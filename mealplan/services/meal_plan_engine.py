# mealplan/services/meal_plan_engine.py
import time
from datetime import date
from typing import List, Optional

from mealplan.logging_utils import get_logger
from mealplan.models.meal import GeneratePlanInput, MealAssignment, PlanGenerationRequest, PlanResult, SwapContext, SwapMealInput
from mealplan.services.errors import CatalogEmpty, MealPlanError, PlanGenerationFailed
from mealplan.services.fallback_planner import build_fallback_plan, dates_in_range
from mealplan.services.generation_context import GenerationContextBuilder
from mealplan.services.grounded_planner import GroundedPlanner
from mealplan.services.plan_validator import require_valid_assignments, validate_assignments
from mealplan.services.swap_selector import SwapSelector

logger = get_logger(__name__)

FALLBACK_NOTE = "Note: AI planner fallback was used due to provider unavailability."
CUISINE_FALLBACK_NOTE = "Note: preferred cuisines were unavailable, so broader recipes were used."


def total_cost(assignments: List[MealAssignment]) -> Optional[float]:
    costs = [a.estimated_cost for a in assignments if a.estimated_cost is not None]
    return round(sum(costs), 2) if costs else None


class MealPlanEngine:
    """
    Plan generation and meal swaps.

    The generative planner is tried first; any engine error on that path, or a
    response with no usable assignment, hands the request to the rule-based
    fallback planner. Callers only see ``CatalogEmpty`` and
    ``PlanGenerationFailed``.
    """

    def __init__(self, context_builder: GenerationContextBuilder, planner: GroundedPlanner,
                 swap_selector: Optional[SwapSelector] = None):
        self.context_builder = context_builder
        self.planner = planner
        self.swap_selector = swap_selector or SwapSelector(planner)

    def generate(self, customer_id: str, plan_input: GeneratePlanInput) -> PlanResult:
        start = time.monotonic()
        context = self.context_builder.build(customer_id, plan_input)

        result = self.plan(context.request)

        notes = [result.summary]
        if result.fallback_used:
            notes.append(FALLBACK_NOTE)
        if context.cuisine_fallback_applied:
            notes.append(CUISINE_FALLBACK_NOTE)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Plan ready: %d assignments, fallback=%s, %dms",
            len(result.assignments), result.fallback_used, elapsed_ms,
        )
        return result.model_copy(update={
            "summary": " ".join(notes),
            "total_estimated_cost": total_cost(result.assignments),
            "cuisine_fallback_applied": context.cuisine_fallback_applied,
            "generation_time_ms": elapsed_ms,
        })

    def plan(self, request: PlanGenerationRequest) -> PlanResult:
        """Generative path with validation, then the deterministic fallback."""
        if not request.recipes:
            raise CatalogEmpty("No recipes available matching the given constraints. Try relaxing your filters.")

        plan_dates: List[date] = dates_in_range(request.start_date, request.end_date)
        try:
            proposed = self.planner.generate(request)
            valid = require_valid_assignments(proposed.assignments, request.recipes, allowed_dates=plan_dates)
            return proposed.model_copy(update={"assignments": valid, "fallback_used": False})
        except MealPlanError as e:
            reason = e.message or "LLM unavailable"
            logger.warning("Falling back to rule-based planner: %s", reason)

        fallback = build_fallback_plan(request, reason)
        valid = validate_assignments(fallback.assignments, request.recipes, allowed_dates=plan_dates)
        if not valid:
            raise PlanGenerationFailed("Could not generate a valid meal plan from available recipes.")
        return fallback.model_copy(update={"assignments": valid})

    def swap(self, customer_id: str, swap_input: SwapMealInput) -> MealAssignment:
        members = self.context_builder.directory.profiles_for(swap_input.member_ids)
        exclude_ids = list(swap_input.plan_recipe_ids) + [swap_input.current_recipe_id]

        alternatives = self.context_builder.swap_alternatives(customer_id, members, exclude_ids)
        if not alternatives:
            raise CatalogEmpty("No alternative recipes available")

        current = SwapContext(
            current_recipe_id=swap_input.current_recipe_id,
            current_recipe_title=swap_input.current_recipe_title,
            meal_date=swap_input.meal_date,
            meal_type=swap_input.meal_type,
            members=members,
        )
        return self.swap_selector.select(current, alternatives, swap_input.reason)
